"""Storage backends for flagged-entry records.

- InMemoryFlagRepository: development and tests
- DynamoFlagRepository: DynamoDB table keyed by flag_id

Records are never deleted through these classes; the only update is
setting dismissed to true.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from dailyvoices.shared.errors import AuditWriteError, FlagNotFoundError, RepositoryError
from dailyvoices.shared.models import FlaggedEntryRecord

logger = logging.getLogger(__name__)


class FlagRepository(ABC):
    """Append-mostly store for FlaggedEntryRecord."""

    @abstractmethod
    def add(self, record: FlaggedEntryRecord) -> None:
        """Store a new record.

        Raises:
            AuditWriteError: If the write fails
        """

    @abstractmethod
    def mark_dismissed(self, flag_id: str) -> FlaggedEntryRecord:
        """Set dismissed=True and return the updated record.

        Raises:
            FlagNotFoundError: If no record has this id
            AuditWriteError: If the update fails
        """

    @abstractmethod
    def get(self, flag_id: str) -> Optional[FlaggedEntryRecord]:
        """Return the record or None."""

    @abstractmethod
    def list(self, user_id: Optional[str] = None) -> List[FlaggedEntryRecord]:
        """Return records, oldest first, optionally for one user."""


class InMemoryFlagRepository(FlagRepository):
    """Dict-backed repository for local development and tests."""

    def __init__(self):
        self._records: Dict[str, FlaggedEntryRecord] = {}

    def add(self, record: FlaggedEntryRecord) -> None:
        self._records[record.flag_id] = record

    def mark_dismissed(self, flag_id: str) -> FlaggedEntryRecord:
        record = self._records.get(flag_id)
        if record is None:
            raise FlagNotFoundError(f"Flag not found: {flag_id}")
        record.dismissed = True
        return record

    def get(self, flag_id: str) -> Optional[FlaggedEntryRecord]:
        return self._records.get(flag_id)

    def list(self, user_id: Optional[str] = None) -> List[FlaggedEntryRecord]:
        records = sorted(self._records.values(), key=lambda r: r.timestamp)
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return records


class DynamoFlagRepository(FlagRepository):
    """DynamoDB-backed repository.

    Table schema: partition key flag_id (S). Listings use a scan filtered
    client-side; the flag volume is small and reviewed by hand.
    """

    def __init__(
        self,
        table_name: str = "dailyvoices-flagged-entries",
        region: Optional[str] = None,
    ):
        """Initialize repository.

        Args:
            table_name: DynamoDB table name
            region: AWS region (defaults to AWS_REGION env var)
        """
        self.table_name = table_name
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._dynamodb_client = None

        logger.info(
            "FLAG_REPOSITORY_INITIALIZED",
            extra={
                "backend": "dynamodb",
                "table_name": table_name,
                "region": self.region,
            }
        )

    @property
    def dynamodb_client(self):
        """Lazy initialization of the DynamoDB client."""
        if self._dynamodb_client is None:
            import boto3
            self._dynamodb_client = boto3.client(
                "dynamodb",
                region_name=self.region,
            )
        return self._dynamodb_client

    def add(self, record: FlaggedEntryRecord) -> None:
        try:
            self.dynamodb_client.put_item(
                TableName=self.table_name,
                Item=self._to_item(record),
                ConditionExpression="attribute_not_exists(flag_id)",
            )
        except Exception as e:
            logger.error(
                "DYNAMODB_PUT_FAILED",
                extra={"flag_id": record.flag_id, "error": str(e)}
            )
            raise AuditWriteError(f"Failed to store flag {record.flag_id}: {e}")

    def mark_dismissed(self, flag_id: str) -> FlaggedEntryRecord:
        try:
            response = self.dynamodb_client.update_item(
                TableName=self.table_name,
                Key={"flag_id": {"S": flag_id}},
                UpdateExpression="SET dismissed = :dismissed",
                ConditionExpression="attribute_exists(flag_id)",
                ExpressionAttributeValues={":dismissed": {"BOOL": True}},
                ReturnValues="ALL_NEW",
            )
        except Exception as e:
            if _is_conditional_check_failure(e):
                raise FlagNotFoundError(f"Flag not found: {flag_id}")
            logger.error(
                "DYNAMODB_UPDATE_FAILED",
                extra={"flag_id": flag_id, "error": str(e)}
            )
            raise AuditWriteError(f"Failed to dismiss flag {flag_id}: {e}")
        return self._from_item(response["Attributes"])

    def get(self, flag_id: str) -> Optional[FlaggedEntryRecord]:
        try:
            response = self.dynamodb_client.get_item(
                TableName=self.table_name,
                Key={"flag_id": {"S": flag_id}},
            )
        except Exception as e:
            raise RepositoryError(f"Failed to read flag {flag_id}: {e}")
        item = response.get("Item")
        return self._from_item(item) if item else None

    def list(self, user_id: Optional[str] = None) -> List[FlaggedEntryRecord]:
        kwargs = {"TableName": self.table_name}
        if user_id is not None:
            kwargs["FilterExpression"] = "user_id = :user_id"
            kwargs["ExpressionAttributeValues"] = {":user_id": {"S": user_id}}

        records = []
        try:
            while True:
                response = self.dynamodb_client.scan(**kwargs)
                records.extend(self._from_item(item) for item in response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except Exception as e:
            raise RepositoryError(f"Failed to list flags: {e}")
        return sorted(records, key=lambda r: r.timestamp)

    def _to_item(self, record: FlaggedEntryRecord) -> Dict[str, dict]:
        data = record.to_dict()
        item = {
            "flag_id": {"S": data["flag_id"]},
            "user_id": {"S": data["user_id"]},
            "entry_id": {"S": data["entry_id"]},
            "timestamp": {"S": data["timestamp"]},
            "matched_keywords": {"L": [{"S": k} for k in data["matched_keywords"]]},
            "dismissed": {"BOOL": data["dismissed"]},
        }
        if data["surface"]:
            item["surface"] = {"S": data["surface"]}
        return item

    def _from_item(self, item: Dict[str, dict]) -> FlaggedEntryRecord:
        return FlaggedEntryRecord.from_dict({
            "flag_id": item["flag_id"]["S"],
            "user_id": item["user_id"]["S"],
            "entry_id": item["entry_id"]["S"],
            "timestamp": item["timestamp"]["S"],
            "matched_keywords": [k["S"] for k in item.get("matched_keywords", {}).get("L", [])],
            "dismissed": item.get("dismissed", {}).get("BOOL", False),
            "surface": item.get("surface", {}).get("S"),
        })


def _is_conditional_check_failure(error: Exception) -> bool:
    response = getattr(error, "response", None) or {}
    return response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def repository_from_env() -> FlagRepository:
    """Build the backend named by FLAG_STORE ("memory" or "dynamodb")."""
    backend = os.getenv("FLAG_STORE", "memory").lower()
    if backend == "dynamodb":
        return DynamoFlagRepository(
            table_name=os.getenv("FLAG_TABLE_NAME", "dailyvoices-flagged-entries"),
        )
    if backend != "memory":
        logger.warning(
            "FLAG_STORE_UNKNOWN",
            extra={"flag_store": backend, "fallback": "memory"}
        )
    return InMemoryFlagRepository()
