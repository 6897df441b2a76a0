"""Crisis resources by region.

A fixed table maps 2-letter region codes to a hotline record. Lookups
never fail: an unknown, empty or malformed code gets the default region's
record. The table is data and can be replaced from a JSON file of the
shape {regionCode: {displayName, hotlineNumber, textInstruction, chatUrl,
description}} without code changes.
"""
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dailyvoices.shared.errors import UnsupportedRegionError
from dailyvoices.shared.models import Language

logger = logging.getLogger(__name__)

DEFAULT_REGION = "US"

_REGION_CODE = re.compile(r"^[A-Z]{2}$")


@dataclass(frozen=True)
class CrisisResource:
    """Localized crisis-support contact information for one region."""
    region_code: str
    display_name: str
    hotline_number: str
    text_instruction: str
    chat_url: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to the camelCase shape used by the resource table."""
        return {
            "regionCode": self.region_code,
            "displayName": self.display_name,
            "hotlineNumber": self.hotline_number,
            "textInstruction": self.text_instruction,
            "chatUrl": self.chat_url,
            "description": self.description,
        }

    @property
    def dial_uri(self) -> str:
        """tel: URI for the hotline number."""
        return "tel:" + re.sub(r"[^0-9+]", "", self.hotline_number)


CRISIS_RESOURCES: Mapping[str, CrisisResource] = MappingProxyType({
    "US": CrisisResource(
        region_code="US",
        display_name="988 Suicide & Crisis Lifeline",
        hotline_number="988",
        text_instruction="Text HOME to 741741",
        chat_url="https://988lifeline.org/chat/",
        description="Free, confidential support 24/7 by call, text or chat.",
    ),
    "JP": CrisisResource(
        region_code="JP",
        display_name="いのちの電話 (Inochi no Denwa)",
        hotline_number="0570-783-556",
        text_instruction="LINEで「あなたのいばしょ」に相談できます",
        chat_url="https://talkme.jp/",
        description="つらい気持ちを一人で抱えずに、相談してください。",
    ),
    "CA": CrisisResource(
        region_code="CA",
        display_name="9-8-8 Suicide Crisis Helpline",
        hotline_number="988",
        text_instruction="Text 988",
        chat_url="https://988.ca/",
        description="Support in English and French, 24/7.",
    ),
    "GB": CrisisResource(
        region_code="GB",
        display_name="Samaritans",
        hotline_number="116 123",
        text_instruction="Text SHOUT to 85258",
        chat_url="https://www.samaritans.org/how-we-can-help/contact-samaritan/",
        description="Free to call from any phone, day or night.",
    ),
    "IE": CrisisResource(
        region_code="IE",
        display_name="Samaritans Ireland",
        hotline_number="116 123",
        text_instruction="Text HELLO to 50808",
        chat_url="https://www.samaritans.org/ireland/",
        description="Free to call from any phone, day or night.",
    ),
    "AU": CrisisResource(
        region_code="AU",
        display_name="Lifeline Australia",
        hotline_number="13 11 14",
        text_instruction="Text 0477 13 11 14",
        chat_url="https://www.lifeline.org.au/crisis-chat/",
        description="Crisis support and suicide prevention, 24/7.",
    ),
    "NZ": CrisisResource(
        region_code="NZ",
        display_name="1737, Need to Talk?",
        hotline_number="1737",
        text_instruction="Text 1737",
        chat_url="https://1737.org.nz/",
        description="Talk with a trained counsellor any time.",
    ),
    "IN": CrisisResource(
        region_code="IN",
        display_name="Tele MANAS",
        hotline_number="14416",
        text_instruction="Call 1-800-891-4416",
        chat_url="https://telemanas.mohfw.gov.in/",
        description="National mental health helpline, 24/7.",
    ),
})

# Regions whose users get a non-default lexicon automatically
_REGION_LANGUAGES: Mapping[str, Language] = MappingProxyType({
    "JP": Language.JA,
})


def normalize_region_code(value: Optional[str]) -> str:
    """Turn a geolocation lookup result into a region code.

    A failed lookup (None, empty, not a 2-letter code) yields DEFAULT_REGION.
    """
    if not isinstance(value, str):
        return DEFAULT_REGION
    code = value.strip().upper()
    if not _REGION_CODE.match(code):
        return DEFAULT_REGION
    return code


def language_for_region(region_code: Optional[str]) -> Language:
    """Language to scan in for users located in a region."""
    return _REGION_LANGUAGES.get(normalize_region_code(region_code), Language.EN)


def load_resource_table(path: Union[str, Path]) -> Dict[str, CrisisResource]:
    """Load a crisis resource table from JSON.

    Raises:
        ValueError: If an entry is incomplete or DEFAULT_REGION is missing
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    table = {}
    for code, entry in raw.items():
        region_code = code.strip().upper()
        try:
            table[region_code] = CrisisResource(
                region_code=region_code,
                display_name=entry["displayName"],
                hotline_number=entry["hotlineNumber"],
                text_instruction=entry["textInstruction"],
                chat_url=entry["chatUrl"],
                description=entry["description"],
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Incomplete crisis resource for {code}: {e}")

    if DEFAULT_REGION not in table:
        raise ValueError(f"Crisis resource table must include {DEFAULT_REGION}")

    logger.info(
        "CRISIS_RESOURCE_TABLE_LOADED",
        extra={"path": str(path), "region_count": len(table)}
    )
    return table


class CrisisResourceResolver:
    """Resolves a region code to exactly one CrisisResource.

    Pure lookup, no network calls. Region detection happens elsewhere and
    only its result is passed in.
    """

    def __init__(
        self,
        table: Optional[Mapping[str, CrisisResource]] = None,
        default_region: str = DEFAULT_REGION,
    ):
        """Initialize resolver.

        Args:
            table: Region code to resource mapping (defaults to CRISIS_RESOURCES)
            default_region: Region whose resource is returned for unknown codes

        Raises:
            ValueError: If default_region is not in the table
        """
        self._table = MappingProxyType(dict(table if table is not None else CRISIS_RESOURCES))
        self.default_region = default_region.upper()
        if self.default_region not in self._table:
            raise ValueError(f"Default region {default_region} has no crisis resource")

    @property
    def default_resource(self) -> CrisisResource:
        return self._table[self.default_region]

    def lookup(self, region_code: str) -> CrisisResource:
        """Strict lookup.

        Raises:
            UnsupportedRegionError: If the table has no entry for region_code
        """
        code = region_code.strip().upper() if isinstance(region_code, str) else ""
        resource = self._table.get(code)
        if resource is None:
            raise UnsupportedRegionError(f"No crisis resource for region: {code[:8]}")
        return resource

    def resolve(self, region_code: Optional[str]) -> CrisisResource:
        """Return the resource for region_code, or the default resource."""
        try:
            return self.lookup(region_code)
        except UnsupportedRegionError:
            logger.info(
                "UNSUPPORTED_REGION_FALLBACK",
                extra={
                    "region_code": str(region_code)[:8],
                    "fallback_region": self.default_region,
                }
            )
            return self.default_resource

    def supported_regions(self) -> Tuple[str, ...]:
        return tuple(sorted(self._table))

    def as_table(self) -> Dict[str, Dict[str, Any]]:
        """Export in the external table format."""
        return {
            code: {k: v for k, v in resource.to_dict().items() if k != "regionCode"}
            for code, resource in self._table.items()
        }
