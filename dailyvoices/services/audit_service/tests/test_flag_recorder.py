"""Tests for FlagRecorder."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from dailyvoices.shared.errors import AuditWriteError, FlagNotFoundError, RepositoryError
from dailyvoices.shared.models import ContentSurface
from dailyvoices.shared.utils import configure_pii_salt
from dailyvoices.services.audit_service.flag_recorder import FlagRecorder
from dailyvoices.services.audit_service.flag_repository import (
    FlagRepository,
    InMemoryFlagRepository,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def repository():
    return InMemoryFlagRepository()


@pytest.fixture
def recorder(repository):
    return FlagRecorder(repository=repository)


class TestRecordFlag:
    def test_record_creates_record(self, recorder):
        flag_id = recorder.record_flag(
            user_id="user_123",
            entry_id="journal_456",
            matched_keywords=["give up", "want to die"],
            surface=ContentSurface.JOURNAL,
        )

        record = recorder.get_flag(flag_id)
        assert flag_id.startswith("flag_")
        assert record.user_id == "user_123"
        assert record.entry_id == "journal_456"
        assert record.matched_keywords == ["give up", "want to die"]
        assert record.surface == ContentSurface.JOURNAL
        assert record.dismissed is False
        assert isinstance(record.timestamp, datetime)

    def test_ids_are_unique(self, recorder):
        ids = {recorder.record_flag("user_1", "entry_1", ["die"]) for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize("user_id,entry_id,keywords", [
        ("", "entry_1", ["die"]),
        ("user_1", "", ["die"]),
        ("user_1", "entry_1", []),
        ("user_1", "entry_1", [""]),
    ])
    def test_invalid_input(self, recorder, user_id, entry_id, keywords):
        with pytest.raises(ValueError):
            recorder.record_flag(user_id, entry_id, keywords)

    def test_backend_failure_raises_audit_write_error(self):
        repository = MagicMock(spec=FlagRepository)
        repository.add.side_effect = RepositoryError("connection reset")
        recorder = FlagRecorder(repository=repository)

        with pytest.raises(AuditWriteError):
            recorder.record_flag("user_1", "entry_1", ["die"])

    def test_record_never_logs_raw_user_id(self, recorder, caplog):
        caplog.set_level("INFO")
        recorder.record_flag("user_secret_42", "entry_1", ["hopeless"])

        assert "FLAG_RECORDED" in caplog.text
        for record in caplog.records:
            assert "user_secret_42" not in str(record.__dict__)


class TestDismissFlag:
    def test_dismiss(self, recorder):
        flag_id = recorder.record_flag("user_1", "entry_1", ["die"])

        recorder.dismiss_flag(flag_id)

        assert recorder.get_flag(flag_id).dismissed is True

    def test_dismiss_twice(self, recorder):
        flag_id = recorder.record_flag("user_1", "entry_1", ["die"])
        recorder.dismiss_flag(flag_id)
        recorder.dismiss_flag(flag_id)

        assert recorder.get_flag(flag_id).dismissed is True

    def test_dismiss_unknown(self, recorder):
        with pytest.raises(FlagNotFoundError):
            recorder.dismiss_flag("flag_missing")

    def test_get_unknown(self, recorder):
        with pytest.raises(FlagNotFoundError):
            recorder.get_flag("flag_missing")


class TestListing:
    def test_list_by_user(self, recorder):
        recorder.record_flag("user_1", "entry_1", ["die"])
        recorder.record_flag("user_2", "entry_2", ["hopeless"])

        records = recorder.list_flags(user_id="user_1")

        assert [r.entry_id for r in records] == ["entry_1"]

    def test_exclude_dismissed(self, recorder):
        first = recorder.record_flag("user_1", "entry_1", ["die"])
        recorder.record_flag("user_1", "entry_2", ["die"])
        recorder.dismiss_flag(first)

        open_flags = recorder.list_flags(include_dismissed=False)

        assert [r.entry_id for r in open_flags] == ["entry_2"]
        assert len(recorder.list_flags()) == 2

    def test_flagged_users(self, recorder, repository):
        first = recorder.record_flag("user_1", "entry_1", ["die"])
        recorder.record_flag("user_1", "entry_2", ["die"])
        recorder.record_flag("user_2", "entry_3", ["hopeless"])
        recorder.dismiss_flag(first)
        # Make user_1 the most recently flagged
        repository.get(first).timestamp = datetime.utcnow() + timedelta(minutes=5)

        summaries = recorder.list_flagged_users()

        assert [s.user_id for s in summaries] == ["user_1", "user_2"]
        assert summaries[0].flag_count == 2
        assert summaries[0].open_count == 1
        assert summaries[1].to_dict()["flag_count"] == 1

    def test_no_flags(self, recorder):
        assert recorder.list_flagged_users() == []
