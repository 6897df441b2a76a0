"""Tests for TriggerBridge and SafetySignal."""
import pytest

from dailyvoices.shared.models import ContentSurface, Language
from dailyvoices.services.safety_service.detector import DetectionResult, SafetyDetector
from dailyvoices.services.safety_service.trigger_bridge import (
    EscalationEvent,
    MonitoredField,
    SafetySignal,
    TriggerBridge,
    merge_results,
)


@pytest.fixture
def signal():
    return SafetySignal()


@pytest.fixture
def events(signal):
    received = []
    signal.subscribe(received.append)
    return received


@pytest.fixture
def bridge(signal):
    return TriggerBridge(SafetyDetector(), signal, language="en")


class TestFieldMonitoring:
    def test_safe_change_publishes_nothing(self, bridge, events):
        result = bridge.on_change(MonitoredField.JOURNAL_BODY, "I had a great day today")

        assert result.matched is False
        assert events == []

    def test_trigger_publishes_one_event(self, bridge, events):
        bridge.on_change(MonitoredField.CHAT_MESSAGE, "I want to die")

        assert len(events) == 1
        assert events[0].field == MonitoredField.CHAT_MESSAGE
        assert events[0].surface == ContentSurface.CHAT
        assert "want to die" in events[0].matched_phrases

    @pytest.mark.parametrize("field", list(MonitoredField))
    def test_every_field_reaches_the_same_signal(self, bridge, events, field):
        bridge.on_change(field, "feeling hopeless")

        assert len(events) == 1
        assert events[0].matched_phrases == ("hopeless",)

    def test_each_keystroke_is_scanned(self, bridge, events):
        for draft in ["I want", "I want to", "I want to di", "I want to die"]:
            bridge.on_change(MonitoredField.JOURNAL_TITLE, draft)

        assert len(events) == 1
        assert bridge.value(MonitoredField.JOURNAL_TITLE) == "I want to die"

    def test_language_switch(self, bridge, events):
        bridge.set_language("ja")
        bridge.on_change(MonitoredField.COMMUNITY_POST_BODY, "もう死にたい")

        assert events[0].language == Language.JA
        assert events[0].matched_phrases == ("死にたい",)


class TestScanFields:
    def test_title_and_body_merged_in_lexicon_order(self, bridge):
        bridge.on_change(MonitoredField.JOURNAL_TITLE, "want to die")
        bridge.on_change(MonitoredField.JOURNAL_BODY, "I just want to give up")

        result = bridge.scan_fields(ContentSurface.JOURNAL)

        assert result.matched is True
        assert result.matched_phrases == ("die", "give up", "want to die")

    def test_other_surfaces_ignored(self, bridge):
        bridge.on_change(MonitoredField.CHAT_MESSAGE, "I want to die")
        bridge.on_change(MonitoredField.JOURNAL_BODY, "a calm evening")

        assert bridge.scan_fields(ContentSurface.JOURNAL).matched is False

    def test_clear_surface(self, bridge):
        bridge.on_change(MonitoredField.JOURNAL_BODY, "hopeless")
        bridge.on_change(MonitoredField.CHAT_MESSAGE, "hopeless")

        bridge.clear(ContentSurface.JOURNAL)

        assert bridge.value(MonitoredField.JOURNAL_BODY) == ""
        assert bridge.value(MonitoredField.CHAT_MESSAGE) == "hopeless"

    def test_clear_all(self, bridge):
        bridge.on_change(MonitoredField.CHAT_MESSAGE, "hopeless")
        bridge.clear()
        assert bridge.scan_fields(ContentSurface.CHAT).matched is False


class TestSafetySignal:
    def test_unsubscribe(self, signal):
        received = []
        unsubscribe = signal.subscribe(received.append)
        unsubscribe()

        signal.publish(EscalationEvent(matched_phrases=("die",)))

        assert received == []
        assert signal.listener_count == 0

    def test_failing_listener_does_not_block_others(self, signal):
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        signal.subscribe(broken)
        signal.subscribe(received.append)
        signal.publish(EscalationEvent(matched_phrases=("die",)))

        assert len(received) == 1
        assert signal.latest.matched_phrases == ("die",)


class TestMergeResults:
    def test_failure_propagates(self):
        merged = merge_results(
            [
                DetectionResult(matched=False),
                DetectionResult(matched=True, failed=True),
            ],
            Language.EN,
        )

        assert merged.matched is True
        assert merged.failed is True

    def test_empty(self):
        assert merge_results([], Language.EN).matched is False
