"""Tests for crisis resource resolution."""
import json
from dataclasses import FrozenInstanceError

import pytest

from dailyvoices.shared.errors import UnsupportedRegionError
from dailyvoices.shared.models import Language
from dailyvoices.services.safety_service.resources import (
    CRISIS_RESOURCES,
    CrisisResourceResolver,
    language_for_region,
    load_resource_table,
    normalize_region_code,
)


@pytest.fixture
def resolver():
    return CrisisResourceResolver()


class TestResolve:
    def test_japan(self, resolver):
        resource = resolver.resolve("JP")

        assert resource.region_code == "JP"
        assert resource.hotline_number == "0570-783-556"
        assert resource.display_name

    def test_united_states(self, resolver):
        assert resolver.resolve("US").hotline_number == "988"

    def test_case_insensitive(self, resolver):
        assert resolver.resolve("jp") == resolver.resolve("JP")
        assert resolver.resolve(" gb ") == resolver.resolve("GB")

    @pytest.mark.parametrize("region_code", ["ZZ", "", None, "USA", "1", 42])
    def test_unknown_falls_back_to_default(self, resolver, region_code):
        resource = resolver.resolve(region_code)

        assert resource.region_code == "US"
        assert resource.hotline_number == "988"

    def test_every_resource_complete(self):
        for code, resource in CRISIS_RESOURCES.items():
            assert resource.region_code == code
            assert resource.display_name
            assert resource.hotline_number
            assert resource.text_instruction
            assert resource.chat_url.startswith("https://")

    def test_custom_default_region(self):
        resolver = CrisisResourceResolver(default_region="GB")
        assert resolver.resolve("ZZ").display_name == "Samaritans"

    def test_strict_lookup(self, resolver):
        assert resolver.lookup("jp").region_code == "JP"
        with pytest.raises(UnsupportedRegionError):
            resolver.lookup("ZZ")

    def test_default_region_must_exist(self):
        with pytest.raises(ValueError):
            CrisisResourceResolver(table={}, default_region="US")


class TestCrisisResource:
    def test_dial_uri_strips_formatting(self):
        assert CRISIS_RESOURCES["JP"].dial_uri == "tel:0570783556"
        assert CRISIS_RESOURCES["GB"].dial_uri == "tel:116123"

    def test_to_dict_uses_table_keys(self):
        data = CRISIS_RESOURCES["US"].to_dict()

        assert data["regionCode"] == "US"
        assert data["hotlineNumber"] == "988"
        assert set(data) == {
            "regionCode", "displayName", "hotlineNumber",
            "textInstruction", "chatUrl", "description",
        }

    def test_as_table_round_trips_through_loader(self, resolver, tmp_path):
        path = tmp_path / "resources.json"
        path.write_text(json.dumps(resolver.as_table()), encoding="utf-8")

        table = load_resource_table(path)

        assert table["JP"] == CRISIS_RESOURCES["JP"]
        assert set(table) == set(CRISIS_RESOURCES)


class TestLoadResourceTable:
    def test_replacement_table(self, tmp_path):
        path = tmp_path / "resources.json"
        path.write_text(json.dumps({
            "us": {
                "displayName": "Test Line",
                "hotlineNumber": "555-0100",
                "textInstruction": "Text TEST",
                "chatUrl": "https://example.org/chat",
                "description": "Test resource",
            },
        }), encoding="utf-8")

        resolver = CrisisResourceResolver(table=load_resource_table(path))

        assert resolver.supported_regions() == ("US",)
        assert resolver.resolve("JP").display_name == "Test Line"

    def test_incomplete_entry_rejected(self, tmp_path):
        path = tmp_path / "resources.json"
        path.write_text(json.dumps({"US": {"displayName": "Partial"}}), encoding="utf-8")

        with pytest.raises(ValueError, match="Incomplete"):
            load_resource_table(path)

    def test_missing_default_rejected(self, tmp_path):
        path = tmp_path / "resources.json"
        entry = CRISIS_RESOURCES["JP"].to_dict()
        del entry["regionCode"]
        path.write_text(json.dumps({"JP": entry}), encoding="utf-8")

        with pytest.raises(ValueError, match="must include US"):
            load_resource_table(path)


class TestRegionHelpers:
    @pytest.mark.parametrize("value,expected", [
        ("jp", "JP"),
        (" US ", "US"),
        (None, "US"),
        ("", "US"),
        ("J1", "US"),
        ("Japan", "US"),
    ])
    def test_normalize_region_code(self, value, expected):
        assert normalize_region_code(value) == expected

    def test_language_for_region(self):
        assert language_for_region("JP") == Language.JA
        assert language_for_region("US") == Language.EN
        assert language_for_region(None) == Language.EN

    def test_resource_is_immutable(self):
        resource = CRISIS_RESOURCES["US"]
        with pytest.raises(FrozenInstanceError):
            resource.hotline_number = "000"
