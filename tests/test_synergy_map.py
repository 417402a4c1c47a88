"""
Tests for synergy map derivation.

Covers:
- Root extraction (prefix rule, capitalization, whole-token comparison)
- Map construction and exception handling
- Pruning of single-attribute roots
- Text export and statistics
- Rebuilding the persisted artifact
"""

import json

import pytest

from synergy_backend.config.settings import settings
from synergy_backend.services.errors import MissingSourceDataError
from synergy_backend.services.synergy_map import (
    SynergyExceptions,
    apply_exceptions,
    build_map,
    build_synergy_map,
    derive_synergy_map,
    extract_roots,
    load_exceptions,
    load_synergy_map,
    map_stats,
    render_text_map,
)
from sample_data import ATTRIBUTES_POWER, SYNERGY_MAP, write_json


class TestExtractRoots:
    """Root extraction from attribute names."""

    def test_derived_token_folds_into_shorter_root(self):
        roots = extract_roots(["Gold Cape", "Golden Crown"])
        assert "Gold" in roots
        assert "Golden" not in roots

    def test_old_is_not_a_prefix_of_gold(self):
        roots = extract_roots(["Gold Cape", "Old Boots"])
        assert "Old" in roots
        assert "Gold" in roots

    def test_length_difference_above_three_is_a_new_root(self):
        roots = extract_roots(["Iron Axe", "Ironclad Staff"])
        assert "Iron" in roots
        assert "Ironclad" in roots

    def test_lowercase_tokens_are_ignored(self):
        roots = extract_roots(["Cape of gold", "Staff"])
        assert roots == ["Cape", "Staff"]

    def test_roots_are_sorted(self):
        roots = extract_roots(["Zeta Alpha", "Beta"])
        assert roots == sorted(roots)

    def test_empty_input(self):
        assert extract_roots([]) == []


class TestBuildMap:
    """Associating attribute names with roots."""

    def test_every_root_is_a_key(self):
        synergy_map = build_map(["Gold", "Old"], ["Gold Cape", "Golden Crown"])
        assert synergy_map == {"Gold": ["Gold Cape", "Golden Crown"], "Old": []}

    def test_name_listed_once_per_root(self):
        synergy_map = build_map(["Gold"], ["Gold Golden Cape"])
        assert synergy_map["Gold"] == ["Gold Golden Cape"]

    def test_single_character_tokens_are_skipped(self):
        synergy_map = build_map(["A"], ["A Cape", "Axe"])
        assert synergy_map["A"] == ["Axe"]


class TestApplyExceptions:
    """Curated additions and removals."""

    def test_additions_then_removals_then_pruning(self):
        base = {"Gold": ["Gold Cape", "Golden Crown"], "Old": ["Old Boots"]}
        exceptions = {
            "add": {"Old": ["Bold Hat"], "Gold": ["Marigold"]},
            "remove": {"Gold": ["Golden Crown"]},
        }
        result = apply_exceptions(base, exceptions)
        assert result == {"Gold": ["Gold Cape", "Marigold"], "Old": ["Bold Hat", "Old Boots"]}

    def test_single_attribute_roots_are_dropped(self):
        result = apply_exceptions({"Gold": ["Gold Cape"], "Iron": ["Iron Axe", "Iron Shield"]}, None)
        assert list(result) == ["Iron"]

    def test_input_is_not_mutated(self):
        base = {"Gold": ["Golden Crown", "Gold Cape"]}
        apply_exceptions(base, {"add": {"Gold": ["Gold Sword"]}})
        assert base == {"Gold": ["Golden Crown", "Gold Cape"]}

    def test_malformed_sections_count_as_empty(self):
        exceptions = SynergyExceptions.from_source({"add": "oops", "remove": None})
        assert exceptions.is_empty

    def test_string_value_is_a_single_name(self):
        exceptions = SynergyExceptions.from_source({"add": {"Gold": "Gilded Cup"}})
        assert exceptions.add == {"Gold": ["Gilded Cup"]}


class TestDeriveSynergyMap:
    """End-to-end derivation."""

    def test_collection_example(self):
        names = [
            "Martian", "Zombie", "Gold Cape", "Golden Crown", "Old Boots",
            "Iron Shield", "Gold Sword", "Iron Axe", "Ironclad Staff",
        ]
        assert derive_synergy_map(names) == SYNERGY_MAP

    def test_derivation_is_idempotent(self):
        names = ["Gold Cape", "Golden Crown", "Iron Axe", "Iron Shield"]
        assert derive_synergy_map(names) == derive_synergy_map(list(names))

    def test_every_value_has_more_than_one_attribute(self):
        names = ["Gold Cape", "Golden Crown", "Old Boots", "Red Hat", "Red Scarf"]
        result = derive_synergy_map(names)
        assert all(len(values) > 1 for values in result.values())


class TestTextAndStats:
    """Human-readable export and statistics."""

    def test_text_line_format(self):
        text = render_text_map({"Gold": ["Gold Cape", "Golden Crown"]})
        assert text == "Gold {Gold Cape, Golden Crown}\n"

    def test_map_stats(self):
        stats = map_stats(SYNERGY_MAP)
        assert stats["total_words"] == 2
        assert stats["total_attribute_mentions"] == 6
        assert stats["unique_attributes"] == 6
        assert stats["average_attributes_per_word"] == 3.0
        assert stats["size_distribution"] == {3: 2}

    def test_map_stats_on_empty_map(self):
        stats = map_stats({})
        assert stats["total_words"] == 0
        assert stats["average_attributes_per_word"] == 0.0


class TestPersistence:
    """Rebuilding and loading the persisted artifact."""

    def test_rebuild_writes_json_and_text(self, data_dir):
        write_json(settings.attributes_power_path, ATTRIBUTES_POWER)

        build = build_synergy_map()

        assert build.synergy_map == SYNERGY_MAP
        assert json.loads(settings.synergy_map_path.read_text(encoding="utf-8")) == SYNERGY_MAP
        assert settings.synergy_text_path.read_text(encoding="utf-8").startswith("Gold {")
        assert build.diagnostics.synergy_count == 2

    def test_rebuild_applies_exceptions_file(self, data_dir):
        write_json(settings.attributes_power_path, ATTRIBUTES_POWER)
        write_json(settings.synergy_exceptions_path, {"remove": {"Iron": ["Iron Axe", "Iron Shield"]}})

        build = build_synergy_map()

        assert "Iron" not in build.synergy_map
        assert build.diagnostics.exceptions_removed == {"Iron": 2}

    def test_rebuild_without_catalog_raises(self, data_dir):
        with pytest.raises(MissingSourceDataError):
            build_synergy_map()
        assert not settings.synergy_map_path.exists()

    def test_missing_map_loads_empty(self, data_dir):
        assert load_synergy_map() == {}

    def test_corrupt_map_loads_empty(self, data_dir):
        settings.synergy_map_path.write_text("{not json", encoding="utf-8")
        assert load_synergy_map() == {}

    def test_corrupt_exceptions_mean_none(self, data_dir):
        settings.synergy_exceptions_path.write_text("[", encoding="utf-8")
        assert load_exceptions().is_empty
