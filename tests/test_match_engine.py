"""
Tests for the match engine.

Covers:
- Threshold handling and monotonicity
- Skin tone and rarity filters
- Deterministic ordering and tie-breaks
- Empty inputs and partial records
- Summary statistics
"""

import copy

import pytest

from synergy_backend.services.attribute_catalog import AttributeCatalog
from synergy_backend.services.match_engine import (
    REASON_EMPTY_SYNERGY_MAP,
    REASON_NO_NFTS,
    UNKNOWN_RARITY,
    UNKNOWN_SKIN_TONE,
    score,
    summarize,
)
from synergy_backend.services.synergy_index import SynergyIndex, invert
from sample_data import ATTRIBUTES_POWER, NFTS, SYNERGY_MAP


RARITY_TABLE = AttributeCatalog.from_source(ATTRIBUTES_POWER).rarity_table


def run(threshold=2, skin_tones=None, rarities=None, nfts=None, synergy_map=None):
    index = SynergyIndex.from_map(SYNERGY_MAP if synergy_map is None else synergy_map)
    return score(NFTS if nfts is None else nfts, threshold, skin_tones, rarities, index, RARITY_TABLE)


def indices(outcome):
    return [result.nft.index for result in outcome.results]


class TestThreshold:
    """Threshold validation and monotonicity."""

    def test_level_two_keeps_every_pair(self):
        assert indices(run(2)) == [0, 1, 4]

    def test_level_three(self):
        outcome = run(3)
        assert indices(outcome) == [0]
        assert outcome.results[0].synergy_score == 3

    def test_higher_threshold_is_a_subset(self):
        assert set(indices(run(3))) <= set(indices(run(2)))

    @pytest.mark.parametrize("threshold", [0, 1, 4, "2"])
    def test_invalid_threshold_raises(self, threshold):
        with pytest.raises(ValueError):
            run(threshold)

    def test_score_never_exceeds_attribute_count(self):
        for result in run(2).results:
            assert result.synergy_score <= result.filtered_attributes_count


class TestFilters:
    """Skin tone and rarity filters."""

    def test_skin_tone_filter(self):
        outcome = run(2, skin_tones=["Martian"])
        assert indices(outcome) == [0]
        assert all(result.skin_tone == "Martian" for result in outcome.results)

    def test_unknown_skin_tone_matches_nothing(self):
        assert run(2, skin_tones=["Goblin"]).results == []

    def test_skin_tone_is_never_scored(self):
        synergy_map = {"Mar": ["Martian", "Mars Helmet"]}
        nfts = [{"index": 9, "attributes": [
            {"trait_type": "Skin Tone", "value": "Martian"},
            {"trait_type": "Head", "value": "Mars Helmet"},
        ]}]
        assert run(2, nfts=nfts, synergy_map=synergy_map).results == []

    def test_missing_skin_tone_is_reported(self):
        nfts = [{"index": 7, "attributes": [
            {"trait_type": "Clothing", "value": "Gold Cape"},
            {"trait_type": "Weapon", "value": "Gold Sword"},
        ]}]
        outcome = run(2, nfts=nfts)
        assert outcome.results[0].skin_tone == UNKNOWN_SKIN_TONE

    def test_rarity_filter_restricts_scored_attributes(self):
        outcome = run(2, rarities=["Epic", "Common"])
        assert indices(outcome) == [1, 4]
        assert all(result.best_synergy.synergy_name == "Iron" for result in outcome.results)
        assert outcome.results[0].rarity_filter_applied

    def test_attributes_without_tier_are_dropped_by_rarity_filter(self):
        synergy_map = {"Red": ["Red Hat", "Red Scarf"]}
        nfts = [{"index": 5, "attributes": [
            {"trait_type": "Head", "value": "Red Hat"},
            {"trait_type": "Neck", "value": "Red Scarf"},
        ]}]
        assert indices(run(2, nfts=nfts, synergy_map=synergy_map)) == [5]

        outcome = run(2, rarities=["Epic"], nfts=nfts, synergy_map=synergy_map)
        assert outcome.results == []
        assert outcome.filtered_out_by_rarity == 1

    def test_rarity_filter_can_exclude_everything(self):
        outcome = run(2, rarities=["Common"])
        assert outcome.results == []
        assert outcome.filtered_out_by_rarity > 0


class TestOrderingAndTieBreaks:
    """Deterministic results."""

    def test_sorted_by_score_descending_then_input_order(self):
        scores = [result.synergy_score for result in run(2).results]
        assert scores == sorted(scores, reverse=True)
        assert indices(run(2)) == [0, 1, 4]

    def test_equal_roots_keep_every_synergy(self):
        result = next(r for r in run(2).results if r.nft.index == 4)
        assert result.best_synergy.synergy_name == "Gold"
        assert set(result.all_synergies) == {"Gold", "Iron"}

    def test_equal_roots_first_discovered_wins(self):
        synergy_map = {"Xa": ["Xa One", "Xa Two"], "Yb": ["Yb One", "Yb Two"]}
        nfts = [{"index": 8, "attributes": [
            {"trait_type": "Head", "value": "Xa One"},
            {"trait_type": "Neck", "value": "Yb One"},
            {"trait_type": "Body", "value": "Yb Two"},
            {"trait_type": "Weapon", "value": "Xa Two"},
        ]}]
        result = run(2, nfts=nfts, synergy_map=synergy_map).results[0]
        assert result.best_synergy.synergy_name == "Xa"
        assert result.all_synergies["Yb"].count == 2

    def test_dominant_rarity_first_reached_wins(self):
        result = run(3).results[0]
        assert result.rarity == "Epic"

    def test_dominant_rarity_majority(self):
        result = next(r for r in run(2, rarities=["Epic", "Common"]).results if r.nft.index == 1)
        assert result.rarity == "Common"

    def test_unknown_rarity(self):
        synergy_map = {"Red": ["Red Hat", "Red Scarf"]}
        nfts = [{"index": 5, "attributes": [
            {"trait_type": "Head", "value": "Red Hat"},
            {"trait_type": "Neck", "value": "Red Scarf"},
        ]}]
        assert run(2, nfts=nfts, synergy_map=synergy_map).results[0].rarity == UNKNOWN_RARITY

    def test_repeated_runs_are_identical(self):
        first = [r.to_dict() for r in run(2).results]
        second = [r.to_dict() for r in run(2).results]
        assert first == second


class TestEdgeCases:
    """Empty inputs and malformed records."""

    def test_empty_synergy_map(self):
        outcome = run(2, synergy_map={})
        assert outcome.results == []
        assert outcome.reason == REASON_EMPTY_SYNERGY_MAP

    def test_no_nfts(self):
        outcome = run(2, nfts=[])
        assert outcome.results == []
        assert outcome.reason == REASON_NO_NFTS

    def test_partial_records_are_skipped(self):
        nfts = NFTS + ["not a record", {"index": "abc", "attributes": []}]
        outcome = run(2, nfts=nfts)
        assert indices(outcome) == [0, 1, 4]
        assert outcome.skipped_partial == 3

    def test_input_is_not_mutated(self):
        nfts = copy.deepcopy(NFTS)
        run(2, nfts=nfts)
        assert nfts == NFTS

    def test_plain_mapping_index(self):
        index = invert(SYNERGY_MAP)
        outcome = score(NFTS, 2, None, None, index, RARITY_TABLE)
        assert indices(outcome) == [0, 1, 4]


class TestSummary:
    """Distribution statistics of a result list."""

    def test_summary(self):
        summary = summarize(run(2).results)
        assert summary["totalFound"] == 3
        assert summary["synergyDistribution"] == {"level2": 2, "level3": 1, "level4plus": 0}
        assert summary["synergyDistributionByType"] == {"Gold": 2, "Iron": 1}
        assert sum(summary["rarityDistribution"].values()) == 3


class TestSynergyIndex:
    """Inverted attribute -> roots lookup."""

    def test_attribute_in_several_roots(self):
        index = SynergyIndex.from_map({"Gold": ["Gold Iron Ring"], "Iron": ["Gold Iron Ring", "Iron Axe"]})
        assert index.roots_for("Gold Iron Ring") == ["Gold", "Iron"]
        assert "Iron Axe" in index
        assert index.synergy_count == 2
        assert index.as_dict() == invert({"Gold": ["Gold Iron Ring"], "Iron": ["Gold Iron Ring", "Iron Axe"]})

    def test_empty(self):
        index = SynergyIndex({})
        assert index.is_empty
        assert index.roots_for("Gold Cape") == []
