"""Tests for per-user search settings."""

import pytest

from synergy_backend.models import RarityOption, SkinToneOption
from synergy_backend.services.search_state import FilterOptions, SearchState, SearchStateStore


class TestSearchState:
    """In-memory state transitions."""

    def test_defaults(self):
        state = SearchState()
        assert state.synergy_level == 2
        assert state.selected_skin_tones == []
        assert state.filter_options == FilterOptions(all_nfts=True, on_sale_only=False)

    def test_toggle_adds_then_removes(self):
        state = SearchState()
        state.toggle_skin_tone("Martian")
        state.toggle_rarity("Epic")
        assert state.selected_skin_tones == ["Martian"]
        assert state.selected_rarities == ["Epic"]
        state.toggle_skin_tone("Martian")
        assert state.selected_skin_tones == []

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            SearchState().set_level(5)

    def test_apply_to_marks_selected_options(self):
        state = SearchState(selected_skin_tones=["Zombie"], selected_rarities=["Epic"])
        tones = [SkinToneOption(name="Martian"), SkinToneOption(name="Zombie")]
        rarities = [RarityOption(name="Epic"), RarityOption(name="Common")]
        state.apply_to(tones, rarities)
        assert [t.selected for t in tones] == [False, True]
        assert [r.selected for r in rarities] == [True, False]

    def test_record_search(self):
        state = SearchState()
        state.record_search(12)
        assert state.last_results_count == 12
        assert state.last_search is not None

    def test_from_dict_tolerates_bad_level(self):
        state = SearchState.from_dict({"synergyLevel": 9, "selectedSkinTones": ["Martian"]})
        assert state.synergy_level == 2
        assert state.selected_skin_tones == ["Martian"]

    def test_dict_round_trip(self):
        state = SearchState(synergy_level=3, selected_rarities=["Common"])
        state.filter_options.on_sale_only = True
        assert SearchState.from_dict(state.to_dict()) == state


class TestSearchStateStore:
    """File-backed persistence keyed by user id."""

    def test_missing_user_gets_defaults(self, tmp_path):
        store = SearchStateStore(tmp_path / "state.json")
        assert store.load("1") == SearchState()

    def test_save_and_load(self, tmp_path):
        store = SearchStateStore(tmp_path / "state.json")
        state = SearchState(synergy_level=3, selected_skin_tones=["Martian"])
        store.save("1", state)

        assert store.load("1") == state
        assert store.load("2") == SearchState()

    def test_reset(self, tmp_path):
        store = SearchStateStore(tmp_path / "state.json")
        store.save("1", SearchState(synergy_level=3))
        store.reset("1")
        assert store.load("1").synergy_level == 2

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("not json", encoding="utf-8")
        store = SearchStateStore(path)
        assert store.load("1") == SearchState()
        store.save("1", SearchState(synergy_level=3))
        assert store.load("1").synergy_level == 3

    def test_uses_data_dir_by_default(self, data_dir):
        store = SearchStateStore()
        store.save("1", SearchState())
        assert (data_dir / "synergy_user_state.json").exists()
