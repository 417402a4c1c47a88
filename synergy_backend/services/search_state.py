"""
Per-user search settings.

Keeps what a user picked in the selector between interactions:

- synergy level (threshold 2 or 3)
- selected skin tones and rarity tiers
- result filter options ("all NFTs" / "on sale only")
- when the last search ran and how many NFTs it found

State is persisted in ``synergy_user_state.json`` keyed by user id. Writes for
the same user are last-write-wins; users never share state.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from synergy_backend.config.logger import app_logger
from synergy_backend.config.settings import settings
from synergy_backend.models import RarityOption, SkinToneOption
from synergy_backend.services.match_engine import SYNERGY_OPTIONS
from synergy_backend.utils.json_files import read_json, write_json


@dataclass
class FilterOptions:
    all_nfts: bool = True
    on_sale_only: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"allNfts": self.all_nfts, "onSaleOnly": self.on_sale_only}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FilterOptions":
        data = data or {}
        return cls(
            all_nfts=bool(data.get("allNfts", True)),
            on_sale_only=bool(data.get("onSaleOnly", False)),
        )


@dataclass
class SearchState:
    """Selection state of one user."""

    synergy_level: int = 2
    selected_skin_tones: List[str] = field(default_factory=list)
    selected_rarities: List[str] = field(default_factory=list)
    filter_options: FilterOptions = field(default_factory=FilterOptions)
    last_search: Optional[str] = None
    last_results_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synergyLevel": self.synergy_level,
            "selectedSkinTones": list(self.selected_skin_tones),
            "selectedRarities": list(self.selected_rarities),
            "filterOptions": self.filter_options.to_dict(),
            "lastSearch": self.last_search,
            "lastResultsCount": self.last_results_count,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SearchState":
        if not isinstance(data, dict):
            return cls()
        level = data.get("synergyLevel", 2)
        return cls(
            synergy_level=level if level in SYNERGY_OPTIONS else 2,
            selected_skin_tones=[str(t) for t in data.get("selectedSkinTones") or []],
            selected_rarities=[str(r) for r in data.get("selectedRarities") or []],
            filter_options=FilterOptions.from_dict(data.get("filterOptions")),
            last_search=data.get("lastSearch"),
            last_results_count=int(data.get("lastResultsCount") or 0),
        )

    def apply_to(self, skin_tones: List[SkinToneOption], rarities: List[RarityOption]) -> None:
        """Mark catalog options as selected according to this state."""
        for tone in skin_tones:
            tone.selected = tone.name in self.selected_skin_tones
        for rarity in rarities:
            rarity.selected = rarity.name in self.selected_rarities

    def toggle_skin_tone(self, name: str) -> None:
        _toggle(self.selected_skin_tones, name)

    def toggle_rarity(self, name: str) -> None:
        _toggle(self.selected_rarities, name)

    def set_level(self, level: int) -> None:
        if level not in SYNERGY_OPTIONS:
            raise ValueError(f"synergy level must be one of {SYNERGY_OPTIONS}")
        self.synergy_level = level

    def record_search(self, found: int) -> None:
        self.last_search = datetime.now(timezone.utc).isoformat()
        self.last_results_count = found


def _toggle(items: List[str], name: str) -> None:
    if name in items:
        items.remove(name)
    else:
        items.append(name)


class SearchStateStore:
    """File-backed store of every user's SearchState."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path or settings.user_state_path

    def _read_all(self) -> Dict[str, Any]:
        try:
            data = read_json(self.path)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            app_logger.error(f"User state file is corrupt, starting fresh: {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, user_id: str) -> SearchState:
        """State of ``user_id``, or the defaults when nothing is saved."""
        with self._lock:
            return SearchState.from_dict(self._read_all().get(str(user_id)))

    def save(self, user_id: str, state: SearchState) -> None:
        with self._lock:
            all_states = self._read_all()
            all_states[str(user_id)] = state.to_dict()
            write_json(self.path, all_states)
        app_logger.debug(f"Saved search state for user {user_id}")

    def reset(self, user_id: str) -> SearchState:
        state = SearchState()
        self.save(user_id, state)
        return state


_store = SearchStateStore()


def load_state(user_id: str) -> SearchState:
    """Load a user's search settings."""
    return _store.load(user_id)


def save_state(user_id: str, state: SearchState) -> None:
    """Persist a user's search settings."""
    _store.save(user_id, state)
