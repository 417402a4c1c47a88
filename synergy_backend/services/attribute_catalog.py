"""
Attribute catalog: rarity tiers and skin tones of the collection.

Loads ``attributes_power_data.json``::

    {"attributes_power": {"attributes": {"<category>": {"<value>": "<tier>"}}}}

The "Skin Tone" category is kept apart from every other category: it feeds
the skin tone selector, while the remaining categories define the rarity
tiers offered as a filter.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from synergy_backend.config.logger import app_logger
from synergy_backend.config.settings import settings
from synergy_backend.models import SKIN_TONE_TRAIT, RarityOption, SkinToneOption
from synergy_backend.services.errors import MissingSourceDataError
from synergy_backend.utils.json_files import read_json


RARITY_ORDER = ["Mythical+", "Mythical", "Legendary", "Epic", "Common"]


def normalize_value(value: str) -> str:
    return value.lower().strip()


def order_rarities(tiers: List[str]) -> List[str]:
    """Sort tiers by RARITY_ORDER; unknown tiers follow in first-seen order."""
    known = [t for t in RARITY_ORDER if t in tiers]
    unknown = [t for t in tiers if t not in RARITY_ORDER]
    return known + unknown


@dataclass(frozen=True)
class AttributeCatalog:
    """Read-only view of the attribute power data."""

    attributes: Dict[str, Dict[str, str]] = field(default_factory=dict)

    @classmethod
    def from_source(cls, data: Any) -> "AttributeCatalog":
        """Build a catalog from the parsed source document.

        Raises ValueError when the ``attributes_power.attributes`` mapping is
        missing or is not a mapping of mappings.
        """
        attributes = None
        if isinstance(data, dict):
            power = data.get("attributes_power")
            if isinstance(power, dict):
                attributes = power.get("attributes")
        if not isinstance(attributes, dict):
            raise ValueError("attributes_power.attributes mapping not found")

        cleaned: Dict[str, Dict[str, str]] = {}
        for category, values in attributes.items():
            if not isinstance(values, dict):
                raise ValueError(f"category {category!r} is not a mapping")
            cleaned[category] = {str(name): str(tier) for name, tier in values.items()}
        return cls(attributes=cleaned)

    @property
    def skin_tone_values(self) -> Dict[str, str]:
        return self.attributes.get(SKIN_TONE_TRAIT, {})

    def skin_tones(self) -> List[SkinToneOption]:
        """Fresh option objects; ``selected`` belongs to the caller's session."""
        return [
            SkinToneOption(name=name, rarity=tier)
            for name, tier in self.skin_tone_values.items()
        ]

    def rarities(self) -> List[RarityOption]:
        return [RarityOption(name=tier) for tier in self.rarity_tiers]

    @cached_property
    def rarity_tiers(self) -> List[str]:
        seen: List[str] = []
        for category, values in self.attributes.items():
            if category == SKIN_TONE_TRAIT:
                continue
            for tier in values.values():
                if tier not in seen:
                    seen.append(tier)
        return order_rarities(seen)

    @cached_property
    def rarity_table(self) -> Dict[str, str]:
        """Normalized attribute value -> rarity tier (later categories win)."""
        table: Dict[str, str] = {}
        for values in self.attributes.values():
            for name, tier in values.items():
                table[normalize_value(name)] = tier
        return table

    def rarity_of(self, value: str) -> Optional[str]:
        return self.rarity_table.get(normalize_value(value))

    def attribute_names(self) -> List[str]:
        """Every attribute value of every category, in source order."""
        names: List[str] = []
        for values in self.attributes.values():
            names.extend(values.keys())
        return names


def load_catalog(path: Optional[Path] = None) -> AttributeCatalog:
    """Load the catalog from disk, cached until the file changes.

    Raises MissingSourceDataError when the file is absent or malformed.
    """
    source = Path(path or settings.attributes_power_path)
    try:
        mtime = source.stat().st_mtime_ns
    except FileNotFoundError:
        app_logger.error(f"Attribute data file not found: {source}")
        raise MissingSourceDataError(source)
    return _load_catalog_cached(str(source), mtime)


@lru_cache(maxsize=4)
def _load_catalog_cached(source: str, mtime: int) -> AttributeCatalog:
    path = Path(source)
    try:
        data = read_json(path)
        catalog = AttributeCatalog.from_source(data)
    except FileNotFoundError:
        raise MissingSourceDataError(path)
    except (json.JSONDecodeError, ValueError) as exc:
        app_logger.error(f"Attribute data file is corrupt: {path}: {exc}")
        raise MissingSourceDataError(path, f"invalid content ({exc})")

    app_logger.info(
        f"Loaded attribute catalog: {len(catalog.skin_tone_values)} skin tones, "
        f"{len(catalog.rarity_tiers)} rarity tiers {catalog.rarity_tiers}"
    )
    return catalog


def get_catalog() -> Dict[str, List[Dict[str, Any]]]:
    """Skin tone and rarity options for the selection UI."""
    catalog = load_catalog()
    return {
        "skinTones": [tone.model_dump() for tone in catalog.skin_tones()],
        "rarities": [rarity.model_dump() for rarity in catalog.rarities()],
    }
