"""Inverted synergy lookup: attribute name -> roots it belongs to."""

from __future__ import annotations

from typing import Dict, List, Mapping

from synergy_backend.config.logger import app_logger


AttributeSynergyIndex = Dict[str, List[str]]


def invert(synergy_map: Mapping[str, List[str]]) -> AttributeSynergyIndex:
    """Invert a synergy map, keeping the map's root order per attribute."""
    index: AttributeSynergyIndex = {}
    for root, names in synergy_map.items():
        for name in names:
            index.setdefault(name, []).append(root)
    return index


class SynergyIndex:
    """Read-only wrapper around the inverted map used during scoring."""

    def __init__(self, synergy_map: Mapping[str, List[str]]):
        self._synergy_count = len(synergy_map)
        self._index = invert(synergy_map)

    @classmethod
    def from_map(cls, synergy_map: Mapping[str, List[str]]) -> "SynergyIndex":
        index = cls(synergy_map)
        app_logger.debug(
            f"Built inverted synergy index: {len(index)} attributes over {index.synergy_count} synergies"
        )
        return index

    def roots_for(self, attribute: str) -> List[str]:
        return self._index.get(attribute, [])

    @property
    def synergy_count(self) -> int:
        return self._synergy_count

    @property
    def is_empty(self) -> bool:
        return not self._index

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, attribute: object) -> bool:
        return attribute in self._index

    def as_dict(self) -> AttributeSynergyIndex:
        return {name: list(roots) for name, roots in self._index.items()}
