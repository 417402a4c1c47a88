"""
Match engine: scores NFTs against the inverted synergy index.

For every NFT the engine counts, per synergy root, how many of its attributes
belong to that root. The best root gives the NFT's synergy score; the NFT is
kept when the score reaches the requested threshold.

Filters:
- skin tone: hard inclusion filter on the "Skin Tone" trait (never scored);
- rarity: restricts the scored attributes to the selected tiers, attributes
  without a known tier are dropped while a rarity filter is active.

Tie-breaks (deterministic):
- equal root counts: the root discovered first while walking this NFT's
  attributes, even when another root reached that count earlier;
- equal rarity counts among the winning attributes: the tier that reached the
  maximum first;
- equal synergy scores in the final list: original NFT order (stable sort).

The engine performs no I/O and never mutates the NFT records it receives.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from synergy_backend.config.logger import app_logger, log_performance
from synergy_backend.models import SKIN_TONE_TRAIT, AttributeRecord, NFTRecord, coerce_nft
from synergy_backend.services.attribute_catalog import normalize_value
from synergy_backend.services.synergy_index import SynergyIndex


SYNERGY_OPTIONS = (2, 3)
UNKNOWN_RARITY = "Unknown"
UNKNOWN_SKIN_TONE = "Not specified"

REASON_NO_NFTS = "no_nfts"
REASON_EMPTY_SYNERGY_MAP = "empty_synergy_map"

PROGRESS_EVERY = 1000


@dataclass(frozen=True)
class SynergyAttribute:
    attribute: str
    trait_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"attribute": self.attribute, "trait_type": self.trait_type}


@dataclass(frozen=True)
class SynergyHit:
    """Attributes of one NFT that fall under one synergy root."""

    synergy_name: str
    count: int
    attributes: Tuple[SynergyAttribute, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synergyName": self.synergy_name,
            "count": self.count,
            "attributes": [attr.to_dict() for attr in self.attributes],
        }


@dataclass(frozen=True)
class MatchResult:
    nft: NFTRecord
    synergy_score: int
    skin_tone: str
    matching_synergies: Tuple[SynergyHit, ...]
    rarity: str
    filtered_attributes_count: int
    total_attributes: int
    rarity_filter_applied: bool
    all_synergies: Mapping[str, SynergyHit]

    @property
    def best_synergy(self) -> SynergyHit:
        return self.matching_synergies[0]

    def synergy_info(self, search_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Annotation block attached to the NFT in saved result sets."""
        return {
            "synergyScore": self.synergy_score,
            "skinTone": self.skin_tone,
            "matchingSynergies": [hit.to_dict() for hit in self.matching_synergies],
            "filteredAttributesCount": self.filtered_attributes_count,
            "rarity": self.rarity,
            "searchParams": search_params,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nft": self.nft.to_dict(),
            "synergyScore": self.synergy_score,
            "skinTone": self.skin_tone,
            "matchingSynergies": [hit.to_dict() for hit in self.matching_synergies],
            "rarity": self.rarity,
            "filteredAttributesCount": self.filtered_attributes_count,
            "totalAttributes": self.total_attributes,
            "meetsRarityFilter": self.rarity_filter_applied,
            "allSynergies": {name: hit.to_dict() for name, hit in self.all_synergies.items()},
        }


@dataclass
class MatchOutcome:
    """Ranked results plus the bookkeeping needed to explain an empty list."""

    results: List[MatchResult] = field(default_factory=list)
    reason: Optional[str] = None
    checked: int = 0
    skipped_partial: int = 0
    filtered_out_by_rarity: int = 0
    with_rarity_attributes: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.results

    def __len__(self) -> int:
        return len(self.results)


class _HitBuilder:
    __slots__ = ("name", "count", "attributes")

    def __init__(self, name: str):
        self.name = name
        self.count = 0
        self.attributes: List[SynergyAttribute] = []

    def freeze(self) -> SynergyHit:
        return SynergyHit(synergy_name=self.name, count=self.count, attributes=tuple(self.attributes))


def _working_attributes(
    nft: NFTRecord,
    rarity_filter: Collection[str],
    rarity_table: Mapping[str, str],
) -> List[AttributeRecord]:
    attributes = [attr for attr in nft.attributes or [] if attr.trait_type != SKIN_TONE_TRAIT]
    if not rarity_filter:
        return attributes
    return [
        attr
        for attr in attributes
        if attr.value and rarity_table.get(normalize_value(attr.value)) in rarity_filter
    ]


def _dominant_rarity(hit: SynergyHit, rarity_table: Mapping[str, str]) -> str:
    counts: Dict[str, int] = {}
    dominant = UNKNOWN_RARITY
    best = 0
    for attr in hit.attributes:
        tier = rarity_table.get(normalize_value(attr.attribute))
        if not tier:
            continue
        counts[tier] = counts.get(tier, 0) + 1
        if counts[tier] > best:
            best = counts[tier]
            dominant = tier
    return dominant


def _lookup(index: Union[SynergyIndex, Mapping[str, List[str]]]):
    if isinstance(index, SynergyIndex):
        return index.roots_for
    return lambda attribute: index.get(attribute, [])


def score(
    nfts: Iterable[Union[NFTRecord, Dict[str, Any]]],
    threshold: int,
    skin_tone_filter: Optional[Collection[str]],
    rarity_filter: Optional[Collection[str]],
    index: Union[SynergyIndex, Mapping[str, List[str]]],
    rarity_table: Mapping[str, str],
) -> MatchOutcome:
    """Score a collection of NFTs and return the qualifying ones, best first.

    ``threshold`` is the minimum synergy score (2 or 3). Empty filter sets
    mean "all". Raw dict records are validated on the fly; records that do
    not validate or carry no attribute list are skipped and counted.
    """
    if threshold not in SYNERGY_OPTIONS:
        raise ValueError(f"threshold must be one of {SYNERGY_OPTIONS}, got {threshold!r}")

    nfts = list(nfts)
    skin_tones = frozenset(skin_tone_filter or ())
    rarities = frozenset(rarity_filter or ())
    roots_for = _lookup(index)

    if len(index) == 0:
        app_logger.warning("Synergy search skipped: synergy map is empty")
        return MatchOutcome(reason=REASON_EMPTY_SYNERGY_MAP)
    if not nfts:
        app_logger.warning("Synergy search skipped: no NFTs supplied")
        return MatchOutcome(reason=REASON_NO_NFTS)

    start_time = time.time()
    outcome = MatchOutcome()
    app_logger.info(
        f"Synergy search: threshold={threshold}, skin tones={len(skin_tones)}, "
        f"rarities={sorted(rarities)}, nfts={len(nfts)}"
    )

    for raw in nfts:
        outcome.checked += 1
        if outcome.checked % PROGRESS_EVERY == 0:
            app_logger.debug(f"Checked {outcome.checked}/{len(nfts)} NFTs")

        nft = coerce_nft(raw)
        if nft is None or nft.attributes is None:
            outcome.skipped_partial += 1
            continue

        if skin_tones and nft.skin_tone not in skin_tones:
            continue

        working = _working_attributes(nft, rarities, rarity_table)
        if rarities:
            scorable = [a for a in nft.attributes if a.trait_type != SKIN_TONE_TRAIT]
            if scorable and not working:
                outcome.filtered_out_by_rarity += 1
            if working:
                outcome.with_rarity_attributes += 1
        if not working:
            continue

        hits: Dict[str, _HitBuilder] = {}
        for attr in working:
            for root in roots_for(attr.value):
                hit = hits.get(root)
                if hit is None:
                    hit = hits[root] = _HitBuilder(root)
                hit.count += 1
                hit.attributes.append(SynergyAttribute(attribute=attr.value, trait_type=attr.trait_type))

        best: Optional[_HitBuilder] = None
        for hit in hits.values():
            if best is None or hit.count > best.count:
                best = hit

        if best is None or best.count < threshold:
            continue

        frozen_hits = {name: hit.freeze() for name, hit in hits.items()}
        winner = frozen_hits[best.name]
        outcome.results.append(
            MatchResult(
                nft=nft,
                synergy_score=winner.count,
                skin_tone=nft.skin_tone or UNKNOWN_SKIN_TONE,
                matching_synergies=(winner,),
                rarity=_dominant_rarity(winner, rarity_table),
                filtered_attributes_count=len(working),
                total_attributes=len(nft.attributes),
                rarity_filter_applied=bool(rarities),
                all_synergies=frozen_hits,
            )
        )

    outcome.results.sort(key=lambda result: -result.synergy_score)

    app_logger.info(
        f"Synergy search found {len(outcome.results)} NFTs (checked {outcome.checked}, "
        f"skipped partial {outcome.skipped_partial}, filtered by rarity {outcome.filtered_out_by_rarity})"
    )
    log_performance("synergy_search", time.time() - start_time, found=len(outcome.results))
    return outcome


def summarize(results: List[MatchResult]) -> Dict[str, Any]:
    """Score, rarity and winning-synergy distributions of a result list."""
    rarity_distribution: Dict[str, int] = {}
    synergy_distribution: Dict[str, int] = {}
    for result in results:
        rarity_distribution[result.rarity] = rarity_distribution.get(result.rarity, 0) + 1
        name = result.best_synergy.synergy_name
        synergy_distribution[name] = synergy_distribution.get(name, 0) + 1

    return {
        "totalFound": len(results),
        "synergyDistribution": {
            "level2": sum(1 for r in results if r.synergy_score == 2),
            "level3": sum(1 for r in results if r.synergy_score == 3),
            "level4plus": sum(1 for r in results if r.synergy_score >= 4),
        },
        "rarityDistribution": rarity_distribution,
        "synergyDistributionByType": dict(
            sorted(synergy_distribution.items(), key=lambda item: -item[1])
        ),
    }
