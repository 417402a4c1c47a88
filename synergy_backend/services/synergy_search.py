"""
Synergy search orchestration for the web UI and the bot.

Wires the collaborators together:

    attribute catalog + synergy map -> SynergyIndex
    NFT collection + filters        -> match_engine.score
    results                         -> ResultStore ("all")
    results + MarketplaceChecker    -> ResultStore ("onsale")
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from synergy_backend.api.synergy.schemas import (
    SavedResultSet,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    SearchStats,
    SortDataResponse,
    SynergyHitSchema,
    UserResultsResponse,
)
from synergy_backend.config.logger import app_logger
from synergy_backend.config.settings import settings
from synergy_backend.models import NFTRecord
from synergy_backend.services.attribute_catalog import load_catalog
from synergy_backend.services.marketplace import MarketplaceChecker
from synergy_backend.services.match_engine import (
    REASON_EMPTY_SYNERGY_MAP,
    REASON_NO_NFTS,
    SYNERGY_OPTIONS,
    MatchOutcome,
    MatchResult,
    score,
    summarize,
)
from synergy_backend.services.nft_source import collection_stats, describe_nft, find_nft, load_nfts
from synergy_backend.services.result_store import (
    KIND_ALL,
    KIND_ON_SALE,
    RESULT_KINDS,
    ResultStore,
    UserKey,
)
from synergy_backend.services.search_state import FilterOptions, load_state, save_state
from synergy_backend.services.synergy_index import SynergyIndex
from synergy_backend.services.synergy_map import load_synergy_map, map_stats


REASON_MESSAGES = {
    REASON_NO_NFTS: "NFT database is empty. Collect NFT data first.",
    REASON_EMPTY_SYNERGY_MAP: "Synergy map is empty. Rebuild the synergy map first.",
}


def match(
    nfts: List[NFTRecord],
    threshold: int,
    skin_tone_filter: Optional[List[str]] = None,
    rarity_filter: Optional[List[str]] = None,
) -> MatchOutcome:
    """Score ``nfts`` against the persisted synergy map and attribute catalog."""
    catalog = load_catalog()
    index = SynergyIndex.from_map(load_synergy_map())
    return score(nfts, threshold, skin_tone_filter, rarity_filter, index, catalog.rarity_table)


def get_sort_data() -> SortDataResponse:
    """Options and counts needed to render the selector."""
    catalog = load_catalog()
    synergy_map = load_synergy_map()
    collection = load_nfts()
    skin_tones = catalog.skin_tones()
    rarities = catalog.rarities()
    return SortDataResponse(
        skin_tones=skin_tones,
        rarities=rarities,
        synergy_options=list(SYNERGY_OPTIONS),
        stats={
            "totalNfts": len(collection),
            "skinToneCount": len(skin_tones),
            "rarityCount": len(rarities),
            "synergyCount": len(synergy_map),
        },
        default_filter_options={"allNfts": True, "onSaleOnly": False},
    )


def _format_result(position: int, result: MatchResult) -> SearchResultItem:
    nft = result.nft
    extra = nft.model_extra or {}
    return SearchResultItem(
        position=position,
        nft_index=nft.index,
        name=nft.display_name,
        synergy_score=result.synergy_score,
        skin_tone=result.skin_tone,
        rarity=result.rarity,
        matching_synergies=[
            SynergyHitSchema(
                synergy_name=hit.synergy_name,
                count=hit.count,
                attributes=[attr.to_dict() for attr in hit.attributes],
            )
            for hit in result.matching_synergies
        ],
        attributes=[attr.model_dump() for attr in nft.attributes or []],
        image_url=extra.get("image_url"),
        address=nft.address or None,
        on_sale=nft.on_sale,
        sale_price=nft.sale_price.model_dump() if nft.sale_price else None,
    )


async def execute_search(
    request: SearchRequest,
    store: Optional[ResultStore] = None,
    checker: Optional[MarketplaceChecker] = None,
) -> SearchResponse:
    """Run a search, save the result sets and format the response.

    Empty inputs produce an empty response carrying a ``reason``; a missing
    attribute catalog raises MissingSourceDataError.
    """
    store = store or ResultStore()
    user = UserKey(user_id=request.user_id, username=request.username)
    app_logger.info(
        f"Synergy search for user {user.user_id}: level={request.synergy_level}, "
        f"skin tones={len(request.selected_skin_tones)}, rarities={len(request.selected_rarities)}, "
        f"on sale={request.on_sale_only}"
    )

    collection = load_nfts()
    outcome = match(
        collection.nfts,
        request.synergy_level,
        request.selected_skin_tones,
        request.selected_rarities,
    )

    search_params = {
        "synergyLevel": request.synergy_level,
        "selectedSkinTones": request.selected_skin_tones,
        "selectedRarities": request.selected_rarities,
        "searchDate": datetime.now(timezone.utc).isoformat(),
        "totalNfts": len(collection),
        "foundNfts": len(outcome.results),
    }

    if outcome.reason:
        return SearchResponse(
            results=[],
            total_results=0,
            reason=outcome.reason,
            message=REASON_MESSAGES.get(outcome.reason, outcome.reason),
            search_params=search_params,
            stats=SearchStats(total_found=0),
        )

    save_outcome = store.save_results(user, outcome.results, search_params, request.filter_options())
    _record_search(request, len(outcome.results))

    on_sale_result = None
    if request.on_sale_only:
        on_sale_result = await _save_on_sale(user, outcome.results, search_params, store, checker)

    summary = summarize(outcome.results)
    formatted = [
        _format_result(position, result)
        for position, result in enumerate(outcome.results[: settings.WEB_RESULTS_LIMIT])
    ]
    return SearchResponse(
        results=formatted,
        total_results=len(outcome.results),
        message=f"Found {len(outcome.results)} NFTs with {request.synergy_level}+ matches",
        search_params=search_params,
        save_result=save_outcome.to_dict(),
        on_sale_result=on_sale_result,
        stats=SearchStats(
            total_found=summary["totalFound"],
            synergy_distribution=summary["synergyDistribution"],
            rarity_distribution=summary["rarityDistribution"],
            synergy_distribution_by_type=summary["synergyDistributionByType"],
        ),
    )


def _record_search(request: SearchRequest, found: int) -> None:
    state = load_state(request.user_id)
    state.set_level(request.synergy_level)
    state.selected_skin_tones = list(request.selected_skin_tones)
    state.selected_rarities = list(request.selected_rarities)
    state.filter_options = FilterOptions(all_nfts=request.all_nfts, on_sale_only=request.on_sale_only)
    state.record_search(found)
    save_state(request.user_id, state)


async def _save_on_sale(
    user: UserKey,
    results: List[MatchResult],
    search_params: Dict[str, Any],
    store: ResultStore,
    checker: Optional[MarketplaceChecker],
) -> Dict[str, Any]:
    if not results:
        return {"success": False, "message": "No NFTs to check"}

    filter_params = {
        "synergyLevel": search_params["synergyLevel"],
        "selectedSkinTones": search_params["selectedSkinTones"],
        "selectedRarities": search_params["selectedRarities"],
        "searchType": "synergy_sort",
    }
    nfts = [result.nft for result in results]
    if checker is None:
        async with MarketplaceChecker() as own_checker:
            report = await own_checker.filter_on_sale(nfts)
    else:
        report = await checker.filter_on_sale(nfts)

    saved = store.save_on_sale(user, report.on_sale, filter_params, report.stats)
    return {
        "success": saved.success,
        "nftsCount": saved.count,
        "stats": report.stats,
        "saveResult": saved.to_dict(),
        "message": f"Found {len(report.on_sale)} NFTs on sale",
    }


def _saved_set(payload: Optional[Dict[str, Any]], file_name: str) -> SavedResultSet:
    if payload is None:
        return SavedResultSet(exists=False)
    return SavedResultSet(
        exists=True,
        file_name=file_name,
        nfts_count=len(payload.get("nfts") or []),
        data=payload,
    )


def get_user_results(user_id: str, store: Optional[ResultStore] = None) -> UserResultsResponse:
    store = store or ResultStore()
    user = UserKey(user_id=user_id)
    return UserResultsResponse(
        main_file=_saved_set(store.load_results(user, KIND_ALL), store.store.key_name(user, KIND_ALL)),
        on_sale_file=_saved_set(
            store.load_results(user, KIND_ON_SALE), store.store.key_name(user, KIND_ON_SALE)
        ),
    )


def delete_user_results(
    user_id: str,
    kind: str,
    store: Optional[ResultStore] = None,
) -> Dict[str, bool]:
    """Delete one kind, or ``both``; values are False where nothing was saved."""
    store = store or ResultStore()
    user = UserKey(user_id=user_id)
    kinds = RESULT_KINDS if kind == "both" else (kind,)
    for item in kinds:
        if item not in RESULT_KINDS:
            raise ValueError(f"unknown result kind {item!r}")
    return {item: store.delete_results(user, item) for item in kinds}


def get_stats() -> Dict[str, Any]:
    """Collection, catalog and synergy map statistics."""
    collection = load_nfts()
    catalog = load_catalog()
    synergy_map = load_synergy_map()
    nft_stats = collection_stats(collection)
    synergy_stats = map_stats(synergy_map)
    return {
        "nfts": {
            key: nft_stats[key]
            for key in ("total", "withAttributes", "avgAttributesPerNft", "uniqueAttributesCount", "invalidRecords")
        },
        "collection": {
            "uniqueAddresses": nft_stats["uniqueAddresses"],
            "expectedTotal": nft_stats["expectedTotal"],
            "completionPercent": nft_stats["completionPercent"],
        },
        "skinTones": {
            "total": len(catalog.skin_tone_values),
            "distribution": nft_stats["skinToneDistribution"],
        },
        "rarities": {
            "total": len(catalog.rarity_tiers),
            "list": list(catalog.rarity_tiers),
        },
        "synergies": {
            "total": synergy_stats["total_words"],
            "totalAttributes": synergy_stats["total_attribute_mentions"],
            "uniqueAttributes": synergy_stats["unique_attributes"],
            "avgAttributesPerSynergy": synergy_stats["average_attributes_per_word"],
            "sizeDistribution": {str(k): v for k, v in synergy_stats["size_distribution"].items()},
            "topSynergies": synergy_stats["top_words"],
        },
        "lastUpdated": nft_stats["lastUpdated"],
    }


def get_nft_details(key: Union[int, str]) -> Optional[Dict[str, Any]]:
    """NFT by index or address with per-attribute rarity; None when absent."""
    collection = load_nfts()
    nft = find_nft(collection.nfts, key)
    if nft is None:
        return None
    return describe_nft(nft, load_catalog().rarity_table)
