"""Synergy search endpoints for the web UI."""

from typing import Annotated, Any, Dict, Literal

from fastapi import APIRouter, HTTPException, Path, status

from synergy_backend.config.logger import app_logger
from synergy_backend.api.synergy.schemas import (
    DeleteResultsResponse,
    MapRebuildResponse,
    SearchRequest,
    SearchResponse,
    SearchStateSchema,
    SortDataResponse,
    StateUpdateRequest,
    UserResultsResponse,
    USER_ID_PATTERN,
)
from synergy_backend.services import synergy_search
from synergy_backend.services.errors import MissingSourceDataError
from synergy_backend.services.search_state import SearchState, load_state, save_state
from synergy_backend.services.synergy_map import build_synergy_map, load_synergy_map, map_stats
from synergy_backend.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/synergy", tags=["synergy"])

UserId = Annotated[str, Path(max_length=64, pattern=USER_ID_PATTERN)]


def _source_unavailable(exc: MissingSourceDataError) -> HTTPException:
    app_logger.error(f"Source data unavailable: {exc}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Source data unavailable: {exc.path} ({exc.reason})",
    )


def _state_schema(state: SearchState) -> SearchStateSchema:
    return SearchStateSchema(
        synergy_level=state.synergy_level,
        selected_skin_tones=state.selected_skin_tones,
        selected_rarities=state.selected_rarities,
        all_nfts=state.filter_options.all_nfts,
        on_sale_only=state.filter_options.on_sale_only,
        last_search=state.last_search,
        last_results_count=state.last_results_count,
    )


@router.get(
    "/data",
    response_model=SuccessResponse[SortDataResponse],
    summary="Skin tones, rarity tiers and counts for the selector",
)
async def get_sort_data() -> SuccessResponse[SortDataResponse]:
    try:
        data = synergy_search.get_sort_data()
    except MissingSourceDataError as exc:
        raise _source_unavailable(exc)
    except Exception as e:
        app_logger.error(f"Failed to load synergy sort data: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to load sort data: {str(e)}",
        )
    return success_response(data=data, message="Sort data loaded")


@router.post(
    "/search",
    response_model=SuccessResponse[SearchResponse],
    summary="Find NFTs whose attributes share a synergy root",
)
async def search(request: SearchRequest) -> SuccessResponse[SearchResponse]:
    """Run a synergy search and save the user's result sets.

    An empty NFT database or synergy map yields an empty result list with a
    ``reason`` instead of an error. The marketplace check runs only when
    ``on_sale_only`` is set and can take a while for large result sets.
    """
    try:
        result = await synergy_search.execute_search(request)
    except MissingSourceDataError as exc:
        raise _source_unavailable(exc)
    except Exception as e:
        app_logger.error(f"Synergy search failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Synergy search failed: {str(e)}",
        )
    return success_response(data=result, message=result.message)


@router.get(
    "/results/{user_id}",
    response_model=SuccessResponse[UserResultsResponse],
    summary="Saved result sets of a user",
)
async def get_user_results(user_id: UserId) -> SuccessResponse[UserResultsResponse]:
    result = synergy_search.get_user_results(user_id)
    if not result.main_file.exists and not result.on_sale_file.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No saved results for user {user_id}",
        )
    return success_response(data=result, message="Saved results loaded")


@router.delete(
    "/results/{user_id}/{kind}",
    response_model=SuccessResponse[DeleteResultsResponse],
    summary="Delete a user's saved result set",
)
async def delete_user_results(
    user_id: UserId,
    kind: Literal["all", "onsale", "both"],
) -> SuccessResponse[DeleteResultsResponse]:
    deleted = synergy_search.delete_user_results(user_id, kind)
    if not any(deleted.values()):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No saved {kind} results for user {user_id}",
        )
    return success_response(data=DeleteResultsResponse(deleted=deleted), message="Saved results deleted")


@router.get("/stats", response_model=SuccessResponse[Dict[str, Any]])
async def get_stats() -> SuccessResponse[Dict[str, Any]]:
    """Collection, rarity and synergy statistics."""
    try:
        stats = synergy_search.get_stats()
    except MissingSourceDataError as exc:
        raise _source_unavailable(exc)
    return success_response(data=stats, message="Statistics loaded")


@router.get("/nft/{key}", response_model=SuccessResponse[Dict[str, Any]])
async def get_nft(key: str) -> SuccessResponse[Dict[str, Any]]:
    """NFT by collection index or (partial) address."""
    try:
        details = synergy_search.get_nft_details(key)
    except MissingSourceDataError as exc:
        raise _source_unavailable(exc)
    if details is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"NFT {key} not found")
    return success_response(data=details, message="NFT loaded")


@router.post(
    "/map/rebuild",
    response_model=SuccessResponse[MapRebuildResponse],
    summary="Rebuild the synergy map from the attribute catalog",
)
async def rebuild_map() -> SuccessResponse[MapRebuildResponse]:
    try:
        build = build_synergy_map()
    except MissingSourceDataError as exc:
        raise _source_unavailable(exc)
    except OSError as e:
        app_logger.error(f"Failed to write synergy map: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to write synergy map: {str(e)}",
        )
    diagnostics = build.diagnostics
    return success_response(
        data=MapRebuildResponse(
            word_count=diagnostics.word_count,
            base_word_count=diagnostics.base_word_count,
            synergy_count=diagnostics.synergy_count,
            json_file=diagnostics.json_file,
            text_file=diagnostics.text_file,
            sample=diagnostics.sample,
            exceptions_added=diagnostics.exceptions_added,
            exceptions_removed=diagnostics.exceptions_removed,
        ),
        message=f"Synergy map rebuilt with {diagnostics.synergy_count} synergies",
    )


@router.get("/map/stats", response_model=SuccessResponse[Dict[str, Any]])
async def get_map_stats(top: int = 10) -> SuccessResponse[Dict[str, Any]]:
    synergy_map = load_synergy_map()
    if not synergy_map:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Synergy map is empty. Rebuild the synergy map first.",
        )
    return success_response(data=map_stats(synergy_map, top=top), message="Synergy map statistics")


@router.get("/state/{user_id}", response_model=SuccessResponse[SearchStateSchema])
async def get_state(user_id: UserId) -> SuccessResponse[SearchStateSchema]:
    return success_response(data=_state_schema(load_state(user_id)), message="Search state loaded")


@router.put("/state/{user_id}", response_model=SuccessResponse[SearchStateSchema])
async def update_state(user_id: UserId, request: StateUpdateRequest) -> SuccessResponse[SearchStateSchema]:
    """Apply selector changes; ``reset`` restores the defaults first."""
    state = SearchState() if request.reset else load_state(user_id)
    if request.synergy_level is not None:
        state.set_level(request.synergy_level)
    if request.toggle_skin_tone:
        state.toggle_skin_tone(request.toggle_skin_tone)
    if request.toggle_rarity:
        state.toggle_rarity(request.toggle_rarity)
    if request.all_nfts is not None:
        state.filter_options.all_nfts = request.all_nfts
    if request.on_sale_only is not None:
        state.filter_options.on_sale_only = request.on_sale_only
    save_state(user_id, state)
    return success_response(data=_state_schema(state), message="Search state saved")
