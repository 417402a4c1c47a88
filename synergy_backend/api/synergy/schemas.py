"""Request and response schemas for the synergy search API."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from synergy_backend.config.settings import settings
from synergy_backend.models import RarityOption, SkinToneOption


USER_ID_PATTERN = r"^[A-Za-z0-9_\-]+$"


class SearchRequest(BaseModel):
    """Request schema for POST /v1/synergy/search."""

    synergy_level: Literal[2, 3] = Field(
        ...,
        description="Minimum synergy score: 2 keeps any NFT with 2+ matches, 3 requires 3+.",
    )
    selected_skin_tones: List[str] = Field(
        default_factory=list,
        description="Skin tones to keep (empty = all).",
    )
    selected_rarities: List[str] = Field(
        default_factory=list,
        description="Rarity tiers whose attributes are scored (empty = all).",
    )
    all_nfts: bool = Field(default=True, description="Save every matched NFT.")
    on_sale_only: bool = Field(
        default=False,
        description="Also check matches against the marketplace and save those on sale.",
    )
    user_id: str = Field(
        default=settings.WEB_DEFAULT_USER,
        max_length=64,
        pattern=USER_ID_PATTERN,
        description="Owner of the saved result sets (letters, digits, _ and -).",
    )
    username: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "synergy_level": 2,
                "selected_skin_tones": ["Martian"],
                "selected_rarities": ["Epic", "Legendary"],
                "all_nfts": True,
                "on_sale_only": False,
                "user_id": "42",
                "username": "collector",
            }
        }
    }

    def filter_options(self) -> Dict[str, bool]:
        return {"allNfts": self.all_nfts, "onSaleOnly": self.on_sale_only}


class SynergyAttributeSchema(BaseModel):
    attribute: str
    trait_type: str


class SynergyHitSchema(BaseModel):
    synergy_name: str
    count: int = Field(ge=0)
    attributes: List[SynergyAttributeSchema] = Field(default_factory=list)


class SearchResultItem(BaseModel):
    """Single matched NFT formatted for the web UI."""

    position: int = Field(ge=0, description="Rank in the result list")
    nft_index: Optional[int] = None
    name: str
    synergy_score: int = Field(ge=0)
    skin_tone: str
    rarity: str
    matching_synergies: List[SynergyHitSchema] = Field(default_factory=list)
    attributes: List[Dict[str, Any]] = Field(default_factory=list)
    image_url: Optional[str] = None
    address: Optional[str] = None
    on_sale: Optional[bool] = None
    sale_price: Optional[Dict[str, Any]] = None


class SearchStats(BaseModel):
    total_found: int = Field(ge=0)
    synergy_distribution: Dict[str, int] = Field(default_factory=dict)
    rarity_distribution: Dict[str, int] = Field(default_factory=dict)
    synergy_distribution_by_type: Dict[str, int] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """Response payload for POST /v1/synergy/search."""

    results: List[SearchResultItem] = Field(default_factory=list)
    total_results: int = Field(ge=0)
    reason: Optional[str] = Field(
        default=None,
        description="Why the list is empty when inputs were unavailable: no_nfts or empty_synergy_map.",
    )
    message: str
    search_params: Dict[str, Any] = Field(default_factory=dict)
    save_result: Optional[Dict[str, Any]] = None
    on_sale_result: Optional[Dict[str, Any]] = None
    stats: SearchStats


class SortDataResponse(BaseModel):
    """Response payload for GET /v1/synergy/data."""

    skin_tones: List[SkinToneOption] = Field(default_factory=list)
    rarities: List[RarityOption] = Field(default_factory=list)
    synergy_options: List[int] = Field(default_factory=lambda: [2, 3])
    stats: Dict[str, int] = Field(default_factory=dict)
    default_filter_options: Dict[str, bool] = Field(default_factory=dict)


class SavedResultSet(BaseModel):
    exists: bool
    file_name: Optional[str] = None
    nfts_count: int = Field(default=0, ge=0)
    data: Optional[Dict[str, Any]] = None


class UserResultsResponse(BaseModel):
    """Response payload for GET /v1/synergy/results/{user_id}."""

    main_file: SavedResultSet
    on_sale_file: SavedResultSet


class DeleteResultsResponse(BaseModel):
    """Per-kind deletion outcome; False means nothing was saved."""

    deleted: Dict[str, bool] = Field(default_factory=dict)


class MapRebuildResponse(BaseModel):
    """Response payload for POST /v1/synergy/map/rebuild."""

    word_count: int = Field(ge=0, description="Roots extracted from attribute names")
    base_word_count: int = Field(ge=0)
    synergy_count: int = Field(ge=0, description="Roots with more than one attribute")
    json_file: str
    text_file: str
    sample: str = ""
    exceptions_added: Dict[str, int] = Field(default_factory=dict)
    exceptions_removed: Dict[str, int] = Field(default_factory=dict)


class SearchStateSchema(BaseModel):
    """Saved selector state of one user."""

    synergy_level: Literal[2, 3] = 2
    selected_skin_tones: List[str] = Field(default_factory=list)
    selected_rarities: List[str] = Field(default_factory=list)
    all_nfts: bool = True
    on_sale_only: bool = False
    last_search: Optional[str] = None
    last_results_count: int = Field(default=0, ge=0)


class StateUpdateRequest(BaseModel):
    """Partial update of a user's selector state; toggles flip membership."""

    synergy_level: Optional[Literal[2, 3]] = None
    toggle_skin_tone: Optional[str] = None
    toggle_rarity: Optional[str] = None
    all_nfts: Optional[bool] = None
    on_sale_only: Optional[bool] = None
    reset: bool = False
