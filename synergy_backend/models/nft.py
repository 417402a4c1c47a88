"""NFT records as read from the collected collection file."""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


SKIN_TONE_TRAIT = "Skin Tone"


class AttributeRecord(BaseModel):
    """Single trait of an NFT, e.g. ``{"trait_type": "Clothing", "value": "Gold Cape"}``."""

    model_config = ConfigDict(frozen=True, extra="allow")

    trait_type: str = ""
    value: str = ""

    @field_validator("trait_type", "value", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @property
    def normalized_value(self) -> str:
        """Lookup key used by the rarity table."""
        return self.value.lower().strip()


class SalePrice(BaseModel):
    """Marketplace sale price in the smallest unit plus its decimals."""

    value: str
    decimals: int = 9

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> str:
        return str(v) if isinstance(v, int) else v

    def as_ton(self) -> float:
        return int(self.value) / (10 ** self.decimals)


class NFTRecord(BaseModel):
    """NFT as stored in ``all_nft_info.json``.

    Unknown fields (image_url, owner_address, getgems_url, ...) are kept so
    that saved result sets carry the full record.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    index: Optional[int] = None
    address: str = ""
    name: Optional[str] = None
    attributes: Optional[List[AttributeRecord]] = Field(default=None)
    on_sale: Optional[bool] = None
    sale_price: Optional[SalePrice] = None

    @property
    def skin_tone(self) -> Optional[str]:
        for attr in self.attributes or []:
            if attr.trait_type == SKIN_TONE_TRAIT:
                return attr.value
        return None

    @property
    def display_name(self) -> str:
        return self.name or f"NFT #{self.index}"

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def coerce_nft(raw: Any) -> Optional[NFTRecord]:
    """Validate a raw collection entry; ``None`` when it cannot be used."""
    if isinstance(raw, NFTRecord):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return NFTRecord.model_validate(raw)
    except ValidationError:
        return None
