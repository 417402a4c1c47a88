"""Models module - records shared by services and the API."""

from synergy_backend.models.nft import (
    SKIN_TONE_TRAIT,
    AttributeRecord,
    NFTRecord,
    SalePrice,
    coerce_nft,
)
from synergy_backend.models.catalog import RarityOption, SkinToneOption

__all__ = [
    "SKIN_TONE_TRAIT",
    "AttributeRecord",
    "NFTRecord",
    "SalePrice",
    "coerce_nft",
    "RarityOption",
    "SkinToneOption",
]
