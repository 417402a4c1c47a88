"""
NFT collection source.

Reads ``all_nft_info.json`` written by the collector::

    {"collection_info": {...}, "nfts": [{...}, ...]}

An absent or unreadable file is a valid "no data" condition. Records that do
not validate are dropped and counted instead of failing the whole load.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from synergy_backend.config.logger import app_logger
from synergy_backend.config.settings import settings
from synergy_backend.models import SKIN_TONE_TRAIT, NFTRecord, coerce_nft
from synergy_backend.services.match_engine import UNKNOWN_RARITY
from synergy_backend.utils.json_files import read_json


@dataclass
class NFTCollection:
    nfts: List[NFTRecord] = field(default_factory=list)
    collection_info: Dict[str, Any] = field(default_factory=dict)
    invalid_records: int = 0
    source_available: bool = True

    def __len__(self) -> int:
        return len(self.nfts)


def load_nfts(path: Optional[Path] = None) -> NFTCollection:
    """Load and validate the collected NFTs."""
    source = Path(path or settings.nft_data_path)
    try:
        data = read_json(source)
    except FileNotFoundError:
        app_logger.warning(f"NFT data file not found: {source}")
        return NFTCollection(source_available=False)
    except json.JSONDecodeError as exc:
        app_logger.error(f"NFT data file is corrupt: {source}: {exc}")
        return NFTCollection(source_available=False)

    raw_nfts = data.get("nfts") if isinstance(data, dict) else None
    if not isinstance(raw_nfts, list):
        app_logger.error(f"NFT data file has no 'nfts' list: {source}")
        return NFTCollection(source_available=False)

    nfts: List[NFTRecord] = []
    invalid = 0
    for raw in raw_nfts:
        nft = coerce_nft(raw)
        if nft is None:
            invalid += 1
            continue
        nfts.append(nft)

    if invalid:
        app_logger.warning(f"Dropped {invalid} malformed NFT records from {source.name}")
    app_logger.info(f"Loaded {len(nfts)} NFTs from {source.name}")

    info = data.get("collection_info")
    return NFTCollection(
        nfts=nfts,
        collection_info=info if isinstance(info, dict) else {},
        invalid_records=invalid,
    )


def find_nft(nfts: List[NFTRecord], key: Union[int, str]) -> Optional[NFTRecord]:
    """Find an NFT by collection index or by (partial) address."""
    if isinstance(key, str) and key.strip().isdigit():
        key = int(key.strip())

    if isinstance(key, int):
        return next((nft for nft in nfts if nft.index == key), None)

    for nft in nfts:
        friendly = (nft.model_extra or {}).get("user_friendly_address") or ""
        if (nft.address and key in nft.address) or (friendly and key in friendly):
            return nft
    return None


def describe_nft(nft: NFTRecord, rarity_table: Dict[str, str]) -> Dict[str, Any]:
    """NFT details with each attribute annotated by its rarity tier."""
    extra = nft.model_extra or {}
    attributes = [
        {**attr.model_dump(), "rarity": rarity_table.get(attr.normalized_value, UNKNOWN_RARITY)}
        for attr in nft.attributes or []
    ]
    owner = extra.get("owner_address")
    return {
        **nft.to_dict(),
        "attributes": attributes,
        "formatted": {
            "name": nft.display_name,
            "imageUrl": extra.get("image_url", ""),
            "owner": _truncate(owner, 20) if owner else "Unknown",
            "userFriendlyAddress": extra.get("user_friendly_address", ""),
            "getgemsLink": extra.get("getgems_url", ""),
            "ownerLink": extra.get("owner_url", ""),
        },
    }


def _truncate(text: str, max_length: int) -> str:
    return text if len(text) <= max_length else text[: max_length - 3] + "..."


def collection_stats(collection: NFTCollection) -> Dict[str, Any]:
    """Attribute and skin tone statistics over the collection."""
    with_attributes = 0
    attribute_counts: List[int] = []
    unique_values = set()
    skin_tones: Dict[str, int] = {}

    for nft in collection.nfts:
        if nft.attributes is None:
            continue
        with_attributes += 1
        attribute_counts.append(len(nft.attributes))
        for attr in nft.attributes:
            if attr.value:
                unique_values.add(attr.value)
            if attr.trait_type == SKIN_TONE_TRAIT and attr.value:
                skin_tones[attr.value] = skin_tones.get(attr.value, 0) + 1

    expected = collection.collection_info.get("nft_quantity") or 0
    unique_addresses = {nft.address for nft in collection.nfts if nft.address}
    return {
        "total": len(collection.nfts),
        "withAttributes": with_attributes,
        "avgAttributesPerNft": round(sum(attribute_counts) / len(attribute_counts), 2) if attribute_counts else 0.0,
        "uniqueAttributesCount": len(unique_values),
        "uniqueAddresses": len(unique_addresses),
        "invalidRecords": collection.invalid_records,
        "skinToneDistribution": skin_tones,
        "expectedTotal": expected,
        "completionPercent": round(len(collection.nfts) / expected * 100) if expected else 100,
        "lastUpdated": collection.collection_info.get("last_updated"),
    }
