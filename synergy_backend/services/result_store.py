"""
Per-user saved result sets.

Each user has at most one current result set per kind:

- ``all``: every NFT matched by the last search, annotated with its synergy;
- ``onsale``: the subset confirmed on sale by the marketplace checker.

Saving overwrites the previous set. Concurrent saves for the same user are
not synchronized (last write wins); different users never share a key.

Storage goes through the KeyValueStore interface. Both backends key a set by
``key_name(user, kind)``, which depends on the user id only; the username is
metadata. The file-backed store names files ``Orc_filtered[_onsale]_user_<id>.json``.
"""

from __future__ import annotations

import json
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from synergy_backend.config.logger import app_logger
from synergy_backend.config.settings import settings
from synergy_backend.models import NFTRecord, coerce_nft
from synergy_backend.services.match_engine import MatchResult
from synergy_backend.utils.json_files import read_json, write_json


KIND_ALL = "all"
KIND_ON_SALE = "onsale"
RESULT_KINDS = (KIND_ALL, KIND_ON_SALE)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_\-]")
MAX_SAFE_ID_LENGTH = 64


@dataclass(frozen=True)
class UserKey:
    """Identity a result set is stored under.

    Only ``user_id`` takes part in the storage key.
    """

    user_id: str
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or f"user_{self.user_id}"

    @property
    def safe_id(self) -> str:
        """``user_id`` reduced to file-name characters."""
        return _UNSAFE_CHARS.sub("_", str(self.user_id))[:MAX_SAFE_ID_LENGTH]


@dataclass
class SaveOutcome:
    success: bool
    kind: str
    count: int = 0
    key: Optional[str] = None
    overwritten: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "kind": self.kind,
            "count": self.count,
            "fileName": self.key,
            "overwritten": self.overwritten,
            "error": self.error,
        }


class KeyValueStore(ABC):
    """get/put/delete by the composite key (user, kind)."""

    @abstractmethod
    def key_name(self, user: UserKey, kind: str) -> str:
        """Stable storage name for a key."""

    @abstractmethod
    def get(self, user: UserKey, kind: str) -> Optional[Dict[str, Any]]:
        """Stored payload, or None when absent."""

    @abstractmethod
    def put(self, user: UserKey, kind: str, payload: Dict[str, Any]) -> bool:
        """Store ``payload``; returns True when an older value was replaced."""

    @abstractmethod
    def delete(self, user: UserKey, kind: str) -> bool:
        """Remove a value; returns False when there was nothing to remove."""


def result_file_name(user: UserKey, kind: str, prefix: str = settings.RESULT_FILE_PREFIX) -> str:
    if kind not in RESULT_KINDS:
        raise ValueError(f"unknown result kind {kind!r}")
    infix = "_onsale" if kind == KIND_ON_SALE else ""
    return f"{prefix}{infix}_user_{user.safe_id}.json"


class FileKeyValueStore(KeyValueStore):
    """One JSON file per (user, kind) under the user files directory."""

    def __init__(self, directory: Optional[Path] = None):
        self._directory = Path(directory) if directory else None

    @property
    def directory(self) -> Path:
        return self._directory or settings.user_files_path

    def key_name(self, user: UserKey, kind: str) -> str:
        return result_file_name(user, kind)

    def path_for(self, user: UserKey, kind: str) -> Path:
        return self.directory / self.key_name(user, kind)

    def get(self, user: UserKey, kind: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(user, kind)
        try:
            data = read_json(path)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as exc:
            app_logger.error(f"Saved result file is corrupt: {path}: {exc}")
            return None
        return data if isinstance(data, dict) else None

    def put(self, user: UserKey, kind: str, payload: Dict[str, Any]) -> bool:
        path = self.path_for(user, kind)
        existed = path.exists()
        write_json(path, payload)
        return existed

    def delete(self, user: UserKey, kind: str) -> bool:
        path = self.path_for(user, kind)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used by tests and single-shot tools."""

    def __init__(self):
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def key_name(self, user: UserKey, kind: str) -> str:
        return result_file_name(user, kind)

    def get(self, user: UserKey, kind: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payload = self._items.get(self.key_name(user, kind))
            return json.loads(json.dumps(payload)) if payload is not None else None

    def put(self, user: UserKey, kind: str, payload: Dict[str, Any]) -> bool:
        with self._lock:
            key = self.key_name(user, kind)
            existed = key in self._items
            self._items[key] = json.loads(json.dumps(payload))
            return existed

    def delete(self, user: UserKey, kind: str) -> bool:
        with self._lock:
            return self._items.pop(self.key_name(user, kind), None) is not None


def format_ton_price(value: Any, decimals: Optional[int] = None) -> Optional[str]:
    """Convert a nano-unit price to a two-decimal TON string."""
    if value in (None, "", 0, "0"):
        return None
    try:
        amount = int(value)
    except (TypeError, ValueError):
        return None
    digits = settings.TON_DEFAULT_DECIMALS if decimals is None else decimals
    return f"{amount / (10 ** digits):.2f}"


def _display_address(nft: NFTRecord) -> Optional[str]:
    extra = nft.model_extra or {}
    return (
        extra.get("user_friendly_address")
        or extra.get("friendly_address")
        or nft.name
        or nft.address
        or None
    )


class ResultStore:
    """Save / load / delete a user's result sets."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or FileKeyValueStore()

    def save_results(
        self,
        user: UserKey,
        results: List[MatchResult],
        search_params: Dict[str, Any],
        filter_options: Dict[str, Any],
    ) -> SaveOutcome:
        """Persist the ``all`` result set, replacing the previous one."""
        key = self.store.key_name(user, KIND_ALL)
        nfts = [
            {**result.nft.to_dict(), "synergyInfo": result.synergy_info(search_params)}
            for result in results
        ]
        payload = {
            "metadata": {
                "userId": user.user_id,
                "username": user.display_name,
                "fileName": key,
                "savedAt": datetime.now(timezone.utc).isoformat(),
                "searchParams": search_params,
                "filterOptions": filter_options,
                "nftsCount": len(nfts),
                "originalResultsCount": len(results),
            },
            "nfts": nfts,
        }
        return self._put(user, KIND_ALL, key, payload, len(nfts))

    def save_on_sale(
        self,
        user: UserKey,
        on_sale_nfts: Iterable[Any],
        filter_params: Optional[Dict[str, Any]] = None,
        stats: Optional[Dict[str, Any]] = None,
    ) -> SaveOutcome:
        """Persist the ``onsale`` subset as ``{price_ton, nft_address}`` entries."""
        key = self.store.key_name(user, KIND_ON_SALE)
        simplified: List[Dict[str, str]] = []
        for raw in on_sale_nfts:
            nft = coerce_nft(raw)
            if nft is None or nft.sale_price is None:
                continue
            price_ton = format_ton_price(nft.sale_price.value, nft.sale_price.decimals)
            address = _display_address(nft)
            if price_ton and address:
                simplified.append({"price_ton": price_ton, "nft_address": address})

        payload = {
            "metadata": {
                "userId": user.user_id,
                "username": user.display_name,
                "fileName": key,
                "savedAt": datetime.now(timezone.utc).isoformat(),
                "filterType": "on_sale",
                "filterParams": filter_params or {},
                "nftsCount": len(simplified),
                "api_stats": {"processing_stats": stats or {}},
            },
            "nfts": simplified,
        }
        if not simplified:
            payload["metadata"]["note"] = "No NFTs on sale"
        return self._put(user, KIND_ON_SALE, key, payload, len(simplified))

    def load_results(self, user: UserKey, kind: str = KIND_ALL) -> Optional[Dict[str, Any]]:
        """Saved payload, or None when the user has no set of this kind."""
        payload = self.store.get(user, kind)
        if payload is None:
            app_logger.debug(f"No saved {kind} results for user {user.user_id}")
        return payload

    def delete_results(self, user: UserKey, kind: str = KIND_ALL) -> bool:
        """Returns False when there was nothing to delete."""
        deleted = self.store.delete(user, kind)
        if deleted:
            app_logger.info(f"Deleted saved {kind} results for user {user.user_id}")
        return deleted

    def _put(self, user: UserKey, kind: str, key: str, payload: Dict[str, Any], count: int) -> SaveOutcome:
        try:
            overwritten = self.store.put(user, kind, payload)
        except OSError as exc:
            app_logger.error(f"Failed to save {kind} results for user {user.user_id}: {exc}")
            return SaveOutcome(success=False, kind=kind, key=key, error=str(exc))

        app_logger.info(
            f"Saved {count} NFTs to {key} ({'overwritten' if overwritten else 'created'})"
        )
        return SaveOutcome(success=True, kind=kind, count=count, key=key, overwritten=overwritten)
