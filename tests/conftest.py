"""Shared fixtures: a small collection written to a temporary data directory."""

import pytest

from synergy_backend.config.settings import settings
from sample_data import ATTRIBUTES_POWER, NFTS, SYNERGY_MAP, write_json


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Empty data directory wired into settings."""
    monkeypatch.setattr(settings, "DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def populated_data_dir(data_dir):
    """Data directory with catalog, collection and synergy map."""
    write_json(settings.attributes_power_path, ATTRIBUTES_POWER)
    write_json(
        settings.nft_data_path,
        {"collection_info": {"nft_quantity": 10, "last_updated": "2025-06-01T00:00:00Z"}, "nfts": NFTS},
    )
    write_json(settings.synergy_map_path, SYNERGY_MAP)
    return data_dir
