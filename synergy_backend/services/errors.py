"""Domain errors raised by the synergy services.

Only fatal conditions are exceptions. "Not found" and "empty input" are
ordinary return values that callers branch on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union


class SynergyError(Exception):
    """Base class for synergy service errors."""


class MissingSourceDataError(SynergyError):
    """A required source file is absent or cannot be parsed."""

    def __init__(self, path: Union[str, Path], reason: str = "file not found"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Missing source data {self.path}: {reason}")
