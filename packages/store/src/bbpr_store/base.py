"""Abstract document store interface.

Configuration layers (the global profile file and the per-directory override)
are each a single mapping document. Every backend reads and writes that
mapping as a whole; the layering rules live in bbpr_core.config, so backends
stay swappable without touching resolution code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class StoreError(Exception):
    """Raised when a stored document exists but cannot be read or written."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class BaseStore(ABC):
    """Pluggable persistence for one configuration document."""

    @property
    def path(self) -> Path | None:
        """Location of the backing file, or None for in-process stores."""
        return None

    @abstractmethod
    def exists(self) -> bool:
        """Return True if a document has been persisted."""

    @abstractmethod
    def load(self) -> dict:
        """Return the stored mapping, or an empty dict if nothing is stored."""

    @abstractmethod
    def save(self, data: dict) -> None:
        """Replace the stored mapping with ``data``.

        Implementations must never leave a half-written document behind.
        """
