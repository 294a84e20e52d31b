"""In-process store used when a layer has no backing file.

Lets the configuration layer always call load()/save() without checking
whether a file-backed store was configured. Tests use it to build
configurations without touching the filesystem.
"""

from __future__ import annotations

import copy

from bbpr_store.base import BaseStore


class MemoryStore(BaseStore):
    """Keeps the document in memory for the lifetime of the process."""

    def __init__(self, data: dict | None = None):
        self._data = copy.deepcopy(data) if data is not None else None

    def exists(self) -> bool:
        return self._data is not None

    def load(self) -> dict:
        return copy.deepcopy(self._data) if self._data is not None else {}

    def save(self, data: dict) -> None:
        self._data = copy.deepcopy(data)
