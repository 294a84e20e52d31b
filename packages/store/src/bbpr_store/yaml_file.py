"""YamlFileStore: a configuration document persisted as a YAML file.

Writes go to a temporary file in the same directory which is fsynced and then
renamed over the target with os.replace, so readers only ever observe the old
or the new document. Two concurrent writers race with last-writer-wins.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import yaml

from bbpr_store.base import BaseStore, StoreError

logger = logging.getLogger(__name__)


class YamlFileStore(BaseStore):
    """Stores one mapping as YAML at ``path``.

    A missing file loads as an empty mapping. A file that is not valid YAML,
    or whose top level is not a mapping, raises StoreError.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise StoreError(f"Invalid YAML in {self._path}: {e}", self._path) from e
        except OSError as e:
            raise StoreError(f"Could not read {self._path}: {e}", self._path) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StoreError(f"Expected a mapping at the top of {self._path}", self._path)
        return data

    def save(self, data: dict) -> None:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        try:
            _atomic_write(self._path, content)
        except OSError as e:
            raise StoreError(f"Could not write {self._path}: {e}", self._path) from e
        logger.debug("Wrote %s (%d bytes)", self._path, len(content))


def _atomic_write(dest: Path, content: str) -> None:
    """Write ``content`` to ``dest`` via a same-directory temp file and rename."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, dest)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
