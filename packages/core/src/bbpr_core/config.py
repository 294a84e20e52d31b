"""Layered configuration: global profiles plus a per-directory override.

Load once per invocation with Configuration.load() and pass the result to the
components that need it. Precedence when answering a lookup:
  1. Local override (.bbpr.yml found by walking up from the working directory)
  2. Active profile from the global config file
The explicit -R flag sits above both and is handled by ContextResolver.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from bbpr_store.base import BaseStore, StoreError
from bbpr_store.memory import MemoryStore
from bbpr_store.models import (
    LAYER_LOCAL,
    LAYER_PROFILE,
    LOCAL_OPTIONS,
    PROFILE_OPTIONS,
    ConfigEntry,
    GlobalDocument,
    LocalOverride,
    Profile,
)
from bbpr_store.yaml_file import YamlFileStore

from bbpr_core.errors import ConfigError, ValidationError

logger = logging.getLogger(__name__)

APP_NAME = "bbpr"
CONFIG_FILE_NAME = "config.yml"
LOCAL_CONFIG_FILE_NAME = ".bbpr.yml"
DEFAULT_PROFILE = "default"
DEFAULT_REMOTE = "origin"

_PROFILE_NAME_RE = re.compile(r"^[A-Za-z0-9_@.+-]+$")
_PROFILE_KEY_RE = re.compile(r"^profile\.(?P<name>.+)\.(?P<option>[a-z_]+)$")
_SHORTHAND_KEYS = ("workspace", "repository", "remote")


def global_config_dir() -> Path:
    """Directory holding the per-user config file.

    BBPR_CONFIG_DIR wins, then $XDG_CONFIG_HOME/bbpr, then ~/.config/bbpr.
    """
    override = os.environ.get("BBPR_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / APP_NAME


def find_local_config(start: str | Path | None = None) -> Path | None:
    """Walk up from ``start`` (default: cwd) to the first .bbpr.yml marker."""
    current = Path(start or os.getcwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / LOCAL_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


class Configuration:
    """Profiles and local override for one invocation.

    The only writer of configuration documents. ``profile_override`` is the
    --profile flag: it selects the active profile without persisting anything.
    """

    def __init__(
        self,
        global_store: BaseStore,
        local_store: BaseStore | None = None,
        profile_override: str | None = None,
    ):
        self._global_store = global_store
        self._local_store = local_store
        self._profile_override = profile_override
        self._global = _read(global_store, GlobalDocument.from_dict)
        self._local: LocalOverride | None = None
        if local_store is not None and local_store.exists():
            self._local = _read(local_store, lambda d: LocalOverride.from_dict(local_store.path or Path("."), d))

    @classmethod
    def load(cls, cwd: str | Path | None = None, profile: str | None = None) -> Configuration:
        global_path = global_config_dir() / CONFIG_FILE_NAME
        local_path = find_local_config(cwd)
        logger.debug("Global config: %s, local override: %s", global_path, local_path)
        return cls(
            YamlFileStore(global_path),
            YamlFileStore(local_path) if local_path else None,
            profile_override=profile,
        )

    @classmethod
    def in_memory(cls, global_data: dict | None = None, local_data: dict | None = None, profile: str | None = None):
        """Build a configuration that never touches the filesystem."""
        return cls(
            MemoryStore(global_data or {}),
            MemoryStore(local_data) if local_data is not None else None,
            profile_override=profile,
        )

    # ------------------------------------------------------------------ #
    # Read side                                                            #
    # ------------------------------------------------------------------ #

    @property
    def active_profile_name(self) -> str:
        return self._profile_override or self._global.user or DEFAULT_PROFILE

    @property
    def active_profile(self) -> Profile | None:
        return self._global.profiles.get(self.active_profile_name)

    @property
    def local_override(self) -> LocalOverride | None:
        return self._local

    @property
    def global_path(self) -> Path | None:
        return self._global_store.path

    def get(self, key: str) -> str | None:
        """Return the value behind a recognized key, or None if unset.

        Shorthand keys answer with the effective value: local override first,
        then the active profile.
        """
        if key == "user":
            return self._global.user
        if key in _SHORTHAND_KEYS:
            if self._local is not None and getattr(self._local, key):
                return getattr(self._local, key)
            profile = self.active_profile
            return getattr(profile, key) if profile else None
        name, option = self._parse_profile_key(key)
        profile = self._global.profiles.get(name)
        return getattr(profile, option) if profile else None

    def list(self) -> list[ConfigEntry]:
        """Every stored value, labelled with the layer it lives in."""
        entries: list[ConfigEntry] = []
        if self._global.user is not None:
            entries.append(ConfigEntry("user", self._global.user, LAYER_PROFILE))
        for name in sorted(self._global.profiles):
            profile = self._global.profiles[name]
            for option in sorted(PROFILE_OPTIONS):
                value = getattr(profile, option)
                if value is not None:
                    entries.append(ConfigEntry(f"profile.{name}.{option}", value, LAYER_PROFILE))
        if self._local is not None:
            for option in LOCAL_OPTIONS:
                value = getattr(self._local, option)
                if value:
                    entries.append(ConfigEntry(option, value, LAYER_LOCAL))
        return entries

    # ------------------------------------------------------------------ #
    # Write side                                                           #
    # ------------------------------------------------------------------ #

    def set(self, key: str, value: str) -> str:
        """Persist ``value`` under ``key`` in the global file.

        Returns the fully-qualified key that was written (shorthand keys expand
        to the active profile). Raises ValidationError for unrecognized keys.
        """
        if key == "user":
            _check_profile_name(value)
            self._global.user = value
            qualified = key
        else:
            if key in _SHORTHAND_KEYS:
                key = f"profile.{self.active_profile_name}.{key}"
            name, option = self._parse_profile_key(key)
            profile = self._global.profiles.setdefault(name, Profile(name=name))
            setattr(profile, option, value)
            qualified = key

        _write(self._global_store, self._global.to_dict())
        logger.debug("Set %s = %s", qualified, value)
        return qualified

    def init_local(
        self,
        directory: str | Path,
        workspace: str,
        repository: str | None = None,
        remote: str | None = None,
    ) -> Path:
        """Create the .bbpr.yml marker in ``directory``.

        Refuses to overwrite an existing marker.
        """
        if not workspace:
            raise ValidationError("A workspace is required to initialize a local configuration.")
        path = Path(directory) / LOCAL_CONFIG_FILE_NAME
        if path.exists():
            raise ValidationError(f"Local configuration already exists at {path}")

        override = LocalOverride(path=path, workspace=workspace, repository=repository or None, remote=remote or None)
        store = YamlFileStore(path)
        _write(store, override.to_dict())
        self._local_store = store
        self._local = override
        return path

    @staticmethod
    def _parse_profile_key(key: str) -> tuple[str, str]:
        match = _PROFILE_KEY_RE.match(key)
        if not match:
            valid = ", ".join(["user", *_SHORTHAND_KEYS, "profile.<name>.<option>"])
            raise ValidationError(f"Unrecognized config key '{key}'. Valid keys: {valid}")
        name, option = match.group("name"), match.group("option")
        _check_profile_name(name)
        if option not in PROFILE_OPTIONS:
            raise ValidationError(
                f"Unrecognized profile option '{option}' in '{key}'. Valid options: {', '.join(PROFILE_OPTIONS)}"
            )
        return name, option


def _check_profile_name(name: str) -> None:
    if not _PROFILE_NAME_RE.match(name or ""):
        raise ValidationError(f"Invalid profile name '{name}'")


def _read(store: BaseStore, parse):
    try:
        return parse(store.load())
    except StoreError as e:
        raise ConfigError(str(e)) from e
    except ValueError as e:
        raise ConfigError(f"Malformed configuration in {store.path}: {e}") from e


def _write(store: BaseStore, data: dict) -> None:
    try:
        store.save(data)
    except StoreError as e:
        raise ConfigError(str(e)) from e
