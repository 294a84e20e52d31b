"""Configuration records persisted by the store layer.

Decoupled from bbpr_core so documents can be read and written without the
resolution logic; bbpr_core.config is the only writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

PROFILE_OPTIONS = ("workspace", "user", "repository", "remote", "api_url", "output_format")
LOCAL_OPTIONS = ("workspace", "repository", "remote")

LAYER_PROFILE = "profile"
LAYER_LOCAL = "local"


@dataclass
class Profile:
    """A named set of defaults stored in the global config file."""

    name: str
    workspace: str | None = None
    user: str | None = None
    repository: str | None = None
    remote: str | None = None
    api_url: str | None = None
    output_format: str | None = None

    @classmethod
    def from_dict(cls, name: str, d: dict | None) -> Profile:
        d = d or {}
        return cls(name=name, **{opt: _as_str(d.get(opt)) for opt in PROFILE_OPTIONS})

    def to_dict(self) -> dict:
        return {opt: getattr(self, opt) for opt in PROFILE_OPTIONS if getattr(self, opt) is not None}


@dataclass
class LocalOverride:
    """Per-directory settings written by `bbpr config init`."""

    path: Path
    workspace: str | None = None
    repository: str | None = None
    remote: str | None = None

    @classmethod
    def from_dict(cls, path: Path, d: dict | None) -> LocalOverride:
        project = (d or {}).get("project") or {}
        if not isinstance(project, dict):
            raise ValueError("'project' must be a table of options")
        return cls(path=path, **{opt: _as_str(project.get(opt)) for opt in LOCAL_OPTIONS})

    def to_dict(self) -> dict:
        return {"project": {opt: getattr(self, opt) for opt in LOCAL_OPTIONS if getattr(self, opt)}}


@dataclass(frozen=True)
class ConfigEntry:
    """One row of `bbpr config list`."""

    key: str
    value: str
    layer: str  # LAYER_PROFILE | LAYER_LOCAL


@dataclass
class GlobalDocument:
    """Parsed form of the global config file."""

    user: str | None = None
    profiles: dict[str, Profile] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict | None) -> GlobalDocument:
        d = d or {}
        raw_profiles = d.get("profile") or {}
        if not isinstance(raw_profiles, dict):
            raise ValueError("'profile' must map profile names to tables of options")
        if any(body is not None and not isinstance(body, dict) for body in raw_profiles.values()):
            raise ValueError("'profile' must map profile names to tables of options")
        profiles = {str(name): Profile.from_dict(str(name), body) for name, body in raw_profiles.items()}
        return cls(user=_as_str(d.get("user")), profiles=profiles)

    def to_dict(self) -> dict:
        data: dict = {}
        if self.user is not None:
            data["user"] = self.user
        if self.profiles:
            data["profile"] = {name: p.to_dict() for name, p in self.profiles.items()}
        return data


def _as_str(value) -> str | None:
    # YAML turns bare numbers and booleans into non-strings; options are always text.
    if value is None:
        return None
    return str(value)
