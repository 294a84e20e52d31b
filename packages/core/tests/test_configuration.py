"""Tests for bbpr_core.config: layered profiles and the local override."""

import pytest
import yaml

from bbpr_core.config import (
    LOCAL_CONFIG_FILE_NAME,
    Configuration,
    find_local_config,
    global_config_dir,
)
from bbpr_core.errors import ConfigError, ValidationError
from bbpr_store.models import LAYER_LOCAL, LAYER_PROFILE, ConfigEntry


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    directory = tmp_path / "home" / "bbpr"
    monkeypatch.setenv("BBPR_CONFIG_DIR", str(directory))
    return directory


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class TestLocations:
    def test_config_dir_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BBPR_CONFIG_DIR", str(tmp_path / "custom"))
        assert global_config_dir() == tmp_path / "custom"

    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BBPR_CONFIG_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        assert global_config_dir() == tmp_path / "xdg" / "bbpr"

    def test_falls_back_to_dot_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BBPR_CONFIG_DIR", raising=False)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert global_config_dir() == tmp_path / ".config" / "bbpr"

    def test_find_local_config_walks_up(self, tmp_path):
        marker = tmp_path / LOCAL_CONFIG_FILE_NAME
        marker.write_text("project:\n  workspace: acme\n")
        nested = tmp_path / "src" / "deep"
        nested.mkdir(parents=True)
        assert find_local_config(nested) == marker.resolve()

    def test_find_local_config_nearest_wins(self, tmp_path):
        (tmp_path / LOCAL_CONFIG_FILE_NAME).write_text("project: {}\n")
        inner = tmp_path / "sub"
        inner.mkdir()
        (inner / LOCAL_CONFIG_FILE_NAME).write_text("project: {}\n")
        assert find_local_config(inner) == (inner / LOCAL_CONFIG_FILE_NAME).resolve()

    def test_find_local_config_none(self, tmp_path):
        assert find_local_config(tmp_path) is None


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


class TestActiveProfile:
    def test_default_profile_when_user_unset(self):
        config = Configuration.in_memory({"profile": {"default": {"workspace": "acme"}}})
        assert config.active_profile_name == "default"
        assert config.active_profile.workspace == "acme"

    def test_user_key_selects_profile(self):
        config = Configuration.in_memory(
            {"user": "work", "profile": {"default": {"workspace": "home"}, "work": {"workspace": "acme"}}}
        )
        assert config.active_profile.workspace == "acme"

    def test_profile_flag_wins(self):
        config = Configuration.in_memory(
            {"user": "work", "profile": {"work": {"workspace": "acme"}, "oss": {"workspace": "oss"}}},
            profile="oss",
        )
        assert config.active_profile_name == "oss"
        assert config.active_profile.workspace == "oss"

    def test_missing_profile_is_none(self):
        assert Configuration.in_memory({"user": "ghost"}).active_profile is None


class TestGet:
    def test_shorthand_prefers_local_override(self):
        config = Configuration.in_memory(
            {"profile": {"default": {"workspace": "from-profile", "repository": "p-repo"}}},
            {"project": {"workspace": "from-local"}},
        )
        assert config.get("workspace") == "from-local"
        assert config.get("repository") == "p-repo"

    def test_qualified_key(self):
        config = Configuration.in_memory({"profile": {"work": {"api_url": "https://bb.example/2.0"}}})
        assert config.get("profile.work.api_url") == "https://bb.example/2.0"
        assert config.get("profile.other.api_url") is None

    def test_unset_user(self):
        assert Configuration.in_memory().get("user") is None

    def test_unknown_key_echoed(self):
        with pytest.raises(ValidationError, match="colour"):
            Configuration.in_memory().get("colour")

    def test_unknown_profile_option(self):
        with pytest.raises(ValidationError, match="token"):
            Configuration.in_memory().get("profile.default.token")


class TestList:
    def test_layers_and_order(self):
        config = Configuration.in_memory(
            {
                "user": "work",
                "profile": {
                    "work": {"workspace": "acme", "remote": "upstream"},
                    "alpha": {"workspace": "a"},
                },
            },
            {"project": {"workspace": "local-ws", "repository": "api"}},
        )
        assert config.list() == [
            ConfigEntry("user", "work", LAYER_PROFILE),
            ConfigEntry("profile.alpha.workspace", "a", LAYER_PROFILE),
            ConfigEntry("profile.work.remote", "upstream", LAYER_PROFILE),
            ConfigEntry("profile.work.workspace", "acme", LAYER_PROFILE),
            ConfigEntry("workspace", "local-ws", LAYER_LOCAL),
            ConfigEntry("repository", "api", LAYER_LOCAL),
        ]

    def test_empty(self):
        assert Configuration.in_memory().list() == []


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------


class TestSet:
    def test_set_then_list_shows_profile_layer(self, config_dir, tmp_path):
        config = Configuration.load(cwd=tmp_path)
        config.set("profile.default.workspace", "acme")

        reloaded = Configuration.load(cwd=tmp_path)
        assert ConfigEntry("profile.default.workspace", "acme", LAYER_PROFILE) in reloaded.list()

    def test_writes_yaml_document(self, config_dir, tmp_path):
        Configuration.load(cwd=tmp_path).set("profile.work.workspace", "acme")
        data = yaml.safe_load((config_dir / "config.yml").read_text())
        assert data == {"profile": {"work": {"workspace": "acme"}}}

    def test_shorthand_expands_to_active_profile(self):
        config = Configuration.in_memory({"user": "work"})
        assert config.set("workspace", "acme") == "profile.work.workspace"
        assert config.get("profile.work.workspace") == "acme"

    def test_shorthand_uses_profile_flag(self):
        config = Configuration.in_memory({"user": "work"}, profile="oss")
        assert config.set("remote", "upstream") == "profile.oss.remote"

    def test_set_user(self):
        config = Configuration.in_memory()
        config.set("user", "work")
        assert config.active_profile_name == "work"

    def test_rejects_bad_profile_name(self):
        with pytest.raises(ValidationError, match="bad name"):
            Configuration.in_memory().set("user", "bad name")

    def test_rejects_unknown_key(self):
        config = Configuration.in_memory()
        with pytest.raises(ValidationError, match="profile.default"):
            config.set("profile.default", "x")

    def test_preserves_other_profiles(self):
        config = Configuration.in_memory({"profile": {"a": {"workspace": "one"}}})
        config.set("profile.b.workspace", "two")
        assert config.get("profile.a.workspace") == "one"
        assert config.get("profile.b.workspace") == "two"


class TestInitLocal:
    def test_creates_marker(self, tmp_path):
        config = Configuration.in_memory()
        path = config.init_local(tmp_path, "acme", "api")
        assert path == tmp_path / LOCAL_CONFIG_FILE_NAME
        assert yaml.safe_load(path.read_text()) == {"project": {"workspace": "acme", "repository": "api"}}
        assert config.local_override.workspace == "acme"

    def test_refuses_to_overwrite(self, tmp_path):
        (tmp_path / LOCAL_CONFIG_FILE_NAME).write_text("project: {}\n")
        with pytest.raises(ValidationError, match="already exists"):
            Configuration.in_memory().init_local(tmp_path, "acme")

    def test_requires_workspace(self, tmp_path):
        with pytest.raises(ValidationError):
            Configuration.in_memory().init_local(tmp_path, "")

    def test_loaded_from_subdirectory(self, config_dir, tmp_path):
        project = tmp_path / "project"
        (project / "src").mkdir(parents=True)
        Configuration.in_memory().init_local(project, "acme", remote="upstream")

        config = Configuration.load(cwd=project / "src")
        assert config.local_override.workspace == "acme"
        assert config.local_override.remote == "upstream"


# ---------------------------------------------------------------------------
# Corrupt files
# ---------------------------------------------------------------------------


class TestCorruptConfig:
    def test_invalid_yaml_names_path(self, config_dir, tmp_path):
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text("profile: [oops\n")
        with pytest.raises(ConfigError, match="config.yml"):
            Configuration.load(cwd=tmp_path)

    def test_wrong_shape(self, config_dir, tmp_path):
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text("profile: acme\n")
        with pytest.raises(ConfigError, match="Malformed"):
            Configuration.load(cwd=tmp_path)

    def test_exit_code(self):
        assert ConfigError.exit_code == 5
