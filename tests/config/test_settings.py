"""Tests for MetaforgeSettings — unified settings with TOML source."""

from pathlib import Path

import pytest

from metaforge.config.discovery import CONFIG_ENV_VAR
from metaforge.config.settings import MetaforgeSettings
from metaforge.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv("METAFORGE_DATABASE__URL", raising=False)
    monkeypatch.delenv("METAFORGE_VERBOSE", raising=False)


class TestMetaforgeSettingsDefaults:
    def test_all_defaults(self, tmp_path: Path) -> None:
        """With no TOML and no env vars, all fields use code defaults."""
        settings = MetaforgeSettings.load(project_root=tmp_path)
        assert settings.project_root == tmp_path
        assert settings.config_path is None
        assert settings.verbose is False
        assert settings.repository.default_page_size == 20
        assert settings.database_url == f"sqlite+aiosqlite:///{tmp_path / 'metaforge.db'}"

    def test_frozen(self, tmp_path: Path) -> None:
        settings = MetaforgeSettings.load(project_root=tmp_path)
        with pytest.raises(Exception):
            settings.verbose = True  # type: ignore[misc]


class TestTomlSource:
    def test_loads_from_toml(self, tmp_path: Path) -> None:
        toml = tmp_path / "metaforge.toml"
        toml.write_text('[database]\nurl = "sqlite+aiosqlite:///:memory:"\necho = true\n')
        settings = MetaforgeSettings.load(project_root=tmp_path)
        assert settings.database_url == "sqlite+aiosqlite:///:memory:"
        assert settings.database.echo is True
        assert settings.database.wal is True  # default preserved
        assert settings.config_path == toml

    def test_root_from_discovered_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        toml = tmp_path / "metaforge.toml"
        toml.write_text("")
        child = tmp_path / "src"
        child.mkdir()
        monkeypatch.chdir(child)
        settings = MetaforgeSettings.load()
        assert settings.project_root == tmp_path

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        custom = tmp_path / "custom" / "my.toml"
        custom.parent.mkdir(parents=True)
        custom.write_text("[repository]\ndefault_page_size = 7\n")
        settings = MetaforgeSettings.load(config_path=str(custom), project_root=tmp_path)
        assert settings.repository.default_page_size == 7
        assert settings.config_path == custom

    def test_missing_explicit_path(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            MetaforgeSettings.load(config_path=tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        (tmp_path / "metaforge.toml").write_text("[database\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            MetaforgeSettings.load(project_root=tmp_path)


class TestPriority:
    def test_env_beats_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "metaforge.toml").write_text('[database]\nurl = "sqlite+aiosqlite:///a.db"\n')
        monkeypatch.setenv("METAFORGE_DATABASE__URL", "sqlite+aiosqlite:///b.db")
        settings = MetaforgeSettings.load(project_root=tmp_path)
        assert settings.database_url == "sqlite+aiosqlite:///b.db"

    def test_overrides_beat_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METAFORGE_VERBOSE", "true")
        settings = MetaforgeSettings.load(project_root=tmp_path, verbose=False)
        assert settings.verbose is False
