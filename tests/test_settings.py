from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sidebrief.summaries import (
    OverrideSettingsProvider,
    Settings,
    SettingsError,
    StaticSettingsProvider,
    SummaryType,
    YamlSettingsProvider,
    update_settings,
    write_settings,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    provider = YamlSettingsProvider(tmp_path / "absent.yaml", env={})

    assert provider.load() == Settings()
    assert provider.session_token() is None


@pytest.mark.asyncio
async def test_reads_yaml_settings(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    write_settings(
        path,
        {"engine": "muriel", "api_token": "tok", "target_language": "JA", "summary_type": "takeaway"},
    )

    settings = await YamlSettingsProvider(path, env={}).get()

    assert settings == Settings(
        engine="muriel", api_token="tok", target_language="JA", summary_type=SummaryType.TAKEAWAY
    )


def test_environment_token_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    write_settings(path, {"api_token": "from-file", "session_token": "file-session"})
    env = {"KAGI_API_TOKEN": " from-env ", "KAGI_SESSION_TOKEN": "env-session"}

    provider = YamlSettingsProvider(path, env=env)

    assert provider.load().api_token == "from-env"
    assert provider.session_token() == "env-session"
    assert YamlSettingsProvider(path, env={}).session_token() == "file-session"


def test_deprecated_engine_is_migrated_and_written_back(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("engine: daphne\napi_token: tok\n", encoding="utf-8")

    settings = YamlSettingsProvider(path, env={}).load()

    assert settings.engine == "agnes"
    assert yaml.safe_load(path.read_text(encoding="utf-8"))["engine"] == "agnes"


def test_invalid_yaml_raises_settings_error(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("engine: [unclosed\n", encoding="utf-8")

    with pytest.raises(SettingsError):
        YamlSettingsProvider(path, env={}).load()


def test_non_mapping_yaml_raises_settings_error(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(SettingsError):
        YamlSettingsProvider(path, env={}).load()


def test_update_settings_merges_and_drops_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.yaml"
    path.parent.mkdir()
    path.write_text("engine: cecil\ntheme_color: sky\n", encoding="utf-8")

    update_settings(path, api_token="new-token")

    stored = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert stored == {"engine": "cecil", "api_token": "new-token"}


def test_update_settings_rejects_unknown_keys(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        update_settings(tmp_path / "settings.yaml", theme_color="sky")


@pytest.mark.asyncio
async def test_override_provider_replaces_only_given_values() -> None:
    base = StaticSettingsProvider(Settings(engine="agnes", api_token="tok", target_language="DE"))

    settings = await OverrideSettingsProvider(base, engine="muriel", target_language=None).get()

    assert settings == Settings(engine="muriel", api_token="tok", target_language="DE")


@pytest.mark.asyncio
async def test_override_provider_migrates_deprecated_engine() -> None:
    base = StaticSettingsProvider(Settings(api_token="tok"))

    settings = await OverrideSettingsProvider(base, engine="daphne").get()

    assert settings.engine == "agnes"


def test_override_provider_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError):
        OverrideSettingsProvider(StaticSettingsProvider(), session_token="x")
