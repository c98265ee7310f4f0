"""Settings providers: where the resolver reads user preferences from."""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import yaml

from .types import Settings

TOKEN_ENV_VAR = "KAGI_API_TOKEN"
SESSION_ENV_VAR = "KAGI_SESSION_TOKEN"

SETTINGS_FIELDS = ("engine", "api_token", "target_language", "summary_type")
SETTINGS_KEYS = SETTINGS_FIELDS + ("session_token",)
DEPRECATED_ENGINES = {"daphne": "agnes"}

logger = logging.getLogger(__name__)


class SettingsError(RuntimeError):
    """Raised when a settings file exists but cannot be read or parsed."""


class SettingsProvider(Protocol):
    async def get(self) -> Settings:
        ...


class StaticSettingsProvider:
    """Serves a fixed :class:`Settings` instance."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or Settings()

    async def get(self) -> Settings:
        return self._settings


class OverrideSettingsProvider:
    """Applies per-call overrides (engine, language, ...) on top of another provider."""

    def __init__(self, base: SettingsProvider, **overrides: Any) -> None:
        unknown = set(overrides) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings keys: {', '.join(sorted(unknown))}")
        self._base = base
        self._overrides = {key: value for key, value in overrides.items() if value is not None}

    async def get(self) -> Settings:
        settings = await self._base.get()
        merged = {
            "engine": settings.engine,
            "api_token": settings.api_token,
            "target_language": settings.target_language,
            "summary_type": settings.summary_type,
        }
        merged.update(self._overrides)
        merged, _ = migrate_settings(merged)
        return Settings.from_mapping(merged)


class YamlSettingsProvider:
    """Loads settings from a YAML file, with environment overrides for secrets."""

    def __init__(self, path: Path, env: Optional[Mapping[str, str]] = None) -> None:
        self.path = Path(path).expanduser()
        self._env = os.environ if env is None else env

    async def get(self) -> Settings:
        return await asyncio.to_thread(self.load)

    def load(self) -> Settings:
        data = self.load_raw()
        env_token = (self._env.get(TOKEN_ENV_VAR) or "").strip()
        if env_token:
            data["api_token"] = env_token
        return Settings.from_mapping(data)

    def load_raw(self) -> Dict[str, Any]:
        """Return the stored mapping, migrating deprecated values in place."""
        data = read_settings(self.path)
        data, changed = migrate_settings(data)
        if changed:
            try:
                write_settings(self.path, data)
            except OSError as exc:
                logger.warning("Unable to persist migrated settings to %s: %s", self.path, exc)
        return data

    def session_token(self) -> Optional[str]:
        env_value = (self._env.get(SESSION_ENV_VAR) or "").strip()
        if env_value:
            return env_value
        stored = self.load_raw().get("session_token")
        if not stored:
            return None
        return str(stored).strip() or None


def migrate_settings(data: Mapping[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Rename deprecated engines; returns the new mapping and whether it changed."""
    migrated = dict(data)
    engine = migrated.get("engine")
    replacement = DEPRECATED_ENGINES.get(engine) if isinstance(engine, str) else None
    if replacement:
        logger.info("Migrating deprecated engine %r to %r", engine, replacement)
        migrated["engine"] = replacement
        return migrated, True
    return migrated, False


def read_settings(path: Path) -> Dict[str, Any]:
    path = Path(path).expanduser()
    if not path.is_file():
        return {}
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Unable to read settings file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw_text) if raw_text.strip() else {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"Settings file {path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a mapping")
    return data


def write_settings(path: Path, data: Mapping[str, Any]) -> None:
    """Persist settings as YAML, keeping only known keys."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    serialized = {key: data[key] for key in SETTINGS_KEYS if key in data}
    path.write_text(yaml.safe_dump(serialized, sort_keys=True, allow_unicode=False), encoding="utf-8")


def update_settings(path: Path, **values: Any) -> Dict[str, Any]:
    unknown = set(values) - set(SETTINGS_KEYS)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(sorted(unknown))}")
    data = read_settings(path)
    data.update(values)
    data, _ = migrate_settings(data)
    write_settings(path, data)
    return data
