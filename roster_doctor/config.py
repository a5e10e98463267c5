"""Import settings: defaults, optional JSON file, then environment overrides."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from roster_doctor.similarity import SCORERS

ENV_PREFIX = "ROSTER_DOCTOR_"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}


class ConfigError(ValueError):
    """Raised when a settings file or override cannot be used."""


@dataclass(frozen=True)
class ImportSettings:
    fuzzy_threshold: float = 0.4
    fuzzy_scorer: str = "dice"
    max_rows: int = 1000
    max_file_bytes: int = 5 * 1024 * 1024
    preview_rows: int = 5
    max_reported_errors: int = 50

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_SETTINGS = ImportSettings()

_FIELD_TYPES = {item.name: type(getattr(DEFAULT_SETTINGS, item.name)) for item in fields(ImportSettings)}


def _coerce(name: str, value: Any) -> Any:
    expected = _FIELD_TYPES[name]
    if isinstance(value, bool):
        raise ConfigError(f"Setting {name!r} must be {expected.__name__}, got a boolean")
    try:
        if expected is int:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            return int(value)
        if expected is float:
            return float(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Setting {name!r} must be {expected.__name__}, got {value!r}") from exc


def validate_settings(settings: ImportSettings) -> ImportSettings:
    if not 0.0 <= settings.fuzzy_threshold <= 1.0:
        raise ConfigError(f"fuzzy_threshold must be between 0 and 1, got {settings.fuzzy_threshold}")
    if settings.fuzzy_scorer not in SCORERS:
        raise ConfigError(
            f"fuzzy_scorer must be one of {', '.join(sorted(SCORERS))}, got {settings.fuzzy_scorer!r}"
        )
    for name in ("max_rows", "max_file_bytes", "preview_rows", "max_reported_errors"):
        if getattr(settings, name) < 1:
            raise ConfigError(f"{name} must be a positive integer")
    return settings


def apply_overrides(settings: ImportSettings, overrides: Mapping[str, Any]) -> ImportSettings:
    unknown = sorted(set(overrides) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")
    changes = {name: _coerce(name, value) for name, value in overrides.items()}
    return validate_settings(replace(settings, **changes))


def read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML config files are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    # Starter files nest everything under "import".
    section = payload.get("import", payload)
    if not isinstance(section, dict):
        raise ConfigError("Config 'import' section must be a JSON object.")
    return section


def environment_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in _FIELD_TYPES:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is not None and value.strip():
            overrides[name] = value.strip()
    return overrides


def load_settings(path: Path | str | None = None, environ: Mapping[str, str] | None = None) -> ImportSettings:
    """Build settings from defaults, an optional JSON file, then ROSTER_DOCTOR_* env vars."""
    settings = DEFAULT_SETTINGS
    if path is not None:
        settings = apply_overrides(settings, read_settings_file(Path(path)))
    env = os.environ if environ is None else environ
    return apply_overrides(settings, environment_overrides(env))


def starter_config() -> dict[str, Any]:
    return {"import": DEFAULT_SETTINGS.to_dict()}
