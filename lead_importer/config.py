"""Configuration helpers for the lead import service."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "LEAD_IMPORTER_"


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


@dataclass(frozen=True)
class Settings:
    """Runtime limits and defaults for imports."""

    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_extensions: FrozenSet[str] = field(default_factory=lambda: frozenset({"csv", "xlsx", "xls"}))
    default_batch_size: int = 100
    job_retention_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0
    batch_write_timeout_seconds: float = 30.0
    max_workers: int = 4
    sample_rows: int = 5


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid JSON: {exc}") from exc

    try:
        import yaml  # type: ignore
    except ImportError as exc:  # pragma: no cover - dependency optional
        raise ConfigurationError(
            "YAML configuration requires the 'pyyaml' package to be installed"
        ) from exc

    try:
        return yaml.safe_load(text) or {}  # type: ignore[no-any-return]
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file '{file_path}' is not valid YAML: {exc}") from exc


def load_settings(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from defaults, an optional file, and the environment.

    The file may hold the values at its top level or under an ``importer``
    section. Environment variables named ``LEAD_IMPORTER_<FIELD>`` win over
    both.
    """

    values: Dict[str, Any] = {}
    if path is not None:
        data = load_configuration(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")
        section = data.get("importer", data)
        if not isinstance(section, dict):
            raise ConfigurationError("The 'importer' configuration section must be a mapping")
        values.update(section)

    env = os.environ if environ is None else environ
    for setting in fields(Settings):
        key = f"{ENV_PREFIX}{setting.name.upper()}"
        if key in env:
            values[setting.name] = env[key]

    return apply_overrides(Settings(), values)


def apply_overrides(settings: Settings, values: Mapping[str, Any]) -> Settings:
    known = {setting.name: setting for setting in fields(Settings)}
    updates: Dict[str, Any] = {}
    for name, raw in values.items():
        if name not in known:
            LOGGER.debug("Ignoring unknown setting %s", name)
            continue
        updates[name] = _coerce(name, getattr(settings, name), raw)
    return replace(settings, **updates)


def _coerce(name: str, current: Any, raw: Any) -> Any:
    try:
        if isinstance(current, frozenset):
            items = raw.split(",") if isinstance(raw, str) else raw
            return frozenset(str(item).strip().lower().lstrip(".") for item in items if str(item).strip())
        if isinstance(current, bool):
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for setting '{name}': {raw!r}") from exc
    return raw


__all__ = ["ConfigurationError", "Settings", "apply_overrides", "load_configuration", "load_settings"]
