from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .tracking.locations import ModelError, StageLocation

CONFIG_ENV_VAR = "TOUHOU_WATCH_CONFIG"
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


class ConfigError(RuntimeError):
    """Raised when configuration file is invalid."""


@dataclass(slots=True, frozen=True)
class WatcherConfig:
    spellcards_path: Optional[Path] = None
    set_size: int = 25
    min_attempt_ms: int = 2000
    log_level: str = "info"
    host: str = "127.0.0.1"
    port: int = 8000
    track_range: Optional[Tuple[StageLocation, StageLocation]] = None


def _read_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise ConfigError(
                "YAML config requested, but PyYAML is not installed. "
                "Install `pyyaml` or use JSON."
            ) from exc
        return yaml.safe_load(text)

    raise ConfigError(f"Unsupported config format '{suffix}'. Use .json or .yaml/.yml.")


def _positive_int(payload: Dict[str, Any], key: str, default: int) -> int:
    raw = payload.get(key, default)
    if isinstance(raw, bool):
        raise ConfigError(f"Field '{key}' must be integer.")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Field '{key}' must be integer.") from exc
    if value <= 0:
        raise ConfigError(f"Field '{key}' must be positive.")
    return value


def _load_track_range(raw: Any) -> Optional[Tuple[StageLocation, StageLocation]]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ConfigError("Field 'track_range' must be an object with 'start' and 'end'.")
    try:
        start = StageLocation.from_dict(raw.get("start"))
        end = StageLocation.from_dict(raw.get("end"))
    except ModelError as exc:
        raise ConfigError(f"Invalid track_range: {exc}") from exc
    if start.is_unknown or end.is_unknown:
        raise ConfigError("track_range bounds must be concrete locations.")
    return (start, end) if start <= end else (end, start)


def load_config(path: Path | str) -> WatcherConfig:
    path = Path(path)
    payload = _read_raw(path)

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be an object (JSON/YAML mapping).")

    spellcards_raw = payload.get("spellcards_path")
    spellcards_path: Optional[Path] = None
    if spellcards_raw:
        spellcards_path = Path(str(spellcards_raw)).expanduser()
        if not spellcards_path.is_absolute():
            spellcards_path = (path.parent / spellcards_path).resolve()

    log_level = str(payload.get("log_level", "info")).strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Field 'log_level' must be one of {', '.join(LOG_LEVELS)}.")

    port = _positive_int(payload, "port", 8000)
    if port > 65535:
        raise ConfigError("Field 'port' must be a valid TCP port.")

    return WatcherConfig(
        spellcards_path=spellcards_path,
        set_size=_positive_int(payload, "set_size", 25),
        min_attempt_ms=_positive_int(payload, "min_attempt_ms", 2000),
        log_level=log_level,
        host=str(payload.get("host", "127.0.0.1")).strip() or "127.0.0.1",
        port=port,
        track_range=_load_track_range(payload.get("track_range")),
    )


def config_from_env() -> WatcherConfig:
    """Load the file named by ``TOUHOU_WATCH_CONFIG``, or return defaults."""
    env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if not env_path:
        return WatcherConfig()
    return load_config(Path(env_path).expanduser())
