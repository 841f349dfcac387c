"""touhou-watch: run tracking and section metrics for Touhou 7."""

from .config import ConfigError, WatcherConfig, load_config
from .formatting import describe_event, format_cap_rate, format_duration
from .tracking import (
    Game,
    Metrics,
    MetricsEntry,
    Session,
    SessionState,
    SpellCardCatalog,
    compute_metrics,
    parse_event,
    split_lives,
    split_sections,
)

__all__ = [
    "ConfigError",
    "WatcherConfig",
    "load_config",
    "describe_event",
    "format_cap_rate",
    "format_duration",
    "Game",
    "Metrics",
    "MetricsEntry",
    "Session",
    "SessionState",
    "SpellCardCatalog",
    "compute_metrics",
    "parse_event",
    "split_lives",
    "split_sections",
]
