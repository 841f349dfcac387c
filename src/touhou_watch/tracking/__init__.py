"""Run tracking core for touhou-watch."""

from .catalog import CatalogError, SpellCardCatalog, SpellCardInfo
from .errors import SequencingError, StateError, TrackingError
from .event_log import EventLog, EventLogError, load_event_log, parse_event_log
from .events import GameEvent, ValidationError, event_to_dict, parse_event, parse_events
from .locations import Difficulty, ModelError, Section, SectionType, ShotType, SpellCard, Stage, StageLocation
from .metrics import Metrics, MetricsEntry, SeenLocationMetrics, compute_metrics
from .practice import Attempt, GameTime, GameTimeCounter, PracticeAttempts, SetKey, SetMetrics, SetTracker, attempts_from_game
from .run import Game, apply_event, force_end, visited_locations
from .segments import RunLife, SectionEvents, sort_events, split_lives, split_sections
from .session import Session, SessionState

__all__ = [
    "CatalogError",
    "SpellCardCatalog",
    "SpellCardInfo",
    "SequencingError",
    "StateError",
    "TrackingError",
    "EventLog",
    "EventLogError",
    "load_event_log",
    "parse_event_log",
    "GameEvent",
    "ValidationError",
    "event_to_dict",
    "parse_event",
    "parse_events",
    "Difficulty",
    "ModelError",
    "Section",
    "SectionType",
    "ShotType",
    "SpellCard",
    "Stage",
    "StageLocation",
    "Metrics",
    "MetricsEntry",
    "SeenLocationMetrics",
    "compute_metrics",
    "Attempt",
    "GameTime",
    "GameTimeCounter",
    "PracticeAttempts",
    "SetKey",
    "SetMetrics",
    "SetTracker",
    "attempts_from_game",
    "Game",
    "apply_event",
    "force_end",
    "visited_locations",
    "RunLife",
    "SectionEvents",
    "sort_events",
    "split_lives",
    "split_sections",
    "Session",
    "SessionState",
]
