from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .events import Pause, Unpause, to_epoch_ms
from .locations import Difficulty, ShotType, StageLocation
from .run import Game
from .segments import sort_events, split_sections

logger = logging.getLogger(__name__)

SET_SIZE = 25
MIN_ATTEMPT_DURATION = timedelta(seconds=2)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class GameTime:
    """A wall-clock instant paired with real and pause-free time since run start."""

    timestamp: datetime
    relative_real: timedelta
    relative_game: timedelta

    def real_time_between(self, other: "GameTime") -> timedelta:
        return abs(self.relative_real - other.relative_real)

    def play_time_between(self, other: "GameTime") -> timedelta:
        return abs(self.relative_game - other.relative_game)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": to_epoch_ms(self.timestamp),
            "relative_real_ms": self.relative_real // timedelta(milliseconds=1),
            "relative_game_ms": self.relative_game // timedelta(milliseconds=1),
        }


class GameTimeCounter:
    def __init__(self, start_time: datetime, clock: Clock = utc_now):
        self.start_time = start_time
        self.clock = clock
        self.total_pause_time = timedelta(0)
        self.last_pause: Optional[datetime] = None

    @property
    def is_paused(self) -> bool:
        return self.last_pause is not None

    def pause(self, at: Optional[datetime] = None) -> None:
        if self.last_pause is None:
            self.last_pause = at if at is not None else self.clock()

    def unpause(self, at: Optional[datetime] = None) -> None:
        if self.last_pause is None:
            return
        now = at if at is not None else self.clock()
        self.total_pause_time += max(now - self.last_pause, timedelta(0))
        self.last_pause = None

    def at(self, instant: datetime) -> GameTime:
        relative_real = instant - self.start_time
        paused = self.total_pause_time
        if self.last_pause is not None:
            paused += max(instant - self.last_pause, timedelta(0))
        return GameTime(
            timestamp=instant,
            relative_real=relative_real,
            relative_game=max(relative_real - paused, timedelta(0)),
        )

    def now(self) -> GameTime:
        return self.at(self.clock())


@dataclass(slots=True, frozen=True)
class Attempt:
    start_time: GameTime
    end_time: GameTime
    success: bool

    @property
    def duration(self) -> timedelta:
        return self.end_time.real_time_between(self.start_time)

    @property
    def play_time(self) -> timedelta:
        return self.end_time.play_time_between(self.start_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.to_dict(),
            "end_time": self.end_time.to_dict(),
            "success": self.success,
            "duration_ms": self.duration // timedelta(milliseconds=1),
            "play_time_ms": self.play_time // timedelta(milliseconds=1),
        }


@dataclass(slots=True, frozen=True)
class SetMetrics:
    attempts: int = 0
    captures: int = 0
    total_time: timedelta = timedelta(0)

    @classmethod
    def from_attempts(cls, attempts: Iterable[Attempt]) -> "SetMetrics":
        attempts = list(attempts)
        return cls(
            attempts=len(attempts),
            captures=sum(1 for attempt in attempts if attempt.success),
            total_time=sum((attempt.play_time for attempt in attempts), timedelta(0)),
        )

    @classmethod
    def total(cls, sets: Iterable["SetMetrics"]) -> "SetMetrics":
        result = cls()
        for item in sets:
            result = result.add(item)
        return result

    def add(self, other: "SetMetrics") -> "SetMetrics":
        return SetMetrics(
            attempts=self.attempts + other.attempts,
            captures=self.captures + other.captures,
            total_time=self.total_time + other.total_time,
        )

    def __add__(self, other: object) -> "SetMetrics":
        if not isinstance(other, SetMetrics):
            return NotImplemented
        return self.add(other)

    @property
    def cap_rate(self) -> Optional[float]:
        if self.attempts == 0:
            return None
        return self.captures / self.attempts

    @property
    def average_time(self) -> Optional[timedelta]:
        if self.attempts == 0:
            return None
        return self.total_time / self.attempts

    def to_dict(self) -> Dict[str, Any]:
        average = self.average_time
        return {
            "attempts": self.attempts,
            "captures": self.captures,
            "total_time_ms": self.total_time // timedelta(milliseconds=1),
            "cap_rate": self.cap_rate,
            "average_time_ms": average // timedelta(milliseconds=1) if average is not None else None,
        }


@dataclass(slots=True, frozen=True, order=True)
class SetKey:
    shot: ShotType
    difficulty: Difficulty
    location: StageLocation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shot": self.shot.display_name,
            "difficulty": self.difficulty.display_name,
            "location": self.location.to_dict(),
        }


@dataclass(slots=True)
class PracticeAttempts:
    """Attempts for one key, kept in arrival order."""

    key: SetKey
    attempts: List[Attempt] = field(default_factory=list)

    def add(self, attempt: Attempt) -> None:
        self.attempts.append(attempt)

    def sets(self, size: int = SET_SIZE) -> List[List[Attempt]]:
        if size <= 0:
            raise ValueError("Set size must be positive.")
        return [self.attempts[index:index + size] for index in range(0, len(self.attempts), size)]

    def set_metrics(self, size: int = SET_SIZE) -> List[SetMetrics]:
        return [SetMetrics.from_attempts(chunk) for chunk in self.sets(size)]

    def total_metrics(self) -> SetMetrics:
        return SetMetrics.from_attempts(self.attempts)

    def last_attempt(self) -> Optional[Attempt]:
        if not self.attempts:
            return None
        return max(self.attempts, key=lambda attempt: attempt.start_time.timestamp)

    def to_dict(self, size: int = SET_SIZE) -> Dict[str, Any]:
        last = self.last_attempt()
        return {
            "key": self.key.to_dict(),
            "location_name": self.key.location.display_name(),
            "attempt_count": len(self.attempts),
            "sets": [metrics.to_dict() for metrics in self.set_metrics(size)],
            "total": self.total_metrics().to_dict(),
            "last_attempt": to_epoch_ms(last.start_time.timestamp) if last is not None else None,
        }


class SetTracker:
    def __init__(self, min_duration: timedelta = MIN_ATTEMPT_DURATION):
        self.min_duration = min_duration
        self.track_range: Optional[Tuple[StageLocation, StageLocation]] = None
        self._attempts: Dict[SetKey, PracticeAttempts] = {}

    def start_tracking(self, start: StageLocation, end: StageLocation) -> None:
        self.track_range = (start, end) if start <= end else (end, start)
        logger.info("Tracking practice sets from %s to %s", self.track_range[0], self.track_range[1])

    def end_tracking(self) -> None:
        if self.track_range is not None:
            logger.info("Ending practice set range filter")
        self.track_range = None

    def in_range(self, location: StageLocation) -> bool:
        if self.track_range is None:
            return True
        start, end = self.track_range
        return start <= location <= end

    def push_attempt(self, key: SetKey, attempt: Attempt) -> bool:
        if attempt.duration < self.min_duration or not self.in_range(key.location):
            return False
        bucket = self._attempts.get(key)
        if bucket is None:
            bucket = PracticeAttempts(key)
            self._attempts[key] = bucket
        bucket.add(attempt)
        return True

    def get(self, key: SetKey) -> Optional[PracticeAttempts]:
        return self._attempts.get(key)

    def iter_attempts(self) -> Iterator[PracticeAttempts]:
        for key in sorted(self._attempts):
            if self.in_range(key.location):
                yield self._attempts[key]

    def __len__(self) -> int:
        return len(self._attempts)


def attempts_from_game(game: Game) -> List[Tuple[SetKey, Attempt]]:
    """Time each concrete-location section of ``game`` as a practice attempt.

    Raises ``SequencingError`` when the run's events cannot be segmented.
    """
    counter = GameTimeCounter(game.start_time)
    times: Dict[int, GameTime] = {}
    ordered = sort_events(game.events)
    for event in ordered:
        if isinstance(event, Pause):
            counter.pause(event.time)
        elif isinstance(event, Unpause):
            counter.unpause(event.time)
        times[id(event)] = counter.at(event.time)

    attempts: List[Tuple[SetKey, Attempt]] = []
    for section in split_sections(ordered):
        if section.location.is_unknown:
            continue
        key = SetKey(game.shot, game.difficulty, section.location)
        attempt = Attempt(
            start_time=times[id(section.first)],
            end_time=times[id(section.terminal)],
            success=section.captured,
        )
        attempts.append((key, attempt))
    return attempts


def track_game(tracker: SetTracker, game: Game) -> int:
    """Feed a finished run's attempts to ``tracker``. Returns how many were kept."""
    kept = 0
    for key, attempt in attempts_from_game(game):
        if tracker.push_attempt(key, attempt):
            kept += 1
    return kept


def merge_set_metrics(items: Sequence[PracticeAttempts]) -> SetMetrics:
    return SetMetrics.total(item.total_metrics() for item in items)
