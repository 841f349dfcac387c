from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .errors import StateError
from .events import Bomb, BorderEnd, EndGame, EnterSection, GameEvent, Miss, StartGame, to_epoch_ms
from .locations import Difficulty, SectionType, ShotType, Stage, StageLocation

TimedLocation = Tuple[datetime, StageLocation]


@dataclass(slots=True)
class Game:
    """Mutable aggregate for one run, built from its StartGame event."""

    start_time: datetime
    current_location: StageLocation
    shot: ShotType
    difficulty: Difficulty
    practice: bool
    end_time: Optional[datetime] = None
    cleared: bool = False
    continues: int = 0
    locations_seen: List[StageLocation] = field(default_factory=list)
    misses: List[TimedLocation] = field(default_factory=list)
    bombs: List[TimedLocation] = field(default_factory=list)
    breaks: List[TimedLocation] = field(default_factory=list)
    events: List[GameEvent] = field(default_factory=list)

    @classmethod
    def from_start_event(cls, event: StartGame) -> "Game":
        if not isinstance(event, StartGame):
            raise StateError(f"A run must begin with start_game (got {event.event})")
        game = cls(
            start_time=event.time,
            current_location=event.location,
            shot=event.shot,
            difficulty=event.difficulty,
            practice=event.practice,
        )
        game._add_seen_location(event.location)
        game.events.append(event)
        return game

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    @property
    def current_stage(self) -> Stage:
        return self.current_location.stage

    @property
    def start_event(self) -> StartGame:
        for event in self.events:
            if isinstance(event, StartGame):
                return event
        raise StateError("Run has no start_game event")

    @property
    def is_thprac(self) -> bool:
        """True for practice runs started mid-stage (thprac section practice)."""
        return self.practice and self.start_event.location.section.type is not SectionType.START

    def _add_seen_location(self, location: StageLocation) -> None:
        if location.is_unknown or location in self.locations_seen:
            return
        bisect.insort(self.locations_seen, location)

    def _record_event(self, event: GameEvent) -> None:
        bisect.insort(self.events, event, key=lambda item: item.sort_key)

    def apply(self, event: GameEvent) -> "Game":
        if isinstance(event, StartGame):
            raise StateError("Run already has a start_game event")
        if self.ended:
            raise StateError(f"Run already ended; cannot apply {event.event}")
        if self.events and event.sort_key < self.events[0].sort_key:
            raise StateError(
                f"{event.event} at {event.time.isoformat()} precedes run start at {self.start_time.isoformat()}"
            )

        self._record_event(event)
        if isinstance(event, EnterSection):
            self._add_seen_location(event.location)
            self.current_location = event.location
            self.continues = event.continues
        elif isinstance(event, EndGame):
            self._add_seen_location(event.location)
            self.current_location = event.location
            self.end_time = max(event.time, self.start_time)
            self.cleared = event.cleared
            self.continues = event.continues
        elif isinstance(event, Miss):
            self._add_seen_location(event.location)
            self.misses.append((event.time, event.location))
        elif isinstance(event, Bomb):
            self._add_seen_location(event.location)
            self.bombs.append((event.time, event.location))
        elif isinstance(event, BorderEnd):
            self._add_seen_location(event.location)
            if event.broken:
                self.breaks.append((event.time, event.location))
        return self

    def force_end(self, now: datetime) -> bool:
        """End the run as failed at ``now``. Returns False if it had already ended."""
        if self.ended:
            return False
        self.end_time = max(now, self.start_time)
        self.cleared = False
        return True

    def elapsed(self, now: datetime) -> timedelta:
        end = self.end_time if self.end_time is not None else now
        return max(end - self.start_time, timedelta(0))

    def result_abbreviation(self, include_zeros: bool = False) -> str:
        counts = ((len(self.misses), "M"), (len(self.bombs), "B"), (len(self.breaks), "BB"))
        if all(count == 0 for count, _ in counts):
            return "NNN"
        if include_zeros:
            return "".join(f"{count or 'N'}{suffix}" for count, suffix in counts)
        return "".join(f"{count}{suffix}" for count, suffix in counts if count > 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": to_epoch_ms(self.start_time),
            "end_time": to_epoch_ms(self.end_time) if self.end_time is not None else None,
            "ended": self.ended,
            "cleared": self.cleared,
            "shot": self.shot.display_name,
            "difficulty": self.difficulty.display_name,
            "practice": self.practice,
            "thprac": self.is_thprac,
            "current_location": self.current_location.to_dict(),
            "continues": self.continues,
            "locations_seen": [location.to_dict() for location in self.locations_seen],
            "misses": [_timed_to_dict(item) for item in self.misses],
            "bombs": [_timed_to_dict(item) for item in self.bombs],
            "breaks": [_timed_to_dict(item) for item in self.breaks],
            "result": self.result_abbreviation(),
            "event_count": len(self.events),
        }


def _timed_to_dict(item: TimedLocation) -> Dict[str, Any]:
    time, location = item
    return {"time": to_epoch_ms(time), "location": location.to_dict()}


def apply_event(game: Game, event: GameEvent) -> Game:
    return game.apply(event)


def force_end(game: Game, now: datetime) -> bool:
    return game.force_end(now)


def visited_locations(game: Game) -> List[StageLocation]:
    """Concrete locations visited by ``game``, in location order."""
    return list(game.locations_seen)
