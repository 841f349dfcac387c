from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Generic, Hashable, Iterable, Iterator, List, Optional, TypeVar

from .errors import SequencingError
from .locations import Difficulty, ShotType, StageLocation
from .run import Game
from .segments import SectionEvents, split_sections

logger = logging.getLogger(__name__)

KeyT = TypeVar("KeyT", bound=Hashable)


@dataclass(slots=True)
class MetricsEntry:
    location: Optional[StageLocation] = None
    shot: Optional[ShotType] = None
    attempts: int = 0
    captures: int = 0
    misses: int = 0
    bombs: int = 0
    breaks: int = 0
    durations_ms: List[int] = field(default_factory=list)

    def add_section(self, section: SectionEvents) -> None:
        self.attempts += 1
        if section.captured:
            self.captures += 1
        self.misses += section.misses
        self.bombs += section.bombs
        self.breaks += section.breaks
        self.durations_ms.append(section.duration_ms)

    def merge(self, other: "MetricsEntry") -> None:
        self.attempts += other.attempts
        self.captures += other.captures
        self.misses += other.misses
        self.bombs += other.bombs
        self.breaks += other.breaks
        self.durations_ms.extend(other.durations_ms)

    @property
    def failures(self) -> int:
        return max(self.attempts - self.captures, 0)

    @property
    def cap_rate(self) -> Optional[float]:
        if self.attempts <= 0:
            return None
        return self.captures / self.attempts

    @property
    def average_lifetime_ms(self) -> int:
        if not self.durations_ms:
            return 0
        return sum(self.durations_ms) // len(self.durations_ms)

    def copy(self) -> "MetricsEntry":
        return replace(self, durations_ms=list(self.durations_ms))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location.to_dict() if self.location is not None else None,
            "location_name": self.location.display_name() if self.location is not None else None,
            "shot": self.shot.display_name if self.shot is not None else None,
            "attempts": self.attempts,
            "captures": self.captures,
            "failures": self.failures,
            "misses": self.misses,
            "bombs": self.bombs,
            "breaks": self.breaks,
            "cap_rate": self.cap_rate,
            "average_lifetime_ms": self.average_lifetime_ms,
        }


class _EntryTable(Generic[KeyT]):
    def __init__(self) -> None:
        self._entries: Dict[KeyT, MetricsEntry] = {}

    def _sorted_entries(self) -> List[MetricsEntry]:
        # Every stored entry has a location; only totals() builds one without.
        return sorted(
            self._entries.values(),
            key=lambda entry: (entry.location, -1 if entry.shot is None else int(entry.shot)),
        )

    def __iter__(self) -> Iterator[MetricsEntry]:
        for entry in self._sorted_entries():
            yield entry.copy()

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[MetricsEntry]:
        return list(self)

    def sorted_by_failures(self) -> List[MetricsEntry]:
        """Concrete-location entries, most failures first (stable on ties)."""
        visible = [entry for entry in self if entry.location is None or not entry.location.is_unknown]
        return sorted(visible, key=lambda entry: entry.failures, reverse=True)


class Metrics(_EntryTable[tuple]):
    """Per-(shot, location) attempt statistics derived from segmented runs."""

    def add_section(self, shot: ShotType, section: SectionEvents) -> None:
        location = section.location
        if location.is_unknown:
            return
        key = (shot, location)
        entry = self._entries.get(key)
        if entry is None:
            entry = MetricsEntry(location=location, shot=shot)
            self._entries[key] = entry
        entry.add_section(section)

    def add_game(self, game: Game) -> int:
        """Fold one run into the table. Returns the number of sections added."""
        sections = split_sections(game.events)
        for section in sections:
            self.add_section(game.shot, section)
        return len(sections)

    def get_location_stats(self, shot: ShotType, location: StageLocation) -> Optional[MetricsEntry]:
        entry = self._entries.get((shot, location))
        return entry.copy() if entry is not None else None

    def totals(self, shot: Optional[ShotType] = None) -> MetricsEntry:
        total = MetricsEntry(shot=shot)
        for (entry_shot, _), entry in self._entries.items():
            if shot is None or entry_shot == shot:
                total.merge(entry)
        return total


def compute_metrics(games: Iterable[Game], difficulty: Optional[Difficulty] = None) -> Metrics:
    metrics = Metrics()
    for game in games:
        if difficulty is not None and game.difficulty != difficulty:
            continue
        if len(game.events) < 2:
            continue
        try:
            metrics.add_game(game)
        except SequencingError as exc:
            logger.warning("Skipping run started at %s: %s", game.start_time.isoformat(), exc)
    return metrics


class SeenLocationMetrics(_EntryTable[StageLocation]):
    """Location statistics built from each run's seen-location set.

    Every seen location counts as one attempt, and counts as a capture unless a
    miss, bomb or border break was recorded there. For a run still in progress,
    the current location is not yet decided: its attempt is removed and it is
    not counted as a capture unless it has already failed.
    """

    def __init__(self, games: Iterable[Game] = ()):
        super().__init__()
        for game in games:
            self.add_game(game)

    def _entry(self, location: StageLocation) -> MetricsEntry:
        entry = self._entries.get(location)
        if entry is None:
            entry = MetricsEntry(location=location)
            self._entries[location] = entry
        return entry

    def add_game(self, game: Game) -> None:
        captured: Dict[StageLocation, bool] = {}
        for location in game.locations_seen:
            captured[location] = True
            self._entry(location).attempts += 1
        for _, location in game.misses:
            captured[location] = False
            self._entry(location).misses += 1
        for _, location in game.bombs:
            captured[location] = False
            self._entry(location).bombs += 1
        for _, location in game.breaks:
            captured[location] = False
            self._entry(location).breaks += 1

        current = game.current_location
        in_progress = not game.ended and not current.is_unknown and captured.get(current) is not False
        if in_progress:
            self._entry(current).attempts -= 1

        for location, ok in captured.items():
            if ok and not (in_progress and location == current):
                self._entry(location).captures += 1

    def get_location_stats(self, location: StageLocation) -> Optional[MetricsEntry]:
        entry = self._entries.get(location)
        return entry.copy() if entry is not None else None
