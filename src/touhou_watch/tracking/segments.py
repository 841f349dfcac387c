from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .errors import SequencingError
from .events import Bomb, BorderEnd, EndGame, GameEvent, Miss
from .locations import StageLocation

SpanT = TypeVar("SpanT", bound="EventSpan")


def sort_events(events: Iterable[GameEvent]) -> List[GameEvent]:
    """Stable sort by timestamp; on ties start_game sorts first and end_game last."""
    return sorted(events, key=lambda event: event.sort_key)


def _is_failure(event: GameEvent) -> bool:
    if isinstance(event, (Miss, Bomb)):
        return True
    return isinstance(event, BorderEnd) and event.broken


class EventSpan:
    """Closed interval of two or more events; the last event is the boundary."""

    __slots__ = ("events",)

    def __init__(self, events: Sequence[GameEvent]):
        if len(events) < 2:
            raise SequencingError(f"A span needs at least 2 events (got {len(events)})")
        self.events: Tuple[GameEvent, ...] = tuple(events)

    @property
    def first(self) -> GameEvent:
        return self.events[0]

    @property
    def terminal(self) -> GameEvent:
        return self.events[-1]

    @property
    def start_time(self) -> datetime:
        return self.first.time

    @property
    def end_time(self) -> datetime:
        return self.terminal.time

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_ms(self) -> int:
        return self.duration // timedelta(milliseconds=1)

    def _count(self, predicate: Callable[[GameEvent], bool]) -> int:
        return sum(1 for event in self.events[:-1] if predicate(event))

    @property
    def misses(self) -> int:
        return self._count(lambda event: isinstance(event, Miss))

    @property
    def bombs(self) -> int:
        return self._count(lambda event: isinstance(event, Bomb))

    @property
    def breaks(self) -> int:
        return self._count(lambda event: isinstance(event, BorderEnd) and event.broken)

    @property
    def captured(self) -> bool:
        if any(_is_failure(event) for event in self.events[:-1]):
            return False
        terminal = self.terminal
        return not (isinstance(terminal, EndGame) and not terminal.cleared)

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.start_time.isoformat()}..{self.end_time.isoformat()}, {len(self.events)} events)"


class SectionEvents(EventSpan):
    """One attempt at a single location."""

    __slots__ = ()

    def __init__(self, events: Sequence[GameEvent]):
        super().__init__(events)
        location = self.first.location
        if location is None:
            raise SequencingError(f"Section starts with an unlocated {self.first.event} event")
        for event in self.events[1:-1]:
            other = event.location
            if other is not None and other != location:
                raise SequencingError(f"Section at {location} contains an event at {other}")

    @property
    def location(self) -> StageLocation:
        location = self.first.location
        assert location is not None
        return location


class RunLife(EventSpan):
    """Events between a run start (or a miss) and the next miss (or run end)."""

    __slots__ = ()

    @property
    def sections(self) -> List[SectionEvents]:
        return split_sections(self.events)


def _split(
    events: Iterable[GameEvent],
    factory: Callable[[Sequence[GameEvent]], SpanT],
    is_boundary: Callable[[GameEvent, Optional[StageLocation]], bool],
) -> List[SpanT]:
    ordered = sort_events(events)
    if len(ordered) < 2:
        raise SequencingError(f"Segmentation needs at least 2 events (got {len(ordered)})")
    current = ordered[0].location
    if current is None:
        raise SequencingError(f"First event ({ordered[0].event}) has no location")

    spans: List[SpanT] = []
    start = 0
    for index in range(1, len(ordered)):
        event = ordered[index]
        if not is_boundary(event, current):
            continue
        spans.append(factory(ordered[start:index + 1]))
        start = index
        current = event.location
    if start < len(ordered) - 1:
        spans.append(factory(ordered[start:]))
    return spans


def split_sections(events: Iterable[GameEvent]) -> List[SectionEvents]:
    """Partition a run's events into per-location attempts sharing boundary events."""
    return _split(
        events,
        SectionEvents,
        lambda event, current: event.location is not None and event.location != current,
    )


def split_lives(events: Iterable[GameEvent]) -> List[RunLife]:
    return _split(events, RunLife, lambda event, current: isinstance(event, Miss))
