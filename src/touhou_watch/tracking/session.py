from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum
from itertools import groupby
from typing import Any, Dict, Iterable, List, Optional

from .catalog import SpellCardCatalog
from .errors import StateError, TrackingError
from .events import EndGame, GameEvent, StartGame, parse_events
from .locations import Difficulty, StageLocation
from .metrics import Metrics, compute_metrics
from .practice import SET_SIZE, Clock, SetTracker, merge_set_metrics, track_game, utc_now
from .run import Game, visited_locations
from .segments import sort_events

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class Session:
    """Routes event batches to the current run and keeps finished runs in start order."""

    def __init__(
        self,
        clock: Clock = utc_now,
        spellcards: Optional[SpellCardCatalog] = None,
        set_tracker: Optional[SetTracker] = None,
        set_size: int = SET_SIZE,
    ):
        self.clock = clock
        self.spellcards = spellcards
        self.set_tracker = set_tracker or SetTracker()
        self.set_size = set_size
        self.attached_pid: Optional[int] = None
        self._current: Optional[Game] = None
        self._finished: List[Game] = []

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._current is not None else SessionState.IDLE

    @property
    def current_game(self) -> Optional[Game]:
        return self._current

    @property
    def finished_games(self) -> List[Game]:
        return list(self._finished)

    @property
    def all_games(self) -> List[Game]:
        games = list(self._finished)
        if self._current is not None:
            games.append(self._current)
        return games

    def _flush_current(self) -> Optional[Game]:
        game = self._current
        if game is None:
            return None
        self._current = None
        self._finished.append(game)
        self._finished.sort(key=lambda item: item.start_time)
        if game.practice:
            self._track_practice(game)
        return game

    def _track_practice(self, game: Game) -> None:
        if len(game.events) < 2:
            return
        try:
            kept = track_game(self.set_tracker, game)
        except TrackingError as exc:
            logger.warning("Practice attempts skipped for run started at %s: %s", game.start_time.isoformat(), exc)
            return
        logger.debug("Recorded %d practice attempts", kept)

    def _dispatch(self, event: GameEvent) -> None:
        if isinstance(event, StartGame):
            if self._current is not None:
                # The previous run never reported its end; close it at the new start.
                self._current.force_end(event.time)
                self._flush_current()
            self._current = Game.from_start_event(event)
            logger.info(
                "Run started: %s %s as %s",
                event.difficulty.display_name,
                "practice" if event.practice else "game",
                event.shot.display_name,
            )
            return

        if self._current is None:
            raise StateError(f"No active run for {event.event} event at {event.time.isoformat()}")

        self._current.apply(event)
        if isinstance(event, EndGame):
            finished = self._flush_current()
            if finished is not None:
                logger.info("Run ended (%s): %s", "cleared" if finished.cleared else "failed", finished.result_abbreviation())

    def _order_instant(self, group: List[GameEvent]) -> List[GameEvent]:
        # An active run's end_game closes it before a new run starts at the same instant.
        if self._current is None:
            return group
        end = next((event for event in group if isinstance(event, EndGame)), None)
        if end is None or not any(isinstance(event, StartGame) for event in group):
            return group
        return [end] + [event for event in group if event is not end]

    def apply_batch(self, events: Iterable[GameEvent]) -> int:
        """Apply a batch in sorted order. Returns the number of events accepted."""
        accepted = 0
        for _, group in groupby(sort_events(events), key=lambda event: event.time):
            for event in self._order_instant(list(group)):
                try:
                    self._dispatch(event)
                except StateError as exc:
                    logger.warning("Discarding event: %s", exc)
                    continue
                accepted += 1
        return accepted

    def ingest(self, records: Iterable[Any]) -> Dict[str, int]:
        events, errors = parse_events(records, self.spellcards)
        for index, exc in errors:
            logger.warning("Rejected event record %d: %s", index, exc)
        accepted = self.apply_batch(events)
        return {
            "received": len(events) + len(errors),
            "invalid": len(errors),
            "accepted": accepted,
            "discarded": len(events) - accepted,
        }

    def force_end(self) -> Optional[Game]:
        if self._current is None:
            return None
        self._current.force_end(self.clock())
        logger.info("Run force-ended")
        return self._flush_current()

    def attach(self, pid: int) -> None:
        self.force_end()
        self.attached_pid = pid
        logger.info("Attached to process %d", pid)

    def detach(self) -> None:
        self.force_end()
        if self.attached_pid is not None:
            logger.info("Detached from process %d", self.attached_pid)
        self.attached_pid = None

    def tick(self) -> Optional[timedelta]:
        if self._current is None:
            return None
        return self._current.elapsed(self.clock())

    def metrics(self, difficulty: Optional[Difficulty] = None) -> Metrics:
        return compute_metrics(self.all_games, difficulty=difficulty)

    def location_listing(self, index: int) -> List[StageLocation]:
        """Concrete locations visited by finished run ``index`` (0-based)."""
        if index < 0 or index >= len(self._finished):
            raise IndexError(f"No finished run with index {index}")
        return visited_locations(self._finished[index])

    def practice_sets(self) -> List[Dict[str, Any]]:
        return [item.to_dict(self.set_size) for item in self.set_tracker.iter_attempts()]

    def practice_totals(self) -> Dict[str, Any]:
        return merge_set_metrics(list(self.set_tracker.iter_attempts())).to_dict()

    def snapshot(self) -> Dict[str, Any]:
        elapsed = self.tick()
        return {
            "state": self.state.value,
            "attached_pid": self.attached_pid,
            "current_game": self._current.to_dict() if self._current is not None else None,
            "elapsed_ms": elapsed // timedelta(milliseconds=1) if elapsed is not None else None,
            "finished_games": [game.to_dict() for game in self._finished],
        }
