from __future__ import annotations

import unittest
from datetime import timedelta

from touhou_watch.tracking.events import from_epoch_ms
from touhou_watch.tracking.locations import Difficulty, ShotType, StageLocation
from touhou_watch.tracking.practice import (
    Attempt,
    GameTime,
    GameTimeCounter,
    PracticeAttempts,
    SetKey,
    SetMetrics,
    SetTracker,
    attempts_from_game,
    merge_set_metrics,
    track_game,
)
from touhou_watch.tracking.run import Game

from event_factory import (
    S1_BOSS,
    S1_FIRST,
    S1_MID,
    S1_START,
    T0,
    UNKNOWN,
    end,
    enter,
    parse_all,
    pause,
    start,
    unpause,
)


class FakeClock:
    def __init__(self, ms: int = 0):
        self.ms = ms

    def __call__(self):
        return from_epoch_ms(T0 + self.ms)


def _game(*raws):
    events = parse_all(*raws)
    game = Game.from_start_event(events[0])
    for event in events[1:]:
        game.apply(event)
    return game


def _attempt(start_ms: int, end_ms: int, success: bool = True) -> Attempt:
    counter = GameTimeCounter(from_epoch_ms(T0))
    return Attempt(
        start_time=counter.at(from_epoch_ms(T0 + start_ms)),
        end_time=counter.at(from_epoch_ms(T0 + end_ms)),
        success=success,
    )


def _key(raw=S1_FIRST) -> SetKey:
    return SetKey(ShotType.REIMU_A, Difficulty.NORMAL, StageLocation.from_dict(raw))


class GameTimeTests(unittest.TestCase):
    def test_differences_are_absolute(self) -> None:
        base = from_epoch_ms(T0)
        early = GameTime(base, timedelta(seconds=1), timedelta(seconds=1))
        late = GameTime(base, timedelta(seconds=5), timedelta(seconds=3))
        self.assertEqual(early.real_time_between(late), timedelta(seconds=4))
        self.assertEqual(late.real_time_between(early), timedelta(seconds=4))
        self.assertEqual(early.play_time_between(late), timedelta(seconds=2))

    def test_counter_excludes_pauses(self) -> None:
        clock = FakeClock()
        counter = GameTimeCounter(from_epoch_ms(T0), clock)
        clock.ms = 1_000
        counter.pause()
        counter.pause(from_epoch_ms(T0 + 1_500))
        clock.ms = 4_000
        counter.unpause()
        counter.unpause()
        clock.ms = 6_000
        now = counter.now()
        self.assertEqual(now.relative_real, timedelta(seconds=6))
        self.assertEqual(now.relative_game, timedelta(seconds=3))
        self.assertFalse(counter.is_paused)

    def test_ongoing_pause_is_excluded(self) -> None:
        counter = GameTimeCounter(from_epoch_ms(T0))
        counter.pause(from_epoch_ms(T0 + 2_000))
        at = counter.at(from_epoch_ms(T0 + 5_000))
        self.assertTrue(counter.is_paused)
        self.assertEqual(at.relative_game, timedelta(seconds=2))


class SetMetricsTests(unittest.TestCase):
    def test_from_attempts(self) -> None:
        metrics = SetMetrics.from_attempts([_attempt(0, 3_000), _attempt(3_000, 4_000, success=False)])
        self.assertEqual((metrics.attempts, metrics.captures), (2, 1))
        self.assertEqual(metrics.total_time, timedelta(seconds=4))
        self.assertEqual(metrics.cap_rate, 0.5)
        self.assertEqual(metrics.average_time, timedelta(seconds=2))

    def test_empty_total(self) -> None:
        empty = SetMetrics.total([])
        self.assertEqual(empty, SetMetrics())
        self.assertIsNone(empty.cap_rate)
        self.assertIsNone(empty.average_time)
        self.assertIsNone(empty.to_dict()["average_time_ms"])

    def test_total_is_associative(self) -> None:
        a = SetMetrics(1, 1, timedelta(seconds=1))
        b = SetMetrics(2, 0, timedelta(seconds=5))
        c = SetMetrics(4, 3, timedelta(seconds=7))
        self.assertEqual((a + b) + c, a + (b + c))
        self.assertEqual(SetMetrics.total([a, b, c]), SetMetrics(7, 4, timedelta(seconds=13)))


class PracticeAttemptsTests(unittest.TestCase):
    def test_sets_are_chunked_in_arrival_order(self) -> None:
        bucket = PracticeAttempts(_key())
        for index in range(60):
            bucket.add(_attempt(index * 10_000, index * 10_000 + 3_000, success=index % 2 == 0))
        sizes = [len(chunk) for chunk in bucket.sets()]
        self.assertEqual(sizes, [25, 25, 10])
        metrics = bucket.set_metrics()
        self.assertEqual([item.attempts for item in metrics], [25, 25, 10])
        self.assertEqual(SetMetrics.total(metrics), bucket.total_metrics())
        self.assertEqual(bucket.last_attempt().start_time.relative_real, timedelta(seconds=590))

    def test_invalid_set_size(self) -> None:
        with self.assertRaises(ValueError):
            PracticeAttempts(_key()).sets(0)

    def test_to_dict(self) -> None:
        bucket = PracticeAttempts(_key())
        self.assertIsNone(bucket.to_dict()["last_attempt"])
        bucket.add(_attempt(0, 2_500))
        payload = bucket.to_dict(size=10)
        self.assertEqual(payload["attempt_count"], 1)
        self.assertEqual(payload["sets"][0]["total_time_ms"], 2_500)
        self.assertEqual(payload["last_attempt"], T0)


class SetTrackerTests(unittest.TestCase):
    def test_short_attempts_are_dropped(self) -> None:
        tracker = SetTracker()
        self.assertFalse(tracker.push_attempt(_key(), _attempt(0, 1_999)))
        self.assertTrue(tracker.push_attempt(_key(), _attempt(0, 2_000)))
        self.assertEqual(len(tracker), 1)
        self.assertEqual(len(tracker.get(_key()).attempts), 1)

    def test_range_filter(self) -> None:
        tracker = SetTracker()
        with self.assertLogs("touhou_watch.tracking.practice", level="INFO"):
            tracker.start_tracking(StageLocation.from_dict(S1_MID), StageLocation.from_dict(S1_FIRST))
        self.assertEqual(tracker.track_range[0].key, "0:1:0")
        self.assertFalse(tracker.push_attempt(_key(S1_BOSS), _attempt(0, 3_000)))
        self.assertTrue(tracker.push_attempt(_key(S1_MID), _attempt(0, 3_000)))

        tracker.end_tracking()
        self.assertTrue(tracker.push_attempt(_key(S1_BOSS), _attempt(0, 3_000)))
        self.assertEqual([item.key.location.key for item in tracker.iter_attempts()], ["0:2:0", "0:6:0"])

    def test_iteration_respects_current_range(self) -> None:
        tracker = SetTracker()
        tracker.push_attempt(_key(S1_START), _attempt(0, 3_000))
        tracker.push_attempt(_key(S1_BOSS), _attempt(0, 3_000))
        tracker.start_tracking(StageLocation.from_dict(S1_BOSS), StageLocation.from_dict(S1_BOSS))
        self.assertEqual([item.key.location.key for item in tracker.iter_attempts()], ["0:6:0"])
        self.assertEqual(merge_set_metrics(list(tracker.iter_attempts())).attempts, 1)


class AttemptsFromGameTests(unittest.TestCase):
    def test_play_time_excludes_pauses(self) -> None:
        game = _game(
            start(0, S1_BOSS, practice=True),
            pause(1_000),
            unpause(6_000),
            enter(10_000, S1_MID),
            end(12_000, S1_MID, cleared=True),
        )
        attempts = attempts_from_game(game)
        self.assertEqual(len(attempts), 2)
        key, first = attempts[0]
        self.assertEqual(key.location.key, "0:6:0")
        self.assertEqual(first.duration, timedelta(seconds=10))
        self.assertEqual(first.play_time, timedelta(seconds=5))
        self.assertTrue(first.success)

    def test_unknown_sections_skipped(self) -> None:
        game = _game(start(0, S1_START), enter(3_000, UNKNOWN), enter(6_000, S1_FIRST), end(9_000, S1_FIRST))
        keys = [key.location.key for key, _ in attempts_from_game(game)]
        self.assertEqual(keys, ["0:0", "0:1:0"])

    def test_track_game_counts_kept_attempts(self) -> None:
        game = _game(start(0, S1_START), enter(500, S1_FIRST), end(4_000, S1_FIRST))
        tracker = SetTracker()
        self.assertEqual(track_game(tracker, game), 1)
        bucket = tracker.get(_key(S1_FIRST))
        self.assertFalse(bucket.attempts[0].success)


if __name__ == "__main__":
    unittest.main()
