from __future__ import annotations

import unittest
from datetime import timedelta

from touhou_watch.tracking.errors import SequencingError
from touhou_watch.tracking.events import EndGame, StartGame, from_epoch_ms
from touhou_watch.tracking.segments import SectionEvents, sort_events, split_lives, split_sections

from event_factory import (
    S1_BOSS,
    S1_FIRST,
    S1_MID,
    S1_SECOND,
    S1_START,
    T0,
    UNKNOWN,
    bomb,
    border_end,
    end,
    enter,
    miss,
    parse_all,
    pause,
    start,
    unpause,
)


def _scenario():
    return parse_all(
        start(0, S1_START),
        miss(1_000, S1_FIRST),
        enter(2_000, S1_MID),
        end(3_000, S1_MID, cleared=False),
    )


def _reassemble(spans):
    events = list(spans[0].events)
    for span in spans[1:]:
        events.extend(span.events[1:])
    return events


class SortEventsTests(unittest.TestCase):
    def test_start_first_and_end_last_on_equal_time(self) -> None:
        events = parse_all(end(0, S1_START), pause(0), start(0, S1_START))
        ordered = sort_events(events)
        self.assertIsInstance(ordered[0], StartGame)
        self.assertIsInstance(ordered[-1], EndGame)

    def test_stable_for_same_kind(self) -> None:
        first, second = parse_all(miss(5, S1_FIRST), miss(5, S1_MID))
        self.assertEqual(sort_events([first, second]), [first, second])
        self.assertEqual(sort_events([second, first]), [second, first])


class SplitLivesTests(unittest.TestCase):
    def test_scenario_lives(self) -> None:
        lives = split_lives(_scenario())
        self.assertEqual(len(lives), 2)
        first, second = lives
        self.assertEqual((first.start_time, first.end_time), (from_epoch_ms(T0), from_epoch_ms(T0 + 1_000)))
        self.assertTrue(first.captured)
        self.assertEqual((second.start_time, second.end_time), (from_epoch_ms(T0 + 1_000), from_epoch_ms(T0 + 3_000)))
        self.assertFalse(second.captured)
        self.assertEqual(second.misses, 1)

    def test_lives_decompose_into_sections(self) -> None:
        second = split_lives(_scenario())[1]
        self.assertEqual([section.location.key for section in second.sections], ["0:1:0", "0:2:0"])

    def test_run_without_misses_is_one_life(self) -> None:
        events = parse_all(start(0, S1_START), enter(100, S1_FIRST), end(200, S1_FIRST, cleared=True))
        lives = split_lives(events)
        self.assertEqual(len(lives), 1)
        self.assertTrue(lives[0].captured)


class SplitSectionsTests(unittest.TestCase):
    def test_scenario_sections(self) -> None:
        sections = split_sections(_scenario())
        self.assertEqual([section.location.key for section in sections], ["0:0", "0:1:0", "0:2:0"])
        start_section, miss_section, end_section = sections
        self.assertTrue(start_section.captured)
        self.assertEqual(start_section.misses, 0)
        self.assertFalse(miss_section.captured)
        self.assertEqual(miss_section.misses, 1)
        self.assertFalse(end_section.captured)
        self.assertEqual(end_section.duration, timedelta(seconds=1))

    def test_boundary_events_are_shared(self) -> None:
        sections = split_sections(_scenario())
        for previous, following in zip(sections, sections[1:]):
            self.assertIs(previous.terminal, following.first)

    def test_total_coverage(self) -> None:
        events = parse_all(
            start(0, S1_START),
            enter(100, S1_FIRST),
            pause(150),
            unpause(180),
            bomb(200, S1_FIRST),
            enter(300, S1_MID),
            border_end(350, S1_MID, broken=True),
            enter(400, S1_SECOND),
            end(500, S1_SECOND, cleared=True),
        )
        sections = split_sections(list(reversed(events)))
        self.assertEqual(_reassemble(sections), sort_events(events))

    def test_unlocated_events_stay_inside_segment(self) -> None:
        events = parse_all(start(0, S1_START), enter(100, S1_FIRST), pause(150), unpause(900), enter(1_000, S1_BOSS))
        sections = split_sections(events)
        self.assertEqual(len(sections), 2)
        self.assertEqual(len(sections[1].events), 4)
        self.assertTrue(sections[1].captured)

    def test_trailing_unlocated_events_form_last_segment(self) -> None:
        events = parse_all(start(0, S1_START), enter(100, S1_FIRST), pause(200))
        sections = split_sections(events)
        self.assertEqual([section.location.key for section in sections], ["0:0", "0:1:0"])

    def test_terminal_failure_not_counted(self) -> None:
        # The bomb happens at a new location, so it closes the first-half attempt.
        events = parse_all(start(0, S1_START), enter(100, S1_FIRST), bomb(200, S1_MID), enter(300, S1_SECOND))
        sections = split_sections(events)
        first_half = sections[1]
        self.assertEqual(first_half.location.key, "0:1:0")
        self.assertTrue(first_half.captured)
        self.assertEqual(first_half.bombs, 0)
        midboss = sections[2]
        self.assertEqual(midboss.bombs, 1)
        self.assertFalse(midboss.captured)

    def test_cleared_end_keeps_capture(self) -> None:
        events = parse_all(start(0, S1_START), enter(100, S1_FIRST), end(200, S1_FIRST, cleared=True))
        self.assertTrue(split_sections(events)[-1].captured)

    def test_unknown_segments_emitted(self) -> None:
        events = parse_all(start(0, S1_START), enter(100, UNKNOWN), enter(200, S1_FIRST), end(300, S1_FIRST))
        keys = [section.location.key for section in split_sections(events)]
        self.assertEqual(keys, ["0:0", "0:8", "0:1:0"])

    def test_sequencing_errors(self) -> None:
        with self.assertRaises(SequencingError):
            split_sections(parse_all(start(0, S1_START)))
        with self.assertRaises(SequencingError):
            split_sections(parse_all(pause(0), enter(100, S1_FIRST)))
        with self.assertRaises(SequencingError):
            split_lives([])

    def test_section_rejects_two_locations(self) -> None:
        events = parse_all(enter(0, S1_FIRST), miss(100, S1_MID), enter(200, S1_BOSS))
        with self.assertRaises(SequencingError):
            SectionEvents(events)


if __name__ == "__main__":
    unittest.main()
