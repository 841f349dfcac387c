from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Sequence

from .config import LOG_LEVELS, ConfigError, WatcherConfig, load_config
from .formatting import describe_event, format_metrics_table, metrics_entry_to_dict, summarize_game
from .tracking import (
    CatalogError,
    Difficulty,
    EventLogError,
    MetricsEntry,
    ModelError,
    Session,
    SetTracker,
    ShotType,
    SpellCardCatalog,
    load_event_log,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="touhou-watch",
        description="Replay a recorded Touhou 7 event log and summarise per-section capture rates.",
    )
    parser.add_argument("--events", required=True, help="Path to a .json or .csv event log.")
    parser.add_argument("--config", default=None, help="Path to JSON/YAML config.")
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format.",
    )
    parser.add_argument("--shot", type=int, default=None, help="Only show this shot type id (0-5).")
    parser.add_argument("--difficulty", type=int, default=None, help="Only count runs on this difficulty id (0-5).")
    parser.add_argument(
        "--order",
        choices=("location", "failures"),
        default="location",
        help="Sort metrics by location or by most failures.",
    )
    parser.add_argument("--log", action="store_true", help="Print every run's event log (table output only).")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None)
    return parser


def _print_table(session: Session, entries: Sequence[MetricsEntry], catalog: SpellCardCatalog, show_log: bool) -> None:
    games = session.all_games
    if not games:
        print("No runs found.")
        return

    for number, game in enumerate(games, start=1):
        print(summarize_game(game, number, catalog))
        if show_log:
            for event in game.events:
                offset = max(event.time - game.start_time, timedelta(0))
                print(f"    [{offset.total_seconds():9.3f}s] {describe_event(event, catalog)}")
    print()
    print(format_metrics_table(entries, catalog))


def _print_json(session: Session, entries: Sequence[MetricsEntry], catalog: SpellCardCatalog, invalid: List) -> None:
    payload = {
        "runs": [game.to_dict() for game in session.all_games],
        "metrics": [metrics_entry_to_dict(entry, catalog) for entry in entries],
        "invalid_records": [{"index": index, "error": message} for index, message in invalid],
    }
    json.dump(payload, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = WatcherConfig()
    if args.config:
        try:
            config = load_config(Path(args.config))
        except ConfigError as exc:
            parser.error(str(exc))

    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    shot: Optional[ShotType] = None
    difficulty: Optional[Difficulty] = None
    try:
        if args.shot is not None:
            shot = ShotType.from_raw(args.shot)
        if args.difficulty is not None:
            difficulty = Difficulty.from_raw(args.difficulty)
    except ModelError as exc:
        parser.error(str(exc))

    try:
        catalog = SpellCardCatalog.load(config.spellcards_path)
        event_log = load_event_log(Path(args.events), catalog)
    except (CatalogError, EventLogError) as exc:
        parser.error(str(exc))
        return 2

    for index, message in event_log.errors:
        logger.warning("Skipping record %d: %s", index, message)

    # Offline replay: "now" is the last recorded instant, so open runs stay open.
    last_time = event_log.events[-1].time if event_log.events else None
    tracker = SetTracker(min_duration=timedelta(milliseconds=config.min_attempt_ms))
    session = Session(
        clock=lambda: last_time,
        spellcards=catalog,
        set_tracker=tracker,
        set_size=config.set_size,
    )
    session.apply_batch(event_log.events)

    metrics = session.metrics(difficulty=difficulty)
    entries = metrics.sorted_by_failures() if args.order == "failures" else metrics.entries()
    if shot is not None:
        entries = [entry for entry in entries if entry.shot == shot]

    if args.format == "json":
        _print_json(session, entries, catalog, list(event_log.errors))
    else:
        _print_table(session, entries, catalog, show_log=args.log)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
