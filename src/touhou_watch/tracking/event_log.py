from __future__ import annotations

import csv
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .catalog import SpellCardCatalog
from .events import GameEvent, ValidationError, parse_events


class EventLogError(RuntimeError):
    """Raised when an event log payload is unusable."""


@dataclass(slots=True, frozen=True)
class EventLog:
    source: str
    events: Tuple[GameEvent, ...]
    errors: Tuple[Tuple[int, str], ...]

    @property
    def record_count(self) -> int:
        return len(self.events) + len(self.errors)


def _parse_json(content: str) -> List[Any]:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise EventLogError(f"Invalid JSON event log: {exc}") from exc

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        raw = payload.get("events", [])
        if isinstance(raw, list):
            return raw
    raise EventLogError("JSON event log must be a list or an object with an 'events' list.")


def _cell_value(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _parse_csv(content: str) -> Tuple[List[Any], List[Tuple[int, str]]]:
    records: List[Any] = []
    errors: List[Tuple[int, str]] = []
    for index, row in enumerate(csv.DictReader(content.splitlines())):
        raw_payload = (row.get("payload") or "").strip()
        if raw_payload:
            try:
                records.append(json.loads(raw_payload))
            except json.JSONDecodeError as exc:
                errors.append((index, f"invalid payload JSON: {exc}"))
                records.append(None)
            continue

        record: Dict[str, Any] = {}
        for column, value in row.items():
            if column is None or value is None or not value.strip():
                continue
            record[column.strip()] = _cell_value(value.strip())
        records.append(record)
    return records, errors


def parse_event_log(
    payload_format: str,
    content: str,
    spellcards: Optional[SpellCardCatalog] = None,
) -> EventLog:
    """Parse a recorded event stream (``json`` or ``csv``).

    Records that fail validation are collected in ``errors`` as
    ``(record_index, message)``; the rest are returned sorted by event order.
    """
    normalized = payload_format.strip().lower()
    if normalized not in {"json", "csv"}:
        raise EventLogError("Unsupported event log format. Use json or csv.")

    row_errors: List[Tuple[int, str]] = []
    if normalized == "json":
        records = _parse_json(content)
    else:
        records, row_errors = _parse_csv(content)
    if not records:
        raise EventLogError("Event log contains no events.")

    broken_rows = {index for index, _ in row_errors}
    candidates = [(index, record) for index, record in enumerate(records) if index not in broken_rows]
    events, invalid = parse_events((record for _, record in candidates), spellcards)
    errors = list(row_errors)
    for position, exc in invalid:
        index = candidates[position][0]
        errors.append((index, _describe_validation_error(exc)))
    errors.sort(key=lambda item: item[0])

    events.sort(key=lambda event: event.sort_key)
    return EventLog(source=normalized, events=tuple(events), errors=tuple(errors))


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    where = ".".join(str(part) for part in first.get("loc", ())) or "<record>"
    return f"{where}: {first['msg']}"


def load_event_log(path: Path | str, spellcards: Optional[SpellCardCatalog] = None) -> EventLog:
    path = Path(path)
    if not path.exists():
        raise EventLogError(f"Event log not found: {path}")
    suffix = path.suffix.lower().lstrip(".")
    if suffix not in {"json", "csv"}:
        raise EventLogError(f"Cannot infer event log format from {path.name}; use .json or .csv")
    return parse_event_log(suffix, path.read_text(encoding="utf-8"), spellcards)
