from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import WatcherConfig, config_from_env
from .formatting import format_cap_rate, metrics_entry_to_dict
from .tracking import (
    CatalogError,
    Difficulty,
    ModelError,
    Session,
    SetTracker,
    ShotType,
    SpellCardCatalog,
    StageLocation,
)

app = FastAPI(
    title="touhou-watch API",
    description="Session tracking, section metrics and practice sets for Touhou 7 runs.",
    version="1.0.0",
)


def _build_session(config: WatcherConfig, spellcards: SpellCardCatalog) -> Session:
    tracker = SetTracker(min_duration=timedelta(milliseconds=config.min_attempt_ms))
    if config.track_range is not None:
        tracker.start_tracking(*config.track_range)
    return Session(spellcards=spellcards, set_tracker=tracker, set_size=config.set_size)


watcher_config = config_from_env()
spellcards = SpellCardCatalog.load(watcher_config.spellcards_path)
session = _build_session(watcher_config, spellcards)


def reset_session(config: Optional[WatcherConfig] = None) -> Session:
    """Replace the live session (used on restart of tracking and in tests)."""
    global session
    session = _build_session(config or watcher_config, spellcards)
    return session


class EventBatchRequest(BaseModel):
    events: List[Dict[str, Any]] = Field(..., description="Raw event records in wire form.")


class AttachRequest(BaseModel):
    pid: int = Field(..., ge=0, description="Process id of the attached game.")


class TrackRangeRequest(BaseModel):
    start: Dict[str, Any] = Field(..., description="Location {stage, section}.")
    end: Dict[str, Any] = Field(..., description="Location {stage, section}.")


def _parse_location(payload: Dict[str, Any], label: str) -> StageLocation:
    try:
        location = StageLocation.from_dict(payload)
    except ModelError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label} location: {exc}") from exc
    if location.is_unknown:
        raise HTTPException(status_code=400, detail=f"{label} location must be concrete.")
    if location.spell is not None and location.spell.id not in spellcards:
        raise HTTPException(status_code=400, detail=f"Invalid card ID {location.spell.id}")
    return location


def _parse_enum(enum_cls: Any, value: Optional[int], label: str) -> Any:
    if value is None:
        return None
    try:
        return enum_cls.from_raw(value)
    except ModelError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}: {exc}") from exc


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/v1/events")
def post_events(payload: EventBatchRequest):
    summary = session.ingest(payload.events)
    return {**summary, "state": session.state.value}


@app.post("/api/v1/process/attached")
def process_attached(payload: AttachRequest):
    session.attach(payload.pid)
    return session.snapshot()


@app.post("/api/v1/process/detached")
def process_detached():
    session.detach()
    return session.snapshot()


@app.post("/api/v1/session/force-end")
def session_force_end():
    game = session.force_end()
    return {"ended": game is not None, "game": game.to_dict() if game is not None else None}


@app.get("/api/v1/session")
def session_state():
    return session.snapshot()


@app.get("/api/v1/metrics")
def metrics(
    shot: Optional[int] = None,
    difficulty: Optional[int] = None,
    order: Literal["location", "failures"] = "location",
):
    shot_value: Optional[ShotType] = _parse_enum(ShotType, shot, "shot type")
    difficulty_value: Optional[Difficulty] = _parse_enum(Difficulty, difficulty, "difficulty")

    result = session.metrics(difficulty=difficulty_value)
    entries = result.sorted_by_failures() if order == "failures" else result.entries()
    if shot_value is not None:
        entries = [entry for entry in entries if entry.shot == shot_value]
    totals = result.totals(shot_value)
    return {
        "entries": [metrics_entry_to_dict(entry, spellcards) for entry in entries],
        "totals": {
            **totals.to_dict(),
            "cap_rate_display": format_cap_rate(totals.captures, totals.attempts),
        },
    }


@app.get("/api/v1/runs/{index}/locations")
def run_locations(index: int):
    try:
        locations = session.location_listing(index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "index": index,
        "locations": [
            {**location.to_dict(), "key": location.key, "name": location.display_name(spellcards)}
            for location in locations
        ],
    }


@app.get("/api/v1/practice/sets")
def practice_sets():
    track_range = session.set_tracker.track_range
    return {
        "set_size": session.set_size,
        "track_range": [item.to_dict() for item in track_range] if track_range is not None else None,
        "attempts": session.practice_sets(),
        "total": session.practice_totals(),
    }


@app.post("/api/v1/practice/track-range")
def start_track_range(payload: TrackRangeRequest):
    start = _parse_location(payload.start, "start")
    end = _parse_location(payload.end, "end")
    session.set_tracker.start_tracking(start, end)
    low, high = session.set_tracker.track_range  # type: ignore[misc]
    return {"track_range": [low.to_dict(), high.to_dict()]}


@app.delete("/api/v1/practice/track-range")
def end_track_range():
    session.set_tracker.end_tracking()
    return {"track_range": None}


@app.get("/api/v1/spellcards/{card_id}")
def spellcard(card_id: int):
    try:
        info = spellcards.get(card_id)
    except CatalogError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        **info.to_dict(),
        "difficulty_name": info.difficulty.display_name,
        "stage_name": info.stage.display_name,
    }

