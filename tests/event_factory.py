"""Raw event builders shared by the tracking tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from touhou_watch.tracking.catalog import SpellCardCatalog
from touhou_watch.tracking.events import parse_event

T0 = 1_700_000_000_000

_CATALOG: Optional[SpellCardCatalog] = None


def catalog() -> SpellCardCatalog:
    global _CATALOG
    if _CATALOG is None:
        _CATALOG = SpellCardCatalog.load()
    return _CATALOG


def loc(stage: int = 0, section: str = "start", seq: Optional[int] = None, spell: Optional[int] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": section}
    if seq is not None:
        payload["seq"] = seq
    if spell is not None:
        payload["spell"] = [7, spell]
    return {"stage": stage, "section": payload}


def start(
    t: int,
    location: Dict[str, Any],
    shot: int = 0,
    difficulty: int = 1,
    practice: bool = False,
    lives: int = 2,
    bombs: int = 3,
    power: int = 0,
) -> Dict[str, Any]:
    return {
        "event": "start_game",
        "time": T0 + t,
        "character": [7, shot],
        "difficulty": difficulty,
        "location": location,
        "practice": practice,
        "lives": lives,
        "bombs": bombs,
        "power": power,
    }


def enter(t: int, location: Dict[str, Any], lives: int = 2, bombs: int = 3, power: int = 64, continues: int = 0) -> Dict[str, Any]:
    return {
        "event": "enter_section",
        "time": T0 + t,
        "location": location,
        "lives": lives,
        "bombs": bombs,
        "power": power,
        "continues": continues,
    }


def miss(t: int, location: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": "miss", "time": T0 + t, "location": location}


def bomb(t: int, location: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": "bomb", "time": T0 + t, "location": location}


def border_start(t: int, location: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": "border_start", "time": T0 + t, "location": location}


def border_end(t: int, location: Dict[str, Any], broken: bool) -> Dict[str, Any]:
    return {"event": "border_end", "time": T0 + t, "location": location, "broken": broken}


def finish_spell(t: int, spell: int, captured: bool) -> Dict[str, Any]:
    return {"event": "finish_spell", "time": T0 + t, "spell": [7, spell], "captured": captured}


def stage_cleared(t: int, stage: int) -> Dict[str, Any]:
    return {"event": "stage_cleared", "time": T0 + t, "stage": stage}


def pause(t: int) -> Dict[str, Any]:
    return {"event": "pause", "time": T0 + t}


def unpause(t: int) -> Dict[str, Any]:
    return {"event": "unpause", "time": T0 + t}


def end(
    t: int,
    location: Dict[str, Any],
    cleared: bool = False,
    retrying: bool = False,
    misses: int = 0,
    bombs: int = 0,
    continues: int = 0,
) -> Dict[str, Any]:
    return {
        "event": "end_game",
        "time": T0 + t,
        "location": location,
        "misses": misses,
        "bombs": bombs,
        "continues": continues,
        "cleared": cleared,
        "retrying": retrying,
    }


def parse_all(*raws: Dict[str, Any]) -> List[Any]:
    return [parse_event(raw, catalog()) for raw in raws]


# Stage 1 locations used across tests.
S1_START = loc(0, "start")
S1_FIRST = loc(0, "first_half", seq=0)
S1_MID = loc(0, "midboss_nonspell", seq=0)
S1_SECOND = loc(0, "second_half", seq=0)
S1_BOSS = loc(0, "boss_nonspell", seq=0)
UNKNOWN = loc(0, "unknown")
