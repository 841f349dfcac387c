from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from .tracking.catalog import SpellCardCatalog
from .tracking.events import (
    Bomb,
    BorderEnd,
    BorderStart,
    EndGame,
    EnterSection,
    FinishSpell,
    GameEvent,
    Miss,
    Pause,
    StageCleared,
    StartGame,
    Unpause,
)
from .tracking.locations import SpellCard, StageLocation
from .tracking.metrics import MetricsEntry
from .tracking.run import Game


def format_cap_rate(captures: int, attempts: int) -> str:
    if attempts == 0:
        if captures == 0:
            return "N/A"
        return f"{captures} / 0 (0.0%)"
    return f"{captures} / {attempts} ({captures / attempts * 100.0:.1f}%)"


def format_duration(total_ms: float, precision: int = 1) -> str:
    if total_ms < 0:
        return "-" + format_duration(abs(total_ms), precision)

    # Round to the displayed precision first so 59.96 s carries into the minute.
    scale = 10 ** precision
    units = round(total_ms * scale / 1000)
    hours, units = divmod(units, 3600 * scale)
    minutes, units = divmod(units, 60 * scale)
    seconds = units / scale

    ret = f"{hours:02d}:" if hours >= 1 else ""
    ret += f"{minutes:02d}:"
    ret += ("0" if seconds < 10 else "") + f"{seconds:.{precision}f}"
    return ret


def _plural(count: int, singular: str, plural: str) -> str:
    return f"1 {singular}" if count == 1 else f"{count} {plural}"


def _location_name(location: StageLocation, catalog: Optional[SpellCardCatalog]) -> str:
    return location.display_name(catalog)


def _spell_name(spell: SpellCard, catalog: Optional[SpellCardCatalog]) -> str:
    if catalog is not None and spell.id in catalog:
        return f"#{spell.key} {catalog.get(spell.id).name}"
    return f"#{spell.key}"


def _describe_end(event: EndGame, catalog: Optional[SpellCardCatalog]) -> str:
    if event.cleared:
        ret = "Cleared game at "
    elif event.retrying:
        ret = "Retried game at "
    else:
        ret = "Ended game at "
    ret += _location_name(event.location, catalog)

    if event.misses == 0 and event.bombs == 0:
        ret += " with no misses or bombs used"
    else:
        parts: List[str] = []
        if event.misses > 0:
            parts.append(_plural(event.misses, "miss", "misses"))
        if event.bombs > 0:
            parts.append(_plural(event.bombs, "bomb", "bombs") + " used")
        ret += " with " + " and ".join(parts)
    if event.continues > 0:
        ret += f" ({_plural(event.continues, 'continue', 'continues')} used)"
    return ret


def describe_event(event: GameEvent, catalog: Optional[SpellCardCatalog] = None) -> str:
    """Human readable log line for ``event``."""
    if isinstance(event, StartGame):
        if event.practice:
            return (
                f"Started {event.difficulty.display_name} practice as {event.shot.display_name} "
                f"at {_location_name(event.location, catalog)}"
            )
        return f"Started {event.difficulty.display_name} run as {event.shot.display_name}"
    if isinstance(event, EndGame):
        return _describe_end(event, catalog)
    if isinstance(event, StageCleared):
        return f"Cleared {event.stage.display_name}"
    if isinstance(event, EnterSection):
        return (
            f"Entering {_location_name(event.location, catalog)} with "
            f"{_plural(event.lives, 'life', 'lives')}, {_plural(event.bombs, 'bomb', 'bombs')}, "
            f"{event.power} power, and {_plural(event.continues, 'continue', 'continues')} used"
        )
    if isinstance(event, Miss):
        return f"Missed at {_location_name(event.location, catalog)}"
    if isinstance(event, Bomb):
        return f"Bombed at {_location_name(event.location, catalog)}"
    if isinstance(event, FinishSpell):
        outcome = "Captured" if event.captured else "Failed"
        return f"{outcome} spell {_spell_name(event.spell, catalog)}"
    if isinstance(event, BorderStart):
        return f"Border started at {_location_name(event.location, catalog)}"
    if isinstance(event, BorderEnd):
        outcome = "Broke border" if event.broken else "Border ended"
        return f"{outcome} at {_location_name(event.location, catalog)}"
    if isinstance(event, Pause):
        return "Game paused"
    if isinstance(event, Unpause):
        return "Game unpaused"
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


def summarize_game(game: Game, number: int, catalog: Optional[SpellCardCatalog] = None) -> str:
    mode = "Practice" if game.practice else "Game"
    status = "cleared" if game.cleared else ("ended" if game.ended else "in progress")
    elapsed = game.elapsed(game.end_time or game.start_time)
    return (
        f"#{number} {mode} {game.difficulty.display_name} {game.shot.display_name} "
        f"[{status}] {game.result_abbreviation()} at {_location_name(game.current_location, catalog)}"
        + (f" ({format_duration(elapsed.total_seconds() * 1000)})" if game.ended else "")
    )


def format_metrics_table(entries: Iterable[MetricsEntry], catalog: Optional[SpellCardCatalog] = None) -> str:
    rows = list(entries)
    if not rows:
        return "No attempts recorded."

    header = f"{'Shot':<10}{'Location':<44}{'Cap Rate':<22}{'Avg Life':<12}{'M/B/BB'}"
    lines = [header, "-" * len(header)]
    for entry in rows:
        shot = entry.shot.display_name if entry.shot is not None else "-"
        location = _location_name(entry.location, catalog) if entry.location is not None else "-"
        lines.append(
            f"{shot:<10}{location[:43]:<44}{format_cap_rate(entry.captures, entry.attempts):<22}"
            f"{format_duration(entry.average_lifetime_ms):<12}{entry.misses}/{entry.bombs}/{entry.breaks}"
        )
    return "\n".join(lines)


def metrics_entry_to_dict(entry: MetricsEntry, catalog: Optional[SpellCardCatalog] = None) -> Dict[str, Any]:
    payload = entry.to_dict()
    if entry.location is not None:
        payload["location_name"] = _location_name(entry.location, catalog)
    payload["cap_rate_display"] = format_cap_rate(entry.captures, entry.attempts)
    return payload
