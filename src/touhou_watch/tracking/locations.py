from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from functools import total_ordering
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .catalog import SpellCardCatalog

GAME_ID = 7


class ModelError(ValueError):
    """Raised for malformed location or identifier payloads."""


def _require(payload: Dict[str, Any], key: str) -> Any:
    if key not in payload:
        raise ModelError(f"Missing required field: {key}")
    return payload[key]


def _strict_int(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ModelError(f"{label} is not an integer (got {value!r})")
    return value


def _game_scoped_id(value: Any, label: str) -> int:
    """Accept either a bare id or the wire form ``[game_id, id]``."""
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            raise ModelError(f"{label} must be a [game, id] pair (got {value!r})")
        game = _strict_int(value[0], f"{label} game id")
        if game != GAME_ID:
            raise ModelError(f"{label} game id incorrect (expected {GAME_ID}, got {game})")
        return _strict_int(value[1], label)
    return _strict_int(value, label)


class Stage(IntEnum):
    ONE = 0
    TWO = 1
    THREE = 2
    FOUR = 3
    FIVE = 4
    SIX = 5
    EXTRA = 6
    PHANTASM = 7

    @property
    def display_name(self) -> str:
        return _STAGE_NAMES[self]

    @classmethod
    def from_raw(cls, value: Any) -> "Stage":
        raw = _strict_int(value, "stage")
        try:
            return cls(raw)
        except ValueError as exc:
            raise ModelError(f"invalid stage ID {raw}") from exc

    def __str__(self) -> str:
        return self.display_name


_STAGE_NAMES: Dict[Stage, str] = {
    Stage.ONE: "Stage 1",
    Stage.TWO: "Stage 2",
    Stage.THREE: "Stage 3",
    Stage.FOUR: "Stage 4",
    Stage.FIVE: "Stage 5",
    Stage.SIX: "Stage 6",
    Stage.EXTRA: "Extra Stage",
    Stage.PHANTASM: "Phantasm Stage",
}


class Difficulty(IntEnum):
    EASY = 0
    NORMAL = 1
    HARD = 2
    LUNATIC = 3
    EXTRA = 4
    PHANTASM = 5

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_raw(cls, value: Any) -> "Difficulty":
        raw = _strict_int(value, "difficulty")
        try:
            return cls(raw)
        except ValueError as exc:
            raise ModelError(f"invalid difficulty ID {raw}") from exc

    def __str__(self) -> str:
        return self.display_name


class ShotType(IntEnum):
    REIMU_A = 0
    REIMU_B = 1
    MARISA_A = 2
    MARISA_B = 3
    SAKUYA_A = 4
    SAKUYA_B = 5

    @property
    def display_name(self) -> str:
        character, variant = self.name.split("_")
        return f"{character.capitalize()} {variant}"

    @classmethod
    def from_raw(cls, value: Any) -> "ShotType":
        raw = _game_scoped_id(value, "shot type")
        try:
            return cls(raw)
        except ValueError as exc:
            raise ModelError(f"invalid shot type ID {raw}") from exc

    def __str__(self) -> str:
        return self.display_name


@total_ordering
@dataclass(slots=True, frozen=True)
class SpellCard:
    """Numeric spell card identity (1-based). Metadata lives in the catalog."""

    id: int

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ModelError(f"Invalid card ID {self.id!r}")

    @classmethod
    def from_raw(cls, value: Any) -> "SpellCard":
        return cls(_game_scoped_id(value, "spell card"))

    @property
    def key(self) -> str:
        return f"{self.id:03d}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SpellCard):
            return NotImplemented
        return self.id < other.id

    def to_raw(self) -> list[int]:
        return [GAME_ID, self.id]


class SectionType(IntEnum):
    START = 0
    FIRST_HALF = 1
    MIDBOSS_NONSPELL = 2
    MIDBOSS_SPELL = 3
    SECOND_HALF = 4
    PRE_BOSS = 5
    BOSS_NONSPELL = 6
    BOSS_SPELL = 7
    UNKNOWN = 8

    @property
    def wire_name(self) -> str:
        return self.name.lower()

    @property
    def has_seq(self) -> bool:
        return self not in (SectionType.START, SectionType.PRE_BOSS, SectionType.UNKNOWN)

    @property
    def has_spell(self) -> bool:
        return self in (SectionType.MIDBOSS_SPELL, SectionType.BOSS_SPELL)

    @classmethod
    def from_wire(cls, value: Any) -> "SectionType":
        if not isinstance(value, str):
            raise ModelError(f"Invalid section type {value!r}")
        try:
            return cls[value.strip().upper()]
        except KeyError as exc:
            raise ModelError(f"Invalid section type {value}") from exc


_SECTION_LABELS: Dict[SectionType, str] = {
    SectionType.START: "Start",
    SectionType.FIRST_HALF: "First Half",
    SectionType.MIDBOSS_NONSPELL: "Midboss Nonspell",
    SectionType.SECOND_HALF: "Second Half",
    SectionType.PRE_BOSS: "Pre-Boss",
    SectionType.BOSS_NONSPELL: "Boss Nonspell",
    SectionType.UNKNOWN: "Unknown",
}


@total_ordering
@dataclass(slots=True, frozen=True)
class Section:
    type: SectionType
    seq: Optional[int] = None
    spell: Optional[SpellCard] = None

    def __post_init__(self) -> None:
        if self.type.has_seq:
            if self.seq is None or isinstance(self.seq, bool) or not isinstance(self.seq, int) or self.seq < 0:
                raise ModelError(f"Section {self.type.wire_name} requires a non-negative seq (got {self.seq!r})")
        elif self.seq is not None:
            raise ModelError(f"Section {self.type.wire_name} does not take a seq")

        if self.type.has_spell and self.spell is None:
            raise ModelError(f"Section {self.type.wire_name} requires a spell card")
        if not self.type.has_spell and self.spell is not None:
            raise ModelError(f"Section {self.type.wire_name} does not take a spell card")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Section":
        if not isinstance(payload, dict):
            raise ModelError(f"Section must be an object (got {type(payload).__name__})")
        section_type = SectionType.from_wire(_require(payload, "type"))
        seq = _strict_int(_require(payload, "seq"), "seq") if section_type.has_seq else None
        spell = SpellCard.from_raw(_require(payload, "spell")) if section_type.has_spell else None
        return cls(type=section_type, seq=seq, spell=spell)

    @property
    def is_unknown(self) -> bool:
        return self.type is SectionType.UNKNOWN

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        # Spell sections order by card id; seq only breaks ties.
        if self.spell is not None:
            return (int(self.type), self.spell.id, self.seq or 0)
        return (int(self.type), self.seq or 0, 0)

    @property
    def key(self) -> str:
        ret = str(int(self.type))
        if self.seq is not None:
            ret += f":{self.seq}"
            if self.spell is not None:
                ret += f":{self.spell.key}"
        return ret

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Section):
            return NotImplemented
        return self.sort_key < other.sort_key

    def display_name(self, catalog: Optional["SpellCardCatalog"] = None) -> str:
        if self.spell is not None:
            if catalog is not None and self.spell.id in catalog:
                return catalog.get(self.spell.id).name
            return f"Spell #{self.spell.key}"
        label = _SECTION_LABELS[self.type]
        if self.seq is not None:
            return f"{label} {self.seq}"
        return label

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.wire_name}
        if self.seq is not None:
            payload["seq"] = self.seq
        if self.spell is not None:
            payload["spell"] = self.spell.to_raw()
        return payload


@total_ordering
@dataclass(slots=True, frozen=True)
class StageLocation:
    stage: Stage
    section: Section

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StageLocation":
        if not isinstance(payload, dict):
            raise ModelError(f"Location must be an object (got {type(payload).__name__})")
        return cls(
            stage=Stage.from_raw(_require(payload, "stage")),
            section=Section.from_dict(_require(payload, "section")),
        )

    @property
    def is_unknown(self) -> bool:
        return self.section.is_unknown

    @property
    def spell(self) -> Optional[SpellCard]:
        return self.section.spell

    @property
    def key(self) -> str:
        return f"{int(self.stage)}:{self.section.key}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, StageLocation):
            return NotImplemented
        return (int(self.stage), self.section.sort_key) < (int(other.stage), other.section.sort_key)

    def display_name(self, catalog: Optional["SpellCardCatalog"] = None) -> str:
        section_name = self.section.display_name(catalog)
        if self.section.spell is not None and catalog is not None and self.section.spell.id in catalog:
            return section_name
        return f"{self.stage.display_name} {section_name}"

    def __str__(self) -> str:
        return self.display_name()

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": int(self.stage), "section": self.section.to_dict()}
