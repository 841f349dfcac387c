from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Annotated, Any, ClassVar, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from .locations import Difficulty, ShotType, SpellCard, Stage, StageLocation

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Count8 = Annotated[StrictInt, Field(ge=0, le=8)]
Power = Annotated[StrictInt, Field(ge=0, le=128)]
NonNegative = Annotated[StrictInt, Field(ge=0)]


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def to_epoch_ms(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def _check_spell(spell: SpellCard, info: ValidationInfo) -> SpellCard:
    context = info.context if isinstance(info.context, dict) else {}
    catalog = context.get("spellcards")
    if catalog is None:
        raise ValueError("spell card data is not loaded")
    if spell.id not in catalog:
        raise ValueError(f"invalid card ID {spell.id}")
    return spell


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="ignore")

    kind_order: ClassVar[int] = 0

    time: datetime

    @field_validator("time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("time must be epoch milliseconds or an ISO timestamp")
        if isinstance(value, int):
            return from_epoch_ms(value)
        return value

    @field_validator("time", mode="after")
    @classmethod
    def _normalize_time(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.replace(microsecond=(value.microsecond // 1000) * 1000)

    @property
    def sort_key(self) -> Tuple[datetime, int]:
        return (self.time, self.kind_order)


class _UnlocatedEvent(_EventBase):
    @property
    def location(self) -> Optional[StageLocation]:
        return None


class _LocatedEvent(_EventBase):
    location: StageLocation

    @field_validator("location", mode="before")
    @classmethod
    def _parse_location(cls, value: Any) -> Any:
        if isinstance(value, StageLocation):
            return value
        return StageLocation.from_dict(value)

    @field_validator("location", mode="after")
    @classmethod
    def _check_location_spell(cls, value: StageLocation, info: ValidationInfo) -> StageLocation:
        if value.spell is not None:
            _check_spell(value.spell, info)
        return value


class StartGame(_LocatedEvent):
    kind_order: ClassVar[int] = 0

    event: Literal["start_game"] = "start_game"
    shot: ShotType = Field(validation_alias=AliasChoices("shot", "character"))
    difficulty: Difficulty
    practice: StrictBool
    lives: Count8
    bombs: Count8
    power: Power

    @field_validator("shot", mode="before")
    @classmethod
    def _parse_shot(cls, value: Any) -> Any:
        return ShotType.from_raw(value)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _parse_difficulty(cls, value: Any) -> Any:
        return Difficulty.from_raw(value)


class Pause(_UnlocatedEvent):
    kind_order: ClassVar[int] = 1

    event: Literal["pause"] = "pause"


class Unpause(_UnlocatedEvent):
    kind_order: ClassVar[int] = 2

    event: Literal["unpause"] = "unpause"


class EnterSection(_LocatedEvent):
    kind_order: ClassVar[int] = 3

    event: Literal["enter_section"] = "enter_section"
    lives: Count8
    bombs: Count8
    power: Power
    continues: NonNegative


class Miss(_LocatedEvent):
    kind_order: ClassVar[int] = 4

    event: Literal["miss"] = "miss"


class Bomb(_LocatedEvent):
    kind_order: ClassVar[int] = 5

    event: Literal["bomb"] = "bomb"


class FinishSpell(_UnlocatedEvent):
    kind_order: ClassVar[int] = 6

    event: Literal["finish_spell"] = "finish_spell"
    spell: SpellCard
    captured: StrictBool

    @field_validator("spell", mode="before")
    @classmethod
    def _parse_spell(cls, value: Any) -> Any:
        if isinstance(value, SpellCard):
            return value
        return SpellCard.from_raw(value)

    @field_validator("spell", mode="after")
    @classmethod
    def _check_known_spell(cls, value: SpellCard, info: ValidationInfo) -> SpellCard:
        return _check_spell(value, info)


class BorderStart(_LocatedEvent):
    kind_order: ClassVar[int] = 7

    event: Literal["border_start"] = "border_start"


class BorderEnd(_LocatedEvent):
    kind_order: ClassVar[int] = 8

    event: Literal["border_end"] = "border_end"
    broken: StrictBool


class StageCleared(_UnlocatedEvent):
    kind_order: ClassVar[int] = 9

    event: Literal["stage_cleared"] = "stage_cleared"
    stage: Stage

    @field_validator("stage", mode="before")
    @classmethod
    def _parse_stage(cls, value: Any) -> Any:
        return Stage.from_raw(value)


class EndGame(_LocatedEvent):
    kind_order: ClassVar[int] = 10

    event: Literal["end_game"] = "end_game"
    misses: NonNegative
    bombs: NonNegative
    continues: NonNegative
    cleared: StrictBool
    retrying: StrictBool


GameEvent = Annotated[
    Union[
        StartGame,
        EndGame,
        StageCleared,
        EnterSection,
        Miss,
        Bomb,
        FinishSpell,
        BorderStart,
        BorderEnd,
        Pause,
        Unpause,
    ],
    Field(discriminator="event"),
]

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(GameEvent)


def parse_event(raw: Any, spellcards: Any = None) -> GameEvent:
    """Validate one raw event record.

    Raises pydantic ``ValidationError`` naming the offending field when the
    ``event`` discriminant is unknown or any field is out of range. Events that
    reference a spell card need ``spellcards`` (a ``SpellCardCatalog``).
    """
    return _EVENT_ADAPTER.validate_python(raw, context={"spellcards": spellcards})


def parse_events(
    records: Iterable[Any],
    spellcards: Any = None,
) -> Tuple[List[GameEvent], List[Tuple[int, ValidationError]]]:
    events: List[GameEvent] = []
    errors: List[Tuple[int, ValidationError]] = []
    for index, raw in enumerate(records):
        try:
            events.append(parse_event(raw, spellcards))
        except ValidationError as exc:
            errors.append((index, exc))
    return events, errors


def event_to_dict(event: GameEvent) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"event": event.event, "time": to_epoch_ms(event.time)}
    for name in type(event).model_fields:
        if name in {"event", "time"}:
            continue
        value = getattr(event, name)
        if isinstance(value, StageLocation):
            payload[name] = value.to_dict()
        elif isinstance(value, ShotType):
            payload["character"] = [7, int(value)]
        elif isinstance(value, SpellCard):
            payload[name] = value.to_raw()
        elif isinstance(value, IntEnum):
            payload[name] = int(value)
        else:
            payload[name] = value
    return payload


__all__ = [
    "Bomb",
    "BorderEnd",
    "BorderStart",
    "EndGame",
    "EnterSection",
    "FinishSpell",
    "GameEvent",
    "Miss",
    "Pause",
    "StageCleared",
    "StartGame",
    "Unpause",
    "ValidationError",
    "event_to_dict",
    "from_epoch_ms",
    "parse_event",
    "parse_events",
    "to_epoch_ms",
]
