from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .locations import Difficulty, ModelError, Stage, _strict_int


class CatalogError(RuntimeError):
    """Raised when spell card data cannot be loaded or queried."""


DEFAULT_SPELLCARDS_PATH = Path(__file__).resolve().parents[1] / "data" / "spellcards" / "th07.json"


@dataclass(slots=True, frozen=True)
class SpellCardInfo:
    id: int
    name: str
    difficulty: Difficulty
    stage: Stage
    is_midboss: bool

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SpellCardInfo":
        try:
            return cls(
                id=_strict_int(payload["id"], "spell card id"),
                name=str(payload["name"]),
                difficulty=Difficulty.from_raw(payload["difficulty"]),
                stage=Stage.from_raw(payload["stage"]),
                is_midboss=bool(payload.get("is_midboss", False)),
            )
        except KeyError as exc:
            raise CatalogError(f"Spell card entry is missing field {exc}") from exc
        except (ModelError, TypeError, ValueError) as exc:
            raise CatalogError(f"Invalid spell card entry {payload!r}: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": int(self.difficulty),
            "stage": int(self.stage),
            "is_midboss": self.is_midboss,
        }


class SpellCardCatalog:
    """Read-only lookup of spell card metadata keyed by 1-based id."""

    def __init__(self, cards: Dict[int, SpellCardInfo], game: str = "th07"):
        self.game = game
        self._cards = dict(cards)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SpellCardCatalog":
        if not isinstance(payload, dict):
            raise CatalogError("Spell card data root must be an object.")
        raw_cards = payload.get("cards", [])
        if not isinstance(raw_cards, list) or not raw_cards:
            raise CatalogError("Spell card data must contain a non-empty 'cards' list.")

        cards: Dict[int, SpellCardInfo] = {}
        for raw in raw_cards:
            if not isinstance(raw, dict):
                raise CatalogError(f"Spell card entry must be an object (got {raw!r})")
            info = SpellCardInfo.from_dict(raw)
            if info.id in cards:
                raise CatalogError(f"Duplicate spell card id: {info.id}")
            cards[info.id] = info

        expected = set(range(1, len(cards) + 1))
        if set(cards) != expected:
            missing = sorted(expected - set(cards))
            raise CatalogError(f"Spell card ids must be contiguous from 1; missing {missing[:5]}")
        return cls(cards, game=str(payload.get("game", "th07")))

    @classmethod
    def load(cls, path: Optional[Path | str] = None) -> "SpellCardCatalog":
        path = Path(path) if path is not None else DEFAULT_SPELLCARDS_PATH
        if not path.exists():
            raise CatalogError(f"Spell card data not found: {path}")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Invalid JSON in {path}: {exc}") from exc
        return cls.from_payload(payload)

    def get(self, card_id: int) -> SpellCardInfo:
        try:
            return self._cards[card_id]
        except KeyError as exc:
            raise CatalogError(f"Invalid card ID {card_id}") from exc

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[SpellCardInfo]:
        for card_id in sorted(self._cards):
            yield self._cards[card_id]
