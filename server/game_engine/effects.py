"""
Timed effects and the handler table for special card effects.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TYPE_CHECKING

from shared.enums import ActiveEffectKind

from .errors import SnapshotError

if TYPE_CHECKING:
    from .match import Match
    from .player import Player


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectType:
    """Kind of an active effect; CUSTOM carries a tag."""
    kind: ActiveEffectKind
    tag: str = ""

    @classmethod
    def custom(cls, tag: str) -> "EffectType":
        return cls(ActiveEffectKind.CUSTOM, tag)

    def to_dict(self) -> dict:
        data = {"kind": self.kind.value}
        if self.kind == ActiveEffectKind.CUSTOM:
            data["tag"] = self.tag
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "EffectType":
        kind = ActiveEffectKind(data["kind"])
        if kind == ActiveEffectKind.CUSTOM:
            return cls.custom(data["tag"])
        return cls(kind)


SHIELD = EffectType(ActiveEffectKind.SHIELD)


@dataclass
class ActiveEffect:
    """A modifier attached to a player for a number of turn ends."""
    type: EffectType
    player_id: str
    duration: int

    @property
    def is_expired(self) -> bool:
        return self.duration <= 0

    def to_dict(self) -> dict:
        return {
            "type": self.type.to_dict(),
            "player_id": self.player_id,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActiveEffect":
        try:
            return cls(
                type=EffectType.from_dict(data["type"]),
                player_id=data["player_id"],
                duration=int(data["duration"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise SnapshotError(f"Invalid active effect {data!r}: {e}") from e


# handler(match, actor, target_id)
SpecialHandler = Callable[["Match", "Player", Optional[str]], None]


@dataclass
class SpecialEffectRegistry:
    """
    Dispatch table for SPECIAL card effects, keyed by tag.

    Tags with no registered handler resolve to a no-op.
    """

    _handlers: Dict[str, SpecialHandler] = field(default_factory=dict)

    def register(self, tag: str, handler: SpecialHandler) -> None:
        """Register (or replace) the handler for a tag."""
        self._handlers[tag] = handler

    def unregister(self, tag: str) -> None:
        self._handlers.pop(tag, None)

    def has_handler(self, tag: str) -> bool:
        return tag in self._handlers

    def dispatch(
        self,
        tag: str,
        match: "Match",
        actor: "Player",
        target_id: Optional[str]
    ) -> bool:
        """
        Run the handler for a tag.

        Returns:
            True if a handler ran
        """
        handler = self._handlers.get(tag)
        if handler is None:
            logger.debug(f"No handler for special effect '{tag}'")
            return False
        handler(match, actor, target_id)
        return True
