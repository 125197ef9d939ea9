"""
Static role and character data.
"""
import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from shared.constants import (
    CHARACTERS, CHARACTER_OPTIONS_COUNT, ROLE_TABLE
)
from shared.enums import Role, PlayerAction


@dataclass(frozen=True)
class Character:
    """A selectable character. Shared and read-only."""

    id: str
    name: str
    ability: str
    base_health: int
    base_ammo: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ability": self.ability,
            "base_health": self.base_health,
            "base_ammo": self.base_ammo,
        }


_CHARACTERS: Tuple[Character, ...] = tuple(
    Character(
        id=name.lower(),
        name=name,
        ability=ability,
        base_health=health,
        base_ammo=ammo,
    )
    for name, ability, health, ammo in CHARACTERS
)

_CHARACTERS_BY_ID = {character.id: character for character in _CHARACTERS}


def all_characters() -> Tuple[Character, ...]:
    """Every character in the catalog."""
    return _CHARACTERS


def get_character(character_id: str) -> Optional[Character]:
    """Look up a character by id."""
    return _CHARACTERS_BY_ID.get(character_id)


def character_options(
    rng: random.Random,
    count: int = CHARACTER_OPTIONS_COUNT
) -> List[Character]:
    """Pick `count` distinct characters to offer a player."""
    return rng.sample(list(_CHARACTERS), count)


def roles_for_count(player_count: int) -> List[Role]:
    """
    Role multiset for a match of the given size.

    Returns an empty list for unsupported player counts; callers treat
    that as "role distribution unsupported".
    """
    counts = ROLE_TABLE.get(player_count)
    if counts is None:
        return []

    dons, traitors, capos, agents = counts
    return (
        [Role.DON] * dons
        + [Role.TRAITOR] * traitors
        + [Role.CAPO] * capos
        + [Role.FBI_AGENT] * agents
    )


def can_see_role(viewer_role: Optional[Role], subject_role: Optional[Role], is_self: bool) -> bool:
    """
    Whether a player may see another player's role.

    The Don is public, everyone knows their own role, and the Don knows
    the Capos.
    """
    if subject_role is None:
        return False
    if is_self or subject_role == Role.DON:
        return True
    return viewer_role == Role.DON and subject_role == Role.CAPO


def is_action_available(action: PlayerAction, role: Optional[Role], ammo: int) -> bool:
    """Whether a role may use a table action."""
    if role is None:
        return False
    if action == PlayerAction.ATTACK:
        return ammo > 0
    if action == PlayerAction.HEAL:
        return role == Role.DON
    if action == PlayerAction.INVESTIGATE:
        return role == Role.FBI_AGENT
    if action == PlayerAction.PROTECT:
        return role == Role.CAPO
    return False
