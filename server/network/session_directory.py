"""
Session directory: the lobby list of matches.

Creating a match writes its directory entry, the host's seat and the
version-0 snapshot in one go, so every later write can compare-and-swap
against a stored version.
"""

import json
import logging
from dataclasses import dataclass, field

from server.config import settings
from server.game_engine import Match, Player
from server.persistence import (
    MatchRepository,
    MatchRecord,
    MatchSummary,
    SeatRecord,
)
from shared.protocol import MatchSettings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The acting user, as supplied by whoever authenticated them."""
    user_id: str
    display_name: str


@dataclass
class MatchConfig:
    """What a host asks for when creating a match."""
    name: str
    host: Identity
    settings: MatchSettings = field(default_factory=MatchSettings)


class SessionDirectory:
    """Create, join and list matches against the persistent store."""

    def __init__(self, repository: MatchRepository | None = None):
        self._repository = repository or MatchRepository()

    @property
    def repository(self) -> MatchRepository:
        return self._repository

    def list_open_matches(self) -> list[MatchSummary]:
        """Matches still waiting for players."""
        return self._repository.list_open_matches()

    def create_match(self, config: MatchConfig) -> str:
        """
        Create a match with the host seated.

        Returns:
            The new match's ID

        Raises:
            ValueError: if the requested player count is unsupported
        """
        match = Match.create(
            name=config.name,
            host_id=config.host.user_id,
            host_username=config.host.display_name,
            max_players=config.settings.max_players,
        )

        self._repository.create_match(MatchRecord(
            id=match.id,
            name=match.name,
            host_id=match.host_id,
            max_players=match.max_players,
            status=match.status.value,
            phase=match.current_phase.value,
            version=match.version,
            settings_json=json.dumps(config.settings.to_dict()),
        ))
        self.record_join(match.id, match.players[0])
        self._repository.save_snapshot(match.id, match.to_dict(), match.version)

        logger.info(f"Match '{match.name}' ({match.id}) created by {config.host.display_name}")

        return match.id

    def record_join(self, match_id: str, player: Player) -> SeatRecord:
        """Record that a player took the next free seat."""
        seats = self._repository.get_seats(match_id)
        seat = max((s.seat for s in seats), default=-1) + 1
        return self._repository.record_join(SeatRecord(
            match_id=match_id,
            user_id=player.user_id,
            player_id=player.id,
            username=player.username,
            seat=seat,
        ))

    def record_leave(self, match_id: str, user_id: str) -> bool:
        """Forget a seat when its player leaves the lobby."""
        return self._repository.remove_seat(match_id, user_id)

    def matches_for_user(self, user_id: str) -> list[str]:
        """Every match a user holds a seat in."""
        return self._repository.get_matches_for_user(user_id)

    def cleanup(self, match_id: str) -> int:
        """Trim a match's snapshot history."""
        return self._repository.cleanup_old_snapshots(match_id, settings.SNAPSHOT_KEEP_COUNT)
