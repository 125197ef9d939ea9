"""
Match manager: the single writer for every match it hosts.

Commands for one match are serialized by a per-match lock. Each accepted
command is published as a new snapshot before the next one runs; if the
store has moved on underneath us the in-memory copy is thrown away and
reloaded.
"""

import asyncio
import logging
from typing import Any

from server.config import settings
from server.game_engine import (
    ActionResult,
    Command,
    CommandResult,
    JoinMatch,
    LeaveMatch,
    Match,
    SnapshotError,
    SpecialEffectRegistry,
    TurnTimer,
    WinCondition,
)
from server.network.session_directory import Identity, MatchConfig, SessionDirectory
from server.network.sync_channel import SyncChannel
from server.persistence import StaleSnapshotError
from shared.enums import MatchPhase, MatchStatus
from shared.protocol import MatchSettings


logger = logging.getLogger(__name__)


class MatchManager:
    """
    Hosts live matches and applies commands to them.

    Provides methods for:
    - Creating, joining and leaving matches
    - Executing commands one at a time per match
    - Loading matches back from their latest snapshot
    - Running a turn timer per match
    """

    def __init__(
        self,
        directory: SessionDirectory | None = None,
        channel: SyncChannel | None = None,
        turn_timeout: float | None = None,
        win_condition: WinCondition | None = None,
        special_effects: SpecialEffectRegistry | None = None
    ):
        self._directory = directory or SessionDirectory()
        self._channel = channel or SyncChannel(self._directory.repository)
        self._win_condition = win_condition
        self._special_effects = special_effects

        # match_id -> Match
        self._matches: dict[str, Match] = {}

        # match_id -> lock serializing its commands
        self._locks: dict[str, asyncio.Lock] = {}

        # user_id -> match_id (for quick lookup)
        self._user_matches: dict[str, str] = {}

        # match_id -> timer, and the (turn, phase) it is counting
        self._turn_timeout = settings.TURN_TIMEOUT if turn_timeout is None else turn_timeout
        self._timers: dict[str, TurnTimer] = {}
        self._timer_turns: dict[str, tuple[int, MatchPhase]] = {}

    @property
    def directory(self) -> SessionDirectory:
        return self._directory

    @property
    def channel(self) -> SyncChannel:
        return self._channel

    def _lock_for(self, match_id: str) -> asyncio.Lock:
        lock = self._locks.get(match_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[match_id] = lock
        return lock

    # =========================================================================
    # Lobby
    # =========================================================================

    async def create_match(
        self,
        identity: Identity,
        name: str,
        match_settings: MatchSettings | None = None
    ) -> tuple[bool, str, Match | None]:
        """
        Create a match hosted by `identity`.

        Returns:
            Tuple of (success, message, Match or None)
        """
        if identity.user_id in self._user_matches:
            return False, "You are already in a match", None

        config = MatchConfig(name=name, host=identity, settings=match_settings or MatchSettings())
        try:
            match_id = self._directory.create_match(config)
        except ValueError as e:
            return False, str(e), None

        success, msg, match = self.load_match(match_id)
        if not success:
            return False, msg, None

        self._user_matches[identity.user_id] = match_id

        return True, f"Match '{name}' created", match

    async def join_match(self, match_id: str, identity: Identity) -> CommandResult:
        """Seat a user in a match and record the seat in the directory."""
        current = self._user_matches.get(identity.user_id)
        if current is not None and current != match_id:
            return CommandResult(
                success=False,
                result=ActionResult.ALREADY_JOINED,
                message="You are already in another match",
            )

        result = await self.execute(
            match_id,
            JoinMatch(actor_id=identity.user_id, username=identity.display_name)
        )

        if result.success:
            player = self._matches[match_id].get_player(identity.user_id)
            self._directory.record_join(match_id, player)
            self._user_matches[identity.user_id] = match_id
            logger.info(f"{identity.display_name} ({identity.user_id}) joined match {match_id}")

        return result

    async def leave_match(self, identity: Identity) -> tuple[CommandResult, str | None]:
        """
        Leave the user's current match.

        A finished match is simply forgotten; a lobby seat is given up.

        Returns:
            Tuple of (CommandResult, match_id or None)
        """
        match_id = self._user_matches.get(identity.user_id)
        if match_id is None:
            return CommandResult(
                success=False,
                result=ActionResult.PLAYER_NOT_FOUND,
                message="You are not in a match",
            ), None

        match = self._matches.get(match_id)
        if match is not None and match.status == MatchStatus.COMPLETED:
            del self._user_matches[identity.user_id]
            return CommandResult(
                success=True,
                result=ActionResult.SUCCESS,
                message="Left finished match",
                version=match.version,
            ), match_id

        result = await self.execute(match_id, LeaveMatch(actor_id=identity.user_id))
        if result.success:
            self._directory.record_leave(match_id, identity.user_id)
            del self._user_matches[identity.user_id]

        return result, match_id

    def list_open_matches(self) -> list[dict[str, Any]]:
        """Lobby listing of matches with a free seat."""
        return [summary.to_dict() for summary in self._directory.list_open_matches()]

    # =========================================================================
    # Commands
    # =========================================================================

    async def execute(self, match_id: str, command: Command) -> CommandResult:
        """
        Apply a command to a match and publish the result.

        Commands that change nothing (rejected or stale) are not published.
        """
        async with self._lock_for(match_id):
            match = self._matches.get(match_id)
            if match is None:
                _, msg, match = self.load_match(match_id)
                if match is None:
                    return CommandResult(
                        success=False,
                        result=ActionResult.MATCH_NOT_FOUND,
                        message=msg,
                    )

            before = match.version
            result = command.execute(match)

            if match.version == before:
                logger.debug(
                    f"{command.name} by {command.actor_id} rejected in match {match_id}: "
                    f"{result.message}"
                )
                return result

            try:
                await self._channel.publish(match_id, match.to_dict(), before)
            except StaleSnapshotError as e:
                logger.warning(f"Lost write race on match {match_id}: {e}")
                self._matches.pop(match_id, None)
                self.load_match(match_id)
                return CommandResult(
                    success=False,
                    result=ActionResult.STALE_VERSION,
                    message=str(e),
                    version=e.actual_version or 0,
                )

            logger.info(
                f"{command.name} by {command.actor_id} in match {match_id} "
                f"-> v{match.version}: {result.message}"
            )

            self._sync_timer(match)

            return result

    # =========================================================================
    # Turn timer
    # =========================================================================

    def _sync_timer(self, match: Match) -> None:
        """
        Restart the match's timer when a turn or phase begins.

        An expired timer is always restarted, so a player sent to discard
        by a timed-out turn gets a fresh countdown.
        """
        if self._turn_timeout <= 0:
            return

        current = match.current_player
        if current is None:
            self._stop_timer(match.id)
            return

        key = (match.turn_number, match.current_phase)
        timer = self._timers.get(match.id)
        if self._timer_turns.get(match.id) == key and timer is not None and timer.is_running:
            return

        if timer is None:
            match_id = match.id
            timer = TurnTimer(
                on_expire=lambda command: self.execute(match_id, command),
                timeout=self._turn_timeout,
            )
            self._timers[match_id] = timer

        timer.start(match.id, current.user_id)
        self._timer_turns[match.id] = key

    def _stop_timer(self, match_id: str) -> None:
        timer = self._timers.pop(match_id, None)
        if timer is not None:
            timer.cancel()
        self._timer_turns.pop(match_id, None)

    def get_timer(self, match_id: str) -> TurnTimer | None:
        return self._timers.get(match_id)

    def shutdown(self) -> None:
        """Cancel every pending turn timer."""
        for match_id in list(self._timers):
            self._stop_timer(match_id)

    # =========================================================================
    # Persistence
    # =========================================================================

    def load_match(self, match_id: str) -> tuple[bool, str, Match | None]:
        """
        Load a match from its latest snapshot.

        Returns:
            Tuple of (success, message, Match or None)
        """
        if match_id in self._matches:
            return True, "Match already loaded", self._matches[match_id]

        state = self._directory.repository.load_match_state(match_id)
        if state is None:
            return False, "Match not found", None

        try:
            match = Match.from_dict(
                state,
                win_condition=self._win_condition,
                special_effects=self._special_effects,
            )
        except SnapshotError as e:
            logger.error(f"Failed to load match {match_id}: {e}")
            return False, f"Failed to load match: {e}", None

        self._matches[match_id] = match
        for player in match.players:
            self._user_matches.setdefault(player.user_id, match_id)

        logger.info(f"Match {match_id} loaded at version {match.version}")

        return True, "Match loaded", match

    # =========================================================================
    # Queries
    # =========================================================================

    def get_match(self, match_id: str) -> Match | None:
        return self._matches.get(match_id)

    def get_match_id_for_user(self, user_id: str) -> str | None:
        return self._user_matches.get(user_id)

    def get_match_for_user(self, user_id: str) -> Match | None:
        """Get the match a user is seated in."""
        match_id = self._user_matches.get(user_id)
        if match_id:
            return self._matches.get(match_id)
        return None

    def get_stats(self) -> dict[str, Any]:
        """Get match manager statistics."""
        by_status: dict[str, int] = {}
        for match in self._matches.values():
            by_status[match.status.value] = by_status.get(match.status.value, 0) + 1

        return {
            "matches_in_memory": len(self._matches),
            "matches_by_status": by_status,
            "users_in_matches": len(self._user_matches),
            "running_timers": sum(1 for t in self._timers.values() if t.is_running),
        }
