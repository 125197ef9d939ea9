"""
Repository layer for match persistence operations.

Handles all database CRUD operations and match snapshot serialization.
"""

import json
from typing import Any

from server.persistence.database import Database, get_database
from server.persistence.models import (
    MatchRecord,
    SeatRecord,
    MatchSnapshot,
    MatchSummary
)


class StaleSnapshotError(Exception):
    """Raised when a snapshot is written against a version that has moved on."""

    def __init__(self, match_id: str, expected_version: int, actual_version: int | None):
        self.match_id = match_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Match {match_id} is at version {actual_version}, "
            f"writer expected {expected_version}"
        )


class MatchRepository:
    """
    Repository for match persistence operations.

    Provides high-level methods for saving and loading matches,
    abstracting away the database details.
    """

    def __init__(self, database: Database | None = None):
        self.db = database or get_database()

    # =========================================================================
    # Match CRUD Operations
    # =========================================================================

    def create_match(self, record: MatchRecord) -> MatchRecord:
        """Create a new match record."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO matches (id, name, host_id, max_players, status, phase,
                                     version, settings_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.name,
                    record.host_id,
                    record.max_players,
                    record.status,
                    record.phase,
                    record.version,
                    record.settings_json
                )
            )
        return record

    def get_match(self, match_id: str) -> MatchRecord | None:
        """Get a match by ID."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM matches WHERE id = ?",
                (match_id,)
            )
            row = cursor.fetchone()

            if row:
                return MatchRecord.from_row(dict(row))
            return None

    def delete_match(self, match_id: str) -> bool:
        """Delete a match and all related data (cascades)."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM matches WHERE id = ?",
                (match_id,)
            )
            return cursor.rowcount > 0

    def list_matches(
        self,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0
    ) -> list[MatchSummary]:
        """List matches with optional status filter."""
        query = """
            SELECT m.id, m.name, m.host_id, m.status, m.max_players,
                   m.created_at, m.updated_at,
                   COUNT(s.user_id) as player_count
            FROM matches m
            LEFT JOIN seats s ON m.id = s.match_id
            {where}
            GROUP BY m.id
            ORDER BY m.updated_at DESC
            LIMIT ? OFFSET ?
        """
        with self.db.get_connection() as conn:
            if status:
                cursor = conn.execute(
                    query.format(where="WHERE m.status = ?"),
                    (status, limit, offset)
                )
            else:
                cursor = conn.execute(
                    query.format(where=""),
                    (limit, offset)
                )

            return [
                MatchSummary(
                    id=row["id"],
                    name=row["name"],
                    host_id=row["host_id"],
                    status=row["status"],
                    player_count=row["player_count"],
                    max_players=row["max_players"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"]
                )
                for row in cursor.fetchall()
            ]

    def list_open_matches(self, limit: int = 50) -> list[MatchSummary]:
        """Matches still waiting for players and with a free seat."""
        return [m for m in self.list_matches(status="WAITING", limit=limit) if m.is_open]

    # =========================================================================
    # Seat Operations
    # =========================================================================

    def record_join(self, seat: SeatRecord) -> SeatRecord:
        """Record that a user took a seat in a match."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO seats (match_id, user_id, player_id, username, seat)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(match_id, user_id) DO UPDATE SET
                    player_id = excluded.player_id,
                    username = excluded.username,
                    seat = excluded.seat
                """,
                (
                    seat.match_id,
                    seat.user_id,
                    seat.player_id,
                    seat.username,
                    seat.seat
                )
            )
        return seat

    def remove_seat(self, match_id: str, user_id: str) -> bool:
        """Forget a user's seat (they left the lobby)."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM seats WHERE match_id = ? AND user_id = ?",
                (match_id, user_id)
            )
            return cursor.rowcount > 0

    def get_seats(self, match_id: str) -> list[SeatRecord]:
        """Get all seats in a match, in seating order."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM seats WHERE match_id = ? ORDER BY seat",
                (match_id,)
            )
            return [SeatRecord.from_row(dict(row)) for row in cursor.fetchall()]

    def get_matches_for_user(self, user_id: str) -> list[str]:
        """IDs of every match a user has a seat in."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT match_id FROM seats WHERE user_id = ?",
                (user_id,)
            )
            return [row["match_id"] for row in cursor.fetchall()]

    # =========================================================================
    # Match Snapshots
    # =========================================================================

    def save_snapshot(
        self,
        match_id: str,
        state: dict[str, Any],
        expected_version: int
    ) -> int:
        """
        Save a complete match snapshot with compare-and-swap on version.

        The match row must still be at `expected_version`; it is moved to
        the snapshot's own version in the same transaction.

        Returns the snapshot ID.

        Raises:
            StaleSnapshotError: if another writer already moved the match on
        """
        version = state["version"]
        state_json = json.dumps(state)

        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE matches
                SET version = ?,
                    status = ?,
                    phase = ?,
                    updated_at = CURRENT_TIMESTAMP,
                    finished_at = CASE WHEN ? = 'COMPLETED'
                                       THEN CURRENT_TIMESTAMP ELSE finished_at END
                WHERE id = ? AND version = ?
                """,
                (
                    version,
                    state["status"],
                    state["current_phase"],
                    state["status"],
                    match_id,
                    expected_version
                )
            )

            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT version FROM matches WHERE id = ?",
                    (match_id,)
                ).fetchone()
                raise StaleSnapshotError(
                    match_id, expected_version, row["version"] if row else None
                )

            cursor = conn.execute(
                """
                INSERT INTO match_snapshots (match_id, version, state_json)
                VALUES (?, ?, ?)
                """,
                (match_id, version, state_json)
            )
            return cursor.lastrowid

    def get_latest_snapshot(self, match_id: str) -> MatchSnapshot | None:
        """Get the most recent match snapshot."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM match_snapshots
                WHERE match_id = ?
                ORDER BY version DESC
                LIMIT 1
                """,
                (match_id,)
            )
            row = cursor.fetchone()

            if row:
                return MatchSnapshot.from_row(dict(row))
            return None

    def get_snapshot_at_version(self, match_id: str, version: int) -> MatchSnapshot | None:
        """Get the newest snapshot at or before a version (for replay)."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM match_snapshots
                WHERE match_id = ? AND version <= ?
                ORDER BY version DESC
                LIMIT 1
                """,
                (match_id, version)
            )
            row = cursor.fetchone()

            if row:
                return MatchSnapshot.from_row(dict(row))
            return None

    def cleanup_old_snapshots(self, match_id: str, keep_count: int = 10) -> int:
        """
        Delete old snapshots, keeping the most recent ones.

        Returns the number of deleted snapshots.
        """
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                DELETE FROM match_snapshots
                WHERE match_id = ? AND id NOT IN (
                    SELECT id FROM match_snapshots
                    WHERE match_id = ?
                    ORDER BY version DESC
                    LIMIT ?
                )
                """,
                (match_id, match_id, keep_count)
            )
            return cursor.rowcount

    def load_match_state(self, match_id: str) -> dict[str, Any] | None:
        """
        Load the latest full state of a match.

        Returns the decoded snapshot, or None if the match was never saved.
        """
        snapshot = self.get_latest_snapshot(match_id)
        if snapshot is None:
            return None
        return json.loads(snapshot.state_json)
