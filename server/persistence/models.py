"""
Data models for database operations.

These are simple dataclasses that map to database rows,
separate from the game engine models.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class MatchRecord:
    """Database representation of a match's directory entry."""
    id: str
    name: str
    host_id: str
    max_players: int
    status: str = "WAITING"
    phase: str = "WAITING"
    version: int = 0
    settings_json: str = "{}"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MatchRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            host_id=row["host_id"],
            max_players=row["max_players"],
            status=row["status"],
            phase=row["phase"],
            version=row["version"],
            settings_json=row["settings_json"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            finished_at=row["finished_at"]
        )


@dataclass
class SeatRecord:
    """A user's seat in a match, as recorded by the session directory."""
    match_id: str
    user_id: str
    player_id: str
    username: str
    seat: int
    joined_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SeatRecord":
        """Create from database row."""
        return cls(
            match_id=row["match_id"],
            user_id=row["user_id"],
            player_id=row["player_id"],
            username=row["username"],
            seat=row["seat"],
            joined_at=row["joined_at"]
        )


@dataclass
class MatchSnapshot:
    """
    Complete serialized match state.

    Stores the full JSON from match.to_dict(), one row per version.
    """
    id: int | None
    match_id: str
    version: int
    state_json: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MatchSnapshot":
        """Create from database row."""
        return cls(
            id=row["id"],
            match_id=row["match_id"],
            version=row["version"],
            state_json=row["state_json"],
            created_at=row["created_at"]
        )


@dataclass
class MatchSummary:
    """Lightweight match info for lobby listings."""
    id: str
    name: str
    host_id: str
    status: str
    player_count: int
    max_players: int
    created_at: datetime | None
    updated_at: datetime | None

    @property
    def is_open(self) -> bool:
        return self.status == "WAITING" and self.player_count < self.max_players

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host_id": self.host_id,
            "status": self.status,
            "player_count": self.player_count,
            "max_players": self.max_players,
        }
