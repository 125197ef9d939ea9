"""
Persistence layer for the Mafia Showdown server.

Provides SQLite-based storage for matches, seats, and match snapshots.
"""

from server.persistence.database import (
    Database,
    get_database,
    init_database
)
from server.persistence.models import (
    MatchRecord,
    SeatRecord,
    MatchSnapshot,
    MatchSummary
)
from server.persistence.repository import MatchRepository, StaleSnapshotError


__all__ = [
    # Database
    "Database",
    "get_database",
    "init_database",

    # Models
    "MatchRecord",
    "SeatRecord",
    "MatchSnapshot",
    "MatchSummary",

    # Repository
    "MatchRepository",
    "StaleSnapshotError"
]
