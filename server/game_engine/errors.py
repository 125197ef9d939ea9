"""
Exceptions raised by the game engine.

Rule violations are never raised; they come back as (False, message)
results. These exceptions cover corrupt data and programmer errors.
"""


class MatchError(Exception):
    """Base class for game engine errors."""


class SnapshotError(MatchError):
    """A serialized match is missing data or is internally inconsistent."""


class MatchNotInitializedError(MatchError):
    """A turn operation was invoked on a match that was never set up."""
