"""Error taxonomy for Mission Schach.

Every condition here is recoverable: the session engine raises these,
and the MCP server turns them into ``{"error": ...}`` responses.
"""

from __future__ import annotations


class MissionError(Exception):
    """Base class for all mission engine errors."""


class MissionNotFound(MissionError):
    """No mission with the requested id exists."""

    def __init__(self, mission_id: str) -> None:
        super().__init__(f"Mission not found: {mission_id}")
        self.mission_id = mission_id


class MissionFormatError(MissionError):
    """A mission record is malformed and cannot be normalized."""


class IllegalMove(MissionError):
    """The rules engine rejected a move. Session state is unchanged."""

    def __init__(self, from_square: str, to_square: str) -> None:
        super().__init__(f"Illegal move: {from_square}-{to_square}")
        self.from_square = from_square
        self.to_square = to_square


class UnresolvableMoveToken(MissionError):
    """A solution token could not be mapped to a legal move."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Could not resolve move token: {token!r}")
        self.token = token


class PersistenceFailure(MissionError):
    """Progress could not be written or read."""


class SessionNotActive(MissionError):
    """The operation requires an active session."""


class PlaybackInProgress(MissionError):
    """Manual moves are rejected while the solution is being played back."""
