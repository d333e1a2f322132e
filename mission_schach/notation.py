"""Move-token resolution shared by the hint generator and solution playback.

Mission solutions are written as coordinate pairs ("e2e4", "e7e8n"),
separated pairs ("e2-e4") or SAN ("Nf3", "Qxf7#", "e8=N"). SAN tokens
can only be resolved against the legal moves of a concrete position.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, NamedTuple

from mission_schach.errors import UnresolvableMoveToken

if TYPE_CHECKING:
    from mission_schach.rules import RulesEngine

logger = logging.getLogger(__name__)

_COORDINATE_RE = re.compile(r"^([a-h][1-8])-?([a-h][1-8])([qrbn])?$")
_DECORATION = "+#"


class ResolvedMove(NamedTuple):
    """A move token resolved to squares; promotion is a piece letter or None."""

    from_square: str
    to_square: str
    promotion: str | None = None


def parse_coordinate_token(token: str) -> ResolvedMove | None:
    """Parse a coordinate token without consulting a position.

    Args:
        token: "e2e4", "e2-e4" or with a promotion letter, "e7e8n".

    Returns:
        ResolvedMove or None if the token is not coordinate form.
    """
    match = _COORDINATE_RE.match(token)
    if match is None:
        return None
    return ResolvedMove(*match.groups())


def resolve_move_token(token: str, engine: RulesEngine) -> ResolvedMove | None:
    """Resolve a solution token to a move in the engine's position.

    Coordinate forms are taken as-is. Anything else is looked up among
    the legal moves by SAN, ignoring trailing check/mate decoration.

    Args:
        token: Move token from a mission solution.
        engine: Rules engine holding the position the token applies to.

    Returns:
        ResolvedMove or None if the token cannot be resolved.
    """
    if not token:
        return None
    token = token.strip()

    parsed = parse_coordinate_token(token)
    if parsed is not None:
        return parsed

    bare = token.rstrip(_DECORATION)
    for move in engine.legal_moves():
        if move.san in (token, bare) or move.san.rstrip(_DECORATION) == bare:
            return ResolvedMove(move.from_square, move.to_square, move.promotion)

    logger.warning("Could not resolve move token %r in %s", token, engine.position)
    return None


def require_move_token(token: str, engine: RulesEngine) -> ResolvedMove:
    """Like resolve_move_token, but raises instead of returning None.

    Raises:
        UnresolvableMoveToken: If the token cannot be resolved.
    """
    resolved = resolve_move_token(token, engine)
    if resolved is None:
        raise UnresolvableMoveToken(token)
    return resolved
