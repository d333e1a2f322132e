"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_session.json (TUI sync) keeps the full snapshot; only MCP return values
are minified.

PGN string format for move_list uses standard chess notation
(1.e4 e5 2.Nf3 ...) which is natural for the LLM agent to read.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session_state(state: dict) -> dict:
    """Minify a session snapshot dict for MCP response.

    Compacts move_list to a PGN string, replaces legal_moves with a count,
    and drops the TUI-only fields (selected_square, playback highlights).

    Args:
        state: Full snapshot dict (as produced by MissionSession.snapshot).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "session_id", "mission_id", "title", "instruction", "phase", "fen",
        "turn", "last_move_san", "goals", "hint_level", "solution_revealed",
        "is_check", "game_over_reason", "score",
    ):
        if key in state:
            result[key] = state[key]

    move_list = state.get("move_list", [])
    if isinstance(move_list, list):
        result["move_list"] = _moves_to_pgn_string(move_list)
    else:
        result["move_list"] = move_list

    legal_moves = state.get("legal_moves", [])
    if isinstance(legal_moves, list):
        result["legal_moves_count"] = len(legal_moves)
    else:
        result["legal_moves_count"] = 0

    playback = state.get("playback")
    if isinstance(playback, dict):
        result["playback"] = {
            "is_playing": playback.get("is_playing", False),
            "step_index": playback.get("step_index", 0),
            "total_steps": playback.get("total_steps", 0),
        }

    return result


def minify_hint(hint: dict) -> dict:
    """Minify a hint dict: flatten highlights to a list of squares."""
    return {
        "level": hint.get("level"),
        "text": hint.get("text"),
        "squares": [h["square"] for h in hint.get("highlights", [])],
    }


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str]) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'

    Missions starting with black to move are numbered as if white moved
    first; the numbers are for reading, not for PGN export.
    """
    if not moves:
        return ""

    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_STATE_SCHEMA = {
    "session_id": str,
    "mission_id": str,
    "title": str,
    "phase": str,
    "fen": str,
    "turn": str,
    "last_move_san": (str, type(None)),
    "goals": list,
    "hint_level": int,
    "solution_revealed": bool,
    "is_check": bool,
    "game_over_reason": (str, type(None)),
    "score": (dict, type(None)),
    "move_list": str,
    "legal_moves_count": int,
}

HINT_SCHEMA = {
    "level": int,
    "text": str,
    "squares": list,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when MISSION_SCHACH_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("MISSION_SCHACH_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        types = expected if isinstance(expected, tuple) else (expected,)
        value = response[key]
        # bool is an int subclass; a flag is never a valid count
        if isinstance(value, bool) and bool not in types:
            valid = False
        else:
            valid = isinstance(value, types)
        if not valid:
            type_names = " | ".join(t.__name__ for t in types)
            errors.append(f"Key '{key}': expected {type_names}, got {type(value).__name__}")

    return errors
