"""MCP server for Mission Schach.

Exposes the mission session engine to an LLM tutor via FastMCP.
Sessions are stored in memory keyed by UUID. Session state is synced
to data/current_session.json after every change for TUI consumption.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import uuid
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from mission_schach.errors import IllegalMove, MissionError
from mission_schach.events import WILDCARD, EventEmitter, Events
from mission_schach.missions import MissionLibrary
from mission_schach.notation import resolve_move_token
from mission_schach.playback import PlaybackTimings
from mission_schach.progress import ProgressStore, default_data_dir
from mission_schach.scoring import progress_star_rating
from mission_schach.session import MissionSession

from response_schemas import minify_hint, minify_session_state  # noqa: E402

logger = logging.getLogger(__name__)

mcp = FastMCP("mission-schach")

# In-memory session store: session_id -> MissionSession
_sessions: dict[str, MissionSession] = {}

# Running playback loops: session_id -> asyncio.Task
_playback_tasks: dict[str, asyncio.Task] = {}

_DATA_DIR = default_data_dir()
_library = MissionLibrary()
_progress = ProgressStore(_DATA_DIR / "progress.json")
_timings = PlaybackTimings()

# Events after which the TUI file is refreshed outside of a tool call
_SYNC_EVENTS = {
    Events.SQUARES_HIGHLIGHTED,
    Events.HIGHLIGHTS_CLEARED,
    Events.PLAYBACK_STEP,
    Events.PLAYBACK_COMPLETED,
    Events.PLAYBACK_FAILED,
}


def configure(
    missions_dir: str | Path | None = None,
    data_dir: str | Path | None = None,
    timings: PlaybackTimings | None = None,
) -> None:
    """Point the server at other mission/data directories.

    Drops all in-memory sessions. Used by tests and embedders.
    """
    global _DATA_DIR, _library, _progress, _timings

    _DATA_DIR = Path(data_dir) if data_dir is not None else default_data_dir()
    _library = MissionLibrary(missions_dir)
    _progress = ProgressStore(_DATA_DIR / "progress.json")
    _timings = timings or PlaybackTimings()
    _sessions.clear()
    _playback_tasks.clear()


def _build_session_state(session_id: str, session: MissionSession) -> dict:
    """Session snapshot tagged with its session id."""
    return {"session_id": session_id, **session.snapshot()}


def _sync_session_json(state: dict) -> None:
    """Write session state to data/current_session.json atomically.

    Uses temp file + os.replace() for atomic write.

    Args:
        state: Session snapshot dict to persist.
    """
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    target = _DATA_DIR / "current_session.json"
    tmp = _DATA_DIR / "current_session.tmp"
    tmp.write_text(
        json.dumps(state, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    os.replace(tmp, target)


def _state_response(session_id: str, session: MissionSession) -> dict:
    """Sync the TUI file and return the minified state."""
    state = _build_session_state(session_id, session)
    _sync_session_json(state)
    return minify_session_state(state)


def _get_session(session_id: str) -> MissionSession | None:
    """Look up a session by ID.

    Args:
        session_id: UUID string.

    Returns:
        MissionSession or None if not found.
    """
    return _sessions.get(session_id)


def _not_found(session_id: str) -> dict:
    return {"error": f"Session not found: {session_id}"}


def _illegal_move(session: MissionSession, move: str) -> dict:
    legal = [m.san for m in session.engine.legal_moves()]
    return {"error": f"Illegal move: {move}. Legal moves: {legal}"}


def _new_session(session_id: str) -> MissionSession:
    events = EventEmitter()
    session = MissionSession(_library, _progress, events=events, timings=_timings)

    def _on_event(event: str, payload: dict) -> None:
        if event in _SYNC_EVENTS:
            _sync_session_json(_build_session_state(session_id, session))

    events.subscribe(WILDCARD, _on_event)
    return session


def _start_playback_task(session_id: str, session: MissionSession) -> None:
    _playback_tasks[session_id] = asyncio.create_task(session.playback.run())


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


@mcp.tool()
def list_missions(track_id: str | None = None) -> dict:
    """List mission tracks and their missions.

    Args:
        track_id: Only list this track. Default: all tracks.

    Returns:
        Dict with tracks, each with id, title and missions (id, title, type).
    """
    tracks = _library.list_tracks()
    if track_id is not None:
        tracks = [t for t in tracks if t["id"] == track_id]
        if not tracks:
            return {"error": f"Track not found: {track_id}"}

    return {
        "tracks": [
            {
                "id": track["id"],
                "title": track["title"],
                "missions": [
                    {"id": m.id, "title": m.title, "type": m.type}
                    for m in _library.list_missions(track["id"])
                ],
            }
            for track in tracks
        ]
    }


@mcp.tool()
def start_mission(mission_id: str) -> dict:
    """Start a mission in a new session.

    Args:
        mission_id: Id of the mission (see list_missions).

    Returns:
        Session state with session_id, position, goals and instruction.
    """
    session_id = str(uuid.uuid4())
    session = _new_session(session_id)
    try:
        session.start(mission_id)
    except MissionError as exc:
        return {"error": str(exc)}

    _sessions[session_id] = session
    return _state_response(session_id, session)


# ---------------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------------


@mcp.tool()
def make_move(session_id: str, move: str) -> dict:
    """Make a learner move.

    Args:
        session_id: UUID of the session.
        move: Coordinates ('e2e4', 'e2-e4', 'e7e8n') or SAN ('e4', 'Nf3', 'e8=N').

    Returns:
        Updated session state, with the goals completed so far.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    resolved = resolve_move_token(move, session.engine)
    if resolved is None:
        return _illegal_move(session, move)

    try:
        session.attempt_move(*resolved)
    except IllegalMove:
        return _illegal_move(session, move)
    except MissionError as exc:
        return {"error": str(exc)}

    return _state_response(session_id, session)


@mcp.tool()
def click_square(session_id: str, square: str) -> dict:
    """Click a square: select a piece, then click its destination.

    Args:
        session_id: UUID of the session.
        square: Square name, e.g. 'e2'.

    Returns:
        Dict with selected square, its legal targets, the move made by
        this click (SAN or None) and the session state.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        selection = session.select_square(square.strip().lower())
    except MissionError as exc:
        return {"error": str(exc)}

    return {
        "selected": selection.selected,
        "targets": selection.targets,
        "move": selection.move.san if selection.move is not None else None,
        "state": _state_response(session_id, session),
    }


# ---------------------------------------------------------------------------
# Help
# ---------------------------------------------------------------------------


@mcp.tool()
def request_hint(session_id: str) -> dict:
    """Show the next hint (levels 1-3). Each level costs 10 points.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with level, text and squares to look at.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        hint = session.request_hint()
    except MissionError as exc:
        return {"error": str(exc)}

    _sync_session_json(_build_session_state(session_id, session))
    if hint is None:
        return {"error": "No hints available for this mission"}
    return minify_hint(asdict(hint))


@mcp.tool()
def reveal_solution(session_id: str) -> dict:
    """Reveal the solution moves. Costs 50 points at completion.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the solution move tokens.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        solution = session.reveal_solution()
    except MissionError as exc:
        return {"error": str(exc)}

    _sync_session_json(_build_session_state(session_id, session))
    return {"solution": list(solution), "solution_revealed": True}


# ---------------------------------------------------------------------------
# Solution playback
# ---------------------------------------------------------------------------


@mcp.tool()
async def play_solution(session_id: str) -> dict:
    """Play the solution step by step on the board (toggles off if playing).

    Marks the solution as revealed. Progress shows up in
    data/current_session.json while the playback runs.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with playing flag and total_steps.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        started = session.playback.play()
    except MissionError as exc:
        return {"error": str(exc)}

    if started:
        _start_playback_task(session_id, session)
    _sync_session_json(_build_session_state(session_id, session))
    return {"playing": started, "total_steps": session.playback.total_steps}


@mcp.tool()
def pause_solution(session_id: str) -> dict:
    """Pause the solution playback after the current phase."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    session.playback.pause()
    return {"playing": False, "step_index": session.playback.step_index}


@mcp.tool()
async def resume_solution(session_id: str) -> dict:
    """Resume a paused solution playback."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    resumed = session.playback.resume()
    if resumed:
        _start_playback_task(session_id, session)
    return {"playing": resumed, "step_index": session.playback.step_index}


@mcp.tool()
def stop_solution(session_id: str) -> dict:
    """Stop the solution playback and clear its highlights."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    session.playback.stop()
    return _state_response(session_id, session)


@mcp.tool()
def reset_position(session_id: str) -> dict:
    """Restore the position the solution playback started from.

    Args:
        session_id: UUID of the session.

    Returns:
        Updated session state.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        if not session.playback.reset_to_original_position():
            return {"error": "Solution playback has not been started"}
    except MissionError as exc:
        return {"error": str(exc)}

    return _state_response(session_id, session)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@mcp.tool()
def reset_mission(session_id: str) -> dict:
    """Restart the current mission from scratch (hints and moves cleared)."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    try:
        session.reset()
    except MissionError as exc:
        return {"error": str(exc)}

    return _state_response(session_id, session)


@mcp.tool()
def exit_mission(session_id: str) -> dict:
    """Abandon the mission without recording progress and close the session."""
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    aborted = session.exit()
    state = _state_response(session_id, session)
    del _sessions[session_id]
    _playback_tasks.pop(session_id, None)
    return {"aborted": aborted, "state": state}


@mcp.tool()
def get_session(session_id: str) -> dict:
    """Get the current state of a session.

    Args:
        session_id: UUID of the session.

    Returns:
        Session state with position, goals, hint level and score.
    """
    session = _get_session(session_id)
    if session is None:
        return _not_found(session_id)

    return minify_session_state(_build_session_state(session_id, session))


@mcp.tool()
def get_progress() -> dict:
    """Get the learner's progress over all missions.

    Returns:
        Dict with aggregate stats and per-mission score and stars.
    """
    progress = _progress.load_all_progress()
    missions = []
    for mission in _library.list_missions():
        record = progress.get(mission.id)
        score = record.get("score") if record else None
        missions.append({
            "id": mission.id,
            "title": mission.title,
            "status": record.get("status") if record else "open",
            "score": score,
            "stars": progress_star_rating(score) if score is not None else 0,
        })

    return {
        "stats": _progress.load_aggregate_stats(),
        "missions": missions,
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run()
