"""Mission provider for Mission Schach.

Loads tracks and missions from JSON files:

    missions/tracks.json          [{"id": ..., "title": ..., "file": ...}, ...]
    missions/<track file>.json    {"missions": [{id, title, instruction, type,
                                                 boardInitial, goals, solution}]}

Every record is validated and defaulted once here, so the session engine
only ever sees complete Mission values. Malformed records are logged and
skipped.

CLI interface outputs JSON to stdout:
    python -m mission_schach.missions list [--track TRACK]
    python -m mission_schach.missions show MISSION_ID
    python -m mission_schach.missions validate
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

import chess

from mission_schach.errors import MissionError, MissionFormatError
from mission_schach.goals import GoalEvaluator
from mission_schach.models import MISSION_TYPES, Mission
from mission_schach.notation import require_move_token
from mission_schach.rules import RulesEngine

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_TRACKS_FILE = "tracks.json"
_DEFAULT_TITLE = "Kein Titel"


def default_missions_dir() -> Path:
    """Missions directory from MISSION_SCHACH_MISSIONS_DIR or <root>/missions."""
    env = os.environ.get("MISSION_SCHACH_MISSIONS_DIR")
    return Path(env) if env else _PROJECT_ROOT / "missions"


def _string_tuple(value, field_name: str, mission_id: str) -> tuple[str, ...]:
    """Normalize a goals/solution field to a tuple of strings."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MissionFormatError(
            f"Mission {mission_id}: '{field_name}' must be a list of strings"
        )
    return tuple(v.strip() for v in value if v.strip())


def normalize_mission(raw: dict, track_id: str = "") -> Mission:
    """Validate a raw mission record and fill in defaults.

    Args:
        raw: Mission record as read from JSON.
        track_id: Id of the track the record belongs to.

    Returns:
        A complete Mission.

    Raises:
        MissionFormatError: If the record cannot be used.
    """
    if not isinstance(raw, dict):
        raise MissionFormatError(f"Mission record must be an object, got {type(raw).__name__}")

    mission_id = raw.get("id")
    if mission_id is None or str(mission_id).strip() == "":
        raise MissionFormatError("Mission record has no id")
    mission_id = str(mission_id)

    fen = raw.get("boardInitial") or chess.STARTING_FEN
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        raise MissionFormatError(f"Mission {mission_id}: invalid FEN '{fen}': {exc}") from exc
    if not board.is_valid():
        logger.warning("Mission %s: position is not a regular chess position: %s", mission_id, fen)

    mission_type = raw.get("type") or "general"
    if mission_type not in MISSION_TYPES:
        logger.warning("Mission %s: unknown type %r, using 'general'", mission_id, mission_type)
        mission_type = "general"

    return Mission(
        id=mission_id,
        title=raw.get("title") or _DEFAULT_TITLE,
        instruction=raw.get("instruction") or "",
        type=mission_type,
        initial_position=board.fen(),
        goals=_string_tuple(raw.get("goals"), "goals", mission_id),
        solution=_string_tuple(raw.get("solution"), "solution", mission_id),
        track_id=track_id,
    )


def validate_mission(mission: Mission) -> tuple[list[str], list[str]]:
    """Replay a mission's solution and check its goals.

    Args:
        mission: A normalized mission.

    Returns:
        Tuple of (errors, warnings). Errors are unplayable solutions,
        warnings are goals that cannot be detected automatically.
    """
    errors: list[str] = []
    warnings: list[str] = []
    prefix = f"{mission.track_id or '-'}/{mission.id}"

    engine = RulesEngine(mission.initial_position)
    for i, token in enumerate(mission.solution):
        try:
            resolved = require_move_token(token, engine)
        except MissionError as exc:
            errors.append(f"{prefix}: step {i}: {exc}")
            break
        if not engine.apply_move(*resolved).accepted:
            errors.append(
                f"{prefix}: step {i}: illegal move '{token}' (FEN: {engine.position})"
            )
            break

    evaluator = GoalEvaluator(mission.goals)
    for goal in mission.goals:
        if evaluator.describe(goal) is None:
            warnings.append(f"{prefix}: goal cannot be auto-detected: {goal!r}")

    return errors, warnings


class MissionLibrary:
    """Tracks and missions loaded from a missions directory."""

    def __init__(self, missions_dir: str | Path | None = None) -> None:
        """Load all tracks from disk.

        Args:
            missions_dir: Directory containing tracks.json. Defaults to
                MISSION_SCHACH_MISSIONS_DIR or <project>/missions.
        """
        self._dir = Path(missions_dir) if missions_dir is not None else default_missions_dir()
        self._tracks: list[dict] = []
        self._missions: dict[str, list[Mission]] = {}
        self.rejected: list[str] = []
        self._load()

    def _read_json(self, path: Path):
        """Read a JSON file, returning None if missing or corrupt."""
        if not path.exists():
            logger.warning("Mission file not found: %s", path)
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Error loading %s: %s", path, exc)
            return None

    def _load(self) -> None:
        tracks = self._read_json(self._dir / _TRACKS_FILE)
        if not isinstance(tracks, list):
            logger.warning("No tracks available in %s", self._dir)
            return

        seen: set[str] = set()
        for track in tracks:
            if not isinstance(track, dict) or "id" not in track or "file" not in track:
                self.rejected.append(f"{_TRACKS_FILE}: malformed track entry {track!r}")
                continue

            track_id = str(track["id"])
            data = self._read_json(self._dir / track["file"])
            records = data.get("missions") if isinstance(data, dict) else data
            if not isinstance(records, list):
                self.rejected.append(f"{track['file']}: no missions list")
                records = []

            missions: list[Mission] = []
            for index, raw in enumerate(records):
                try:
                    mission = normalize_mission(raw, track_id)
                except MissionFormatError as exc:
                    logger.warning("Skipping mission %s[%d]: %s", track["file"], index, exc)
                    self.rejected.append(f"{track['file']}[{index}]: {exc}")
                    continue
                if mission.id in seen:
                    logger.warning("Duplicate mission id %s in track %s", mission.id, track_id)
                    self.rejected.append(f"{track['file']}[{index}]: duplicate id {mission.id}")
                    continue
                seen.add(mission.id)
                missions.append(mission)

            self._tracks.append({
                "id": track_id,
                "title": track.get("title") or track_id,
                "file": track["file"],
            })
            self._missions[track_id] = missions

        logger.info(
            "Loaded %d missions in %d tracks from %s",
            len(seen), len(self._tracks), self._dir,
        )

    def list_tracks(self) -> list[dict]:
        """Tracks with their mission counts."""
        return [
            {**track, "mission_count": len(self._missions.get(track["id"], []))}
            for track in self._tracks
        ]

    def list_missions(self, track_id: str | None = None) -> list[Mission]:
        """Missions of one track, or of all tracks in track order."""
        if track_id is not None:
            return list(self._missions.get(track_id, []))
        return [m for track in self._tracks for m in self._missions.get(track["id"], [])]

    def load_mission(self, mission_id: str) -> Mission | None:
        for mission in self.list_missions():
            if mission.id == mission_id:
                return mission
        return None


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _mission_dict(mission: Mission) -> dict:
    data = asdict(mission)
    data["goals"] = list(mission.goals)
    data["solution"] = list(mission.solution)
    return data


def _cli_list(library: MissionLibrary, track_id: str | None) -> None:
    """Print tracks and their missions as JSON."""
    tracks = library.list_tracks()
    if track_id is not None:
        tracks = [t for t in tracks if t["id"] == track_id]
    output = [
        {
            **track,
            "missions": [
                {"id": m.id, "title": m.title, "type": m.type}
                for m in library.list_missions(track["id"])
            ],
        }
        for track in tracks
    ]
    print(json.dumps(output, indent=2, ensure_ascii=False))


def _cli_show(library: MissionLibrary, mission_id: str) -> int:
    mission = library.load_mission(mission_id)
    if mission is None:
        print(json.dumps({"error": f"Mission not found: {mission_id}"}))
        return 1
    print(json.dumps(_mission_dict(mission), indent=2, ensure_ascii=False))
    return 0


def _cli_validate(library: MissionLibrary) -> int:
    """Validate every mission; exit code 1 if any solution is unplayable."""
    errors = list(library.rejected)
    warnings: list[str] = []
    missions = library.list_missions()
    for mission in missions:
        mission_errors, mission_warnings = validate_mission(mission)
        errors.extend(mission_errors)
        warnings.extend(mission_warnings)

    print(json.dumps({
        "missions": len(missions),
        "errors": errors,
        "warnings": warnings,
    }, indent=2, ensure_ascii=False))
    return 1 if errors else 0


def main() -> None:
    """CLI entry point for missions.py."""
    parser = argparse.ArgumentParser(
        description="Mission library - list, show and validate missions"
    )
    parser.add_argument("--missions-dir", type=str, default=None, help="Missions directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    list_parser = subparsers.add_parser("list", help="List tracks and missions")
    list_parser.add_argument("--track", type=str, default=None, help="Only this track")

    show_parser = subparsers.add_parser("show", help="Show one mission")
    show_parser.add_argument("mission_id", type=str, help="Mission id")

    subparsers.add_parser("validate", help="Validate all missions")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    library = MissionLibrary(args.missions_dir)

    if args.command == "list":
        _cli_list(library, args.track)
    elif args.command == "show":
        sys.exit(_cli_show(library, args.mission_id))
    elif args.command == "validate":
        sys.exit(_cli_validate(library))


if __name__ == "__main__":
    main()
