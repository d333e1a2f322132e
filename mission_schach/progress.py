"""Mission progress persistence for Mission Schach.

Stores one completion record per mission plus learner settings in a
single JSON file:

    {"progress": {mission_id: {status, score, stars, elapsed_seconds,
                               last_played, version}},
     "settings": {key: value}}

CLI interface outputs JSON to stdout for MCP server integration.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path

from mission_schach.errors import PersistenceFailure

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_RECORD_VERSION = 1


def default_data_dir() -> Path:
    """Data directory from MISSION_SCHACH_DATA_DIR or <root>/data."""
    env = os.environ.get("MISSION_SCHACH_DATA_DIR")
    return Path(env) if env else _PROJECT_ROOT / "data"


def _empty() -> dict:
    return {"progress": {}, "settings": {}}


class ProgressStore:
    """Completion records and settings backed by a JSON file."""

    def __init__(self, progress_path: str | Path | None = None) -> None:
        """Load progress from disk.

        If the file is corrupted, backs it up as .bak and starts fresh.

        Args:
            progress_path: Path of the JSON file. Defaults to
                <data dir>/progress.json.
        """
        self._path = (
            Path(progress_path) if progress_path is not None
            else default_data_dir() / "progress.json"
        )
        self._data: dict = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict:
        """Load data from disk, handling corruption gracefully."""
        if not self._path.exists():
            return _empty()

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Progress file must contain a JSON object")
            progress = data.get("progress", {})
            settings = data.get("settings", {})
            if not isinstance(progress, dict) or not isinstance(settings, dict):
                raise ValueError("Progress file has malformed sections")
            return {"progress": progress, "settings": settings}
        except (json.JSONDecodeError, ValueError) as exc:
            backup_path = self._path.with_suffix(".bak")
            logger.warning("Corrupted progress file %s (%s), backed up to %s", self._path, exc, backup_path)
            shutil.copy2(self._path, backup_path)
            return _empty()

    def _save(self) -> None:
        """Save data with atomic write.

        Raises:
            PersistenceFailure: If the file cannot be written.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceFailure(f"Could not write {self._path}: {exc}") from exc

    # -- mission progress --------------------------------------------------

    def record_completion(self, mission_id: str, record: dict) -> dict:
        """Store the completion record of a mission, replacing any earlier one.

        Args:
            mission_id: Id of the completed mission.
            record: Dict with status, score, stars, elapsed_seconds.

        Returns:
            The stored record, stamped with last_played and version.

        Raises:
            PersistenceFailure: If the record cannot be saved.
        """
        stored = {
            **record,
            "last_played": datetime.now(timezone.utc).isoformat(),
            "version": _RECORD_VERSION,
        }
        self._data["progress"][mission_id] = stored
        self._save()
        logger.info("Recorded completion of %s: %s", mission_id, record)
        return stored

    def load_progress(self, mission_id: str) -> dict | None:
        return self._data["progress"].get(mission_id)

    def load_all_progress(self) -> dict[str, dict]:
        return dict(self._data["progress"])

    def load_aggregate_stats(self) -> dict:
        """Summary over all recorded missions.

        Returns:
            Dict with total_missions, completed_missions, total_score,
            total_stars and completion_rate (percent).
        """
        records = [r for r in self._data["progress"].values() if isinstance(r, dict)]
        total = len(records)
        completed = sum(1 for r in records if r.get("status") == "completed")
        return {
            "total_missions": total,
            "completed_missions": completed,
            "total_score": sum(r.get("score") or 0 for r in records),
            "total_stars": sum(r.get("stars") or 0 for r in records),
            "completion_rate": (completed / total) * 100 if total > 0 else 0,
        }

    # -- settings ----------------------------------------------------------

    def save_setting(self, key: str, value) -> None:
        self._data["settings"][key] = value
        self._save()

    def load_setting(self, key: str, default=None):
        return self._data["settings"].get(key, default)

    # -- backup ------------------------------------------------------------

    def export_data(self) -> dict:
        """Full copy of progress and settings for backup."""
        return {
            "progress": self.load_all_progress(),
            "settings": dict(self._data["settings"]),
            "export_date": datetime.now(timezone.utc).isoformat(),
            "version": _RECORD_VERSION,
        }

    def import_data(self, data: dict) -> int:
        """Merge exported progress and settings into the store.

        Args:
            data: Dict as produced by export_data.

        Returns:
            Number of mission records imported.

        Raises:
            ValueError: If data is not an export dict.
        """
        if not isinstance(data, dict):
            raise ValueError("Import data must be a JSON object")
        progress = data.get("progress") or {}
        settings = data.get("settings") or {}
        if not isinstance(progress, dict) or not isinstance(settings, dict):
            raise ValueError("Import data has malformed sections")

        self._data["progress"].update(progress)
        self._data["settings"].update(settings)
        self._save()
        return len(progress)

    def clear_all_data(self) -> None:
        self._data = _empty()
        self._save()


# ---------------------------------------------------------------------------
# CLI interface
# ---------------------------------------------------------------------------


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def main() -> None:
    """CLI entry point for progress.py."""
    parser = argparse.ArgumentParser(
        description="Mission progress - stats, backup and reset"
    )
    parser.add_argument("--path", type=str, default=None, help="Progress JSON file")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("stats", help="Show aggregate statistics")

    show_parser = subparsers.add_parser("show", help="Show progress of one mission")
    show_parser.add_argument("mission_id", type=str, help="Mission id")

    subparsers.add_parser("export", help="Export progress and settings as JSON")

    import_parser = subparsers.add_parser("import", help="Import an exported JSON file")
    import_parser.add_argument("file", type=str, help="Exported JSON file")

    subparsers.add_parser("clear", help="Delete all progress and settings")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    store = ProgressStore(args.path)

    if args.command == "stats":
        _print(store.load_aggregate_stats())
    elif args.command == "show":
        _print(store.load_progress(args.mission_id))
    elif args.command == "export":
        _print(store.export_data())
    elif args.command == "import":
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
        _print({"imported": store.import_data(data)})
    elif args.command == "clear":
        store.clear_all_data()
        _print({"message": "All progress cleared"})


if __name__ == "__main__":
    main()
