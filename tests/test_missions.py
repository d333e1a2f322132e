"""Tests for mission loading, normalization and validation.

Includes a check that every bundled mission is playable: its solution
replays legally and its goals map to a detection rule.
"""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import chess
import pytest

from mission_schach.errors import MissionFormatError
from mission_schach.missions import MissionLibrary, normalize_mission, validate_mission
from mission_schach.models import Mission

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MISSIONS_DIR = _PROJECT_ROOT / "missions"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_track(directory, records, file_name="extra_track.json") -> None:
    """Add a track with the given records to a missions directory."""
    tracks_path = directory / "tracks.json"
    tracks = json.loads(tracks_path.read_text(encoding="utf-8"))
    tracks.append({"id": "extra", "title": "Extra", "file": file_name})
    tracks_path.write_text(json.dumps(tracks), encoding="utf-8")
    (directory / file_name).write_text(json.dumps({"missions": records}), encoding="utf-8")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalizeMission:

    def test_defaults(self):
        mission = normalize_mission({"id": "m1"}, "track")

        assert mission.title == "Kein Titel"
        assert mission.instruction == ""
        assert mission.type == "general"
        assert mission.initial_position == chess.STARTING_FEN
        assert mission.goals == ()
        assert mission.solution == ()
        assert mission.track_id == "track"

    def test_full_record(self):
        mission = normalize_mission({
            "id": "m2",
            "title": "Titel",
            "instruction": "Tu was",
            "type": "puzzle",
            "boardInitial": "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1",
            "goals": ["Setze Schachmatt"],
            "solution": ["Ra8#"],
        })

        assert mission.type == "puzzle"
        assert mission.goals == ("Setze Schachmatt",)
        assert mission.solution == ("Ra8#",)

    def test_single_string_fields_become_tuples(self):
        mission = normalize_mission({"id": "m3", "goals": "Gib Schach", "solution": "Qe2+"})
        assert mission.goals == ("Gib Schach",)
        assert mission.solution == ("Qe2+",)

    def test_unknown_type_becomes_general(self):
        assert normalize_mission({"id": "m4", "type": "blitz"}).type == "general"

    def test_numeric_id_is_stringified(self):
        assert normalize_mission({"id": 7}).id == "7"

    @pytest.mark.parametrize("raw", [
        {},
        {"id": ""},
        {"id": "bad-fen", "boardInitial": "not a fen"},
        {"id": "bad-goals", "goals": [1, 2]},
        ["not", "a", "dict"],
    ])
    def test_rejected_records(self, raw):
        with pytest.raises(MissionFormatError):
            normalize_mission(raw)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateMission:

    def test_playable_mission(self):
        mission = Mission(id="ok", title="ok", goals=("Bewege einen Bauern",), solution=("e4", "e5"))
        assert validate_mission(mission) == ([], [])

    def test_unresolvable_solution(self):
        mission = Mission(id="bad", title="bad", solution=("e4", "e5", "Zz9"))
        errors, _ = validate_mission(mission)
        assert len(errors) == 1
        assert "step 2" in errors[0]

    def test_illegal_coordinate_solution(self):
        mission = Mission(id="bad", title="bad", solution=("e2e5",))
        errors, _ = validate_mission(mission)
        assert len(errors) == 1
        assert "illegal move" in errors[0]

    def test_undetectable_goal_is_a_warning(self):
        mission = Mission(id="warn", title="warn", goals=("Gewinne die Partie",), solution=("e4",))
        errors, warnings = validate_mission(mission)
        assert errors == []
        assert len(warnings) == 1


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------


class TestMissionLibrary:

    def test_tracks(self, library):
        tracks = library.list_tracks()
        assert [t["id"] for t in tracks] == ["rules", "strategy"]
        assert all(t["mission_count"] > 0 for t in tracks)

    def test_missions_in_track_order(self, library):
        ids = [m.id for m in library.list_missions()]
        assert ids[0] == "rules-01-board"
        assert ids.index("rules-05-capture") < ids.index("strategy-01-check")

    def test_missions_of_one_track(self, library):
        missions = library.list_missions("strategy")
        assert all(m.track_id == "strategy" for m in missions)
        assert library.list_missions("unknown") == []

    def test_load_mission(self, library):
        mission = library.load_mission("rules-04-knight")
        assert mission.solution == ("Nf3",)
        assert library.load_mission("missing") is None

    def test_malformed_records_are_skipped(self, missions_dir):
        _write_track(missions_dir, [
            {"id": "good", "goals": ["Bewege eine Figur"], "solution": ["Nf3"]},
            {"title": "no id"},
            {"id": "rules-01-board"},
        ])
        library = MissionLibrary(missions_dir)

        assert [m.id for m in library.list_missions("extra")] == ["good"]
        assert len(library.rejected) == 2

    def test_plain_list_track_file(self, missions_dir):
        (missions_dir / "extra_track.json").write_text(
            json.dumps([{"id": "listed"}]), encoding="utf-8",
        )
        tracks = json.loads((missions_dir / "tracks.json").read_text(encoding="utf-8"))
        tracks.append({"id": "extra", "file": "extra_track.json"})
        (missions_dir / "tracks.json").write_text(json.dumps(tracks), encoding="utf-8")

        library = MissionLibrary(missions_dir)
        assert library.load_mission("listed") is not None

    def test_missing_directory(self, tmp_path):
        library = MissionLibrary(tmp_path / "nowhere")
        assert library.list_tracks() == []
        assert library.list_missions() == []

    def test_corrupt_track_file(self, missions_dir):
        (missions_dir / "rules_track.json").write_text("{broken", encoding="utf-8")
        library = MissionLibrary(missions_dir)

        assert library.list_missions("rules") == []
        assert library.list_missions("strategy") != []
        assert any("rules_track.json" in r for r in library.rejected)

    def test_env_var_selects_directory(self, missions_dir, monkeypatch):
        monkeypatch.setenv("MISSION_SCHACH_MISSIONS_DIR", str(missions_dir))
        _write_track(missions_dir, [{"id": "from-env"}])
        assert MissionLibrary().load_mission("from-env") is not None


class TestBundledMissions:

    def test_bundled_missions_are_playable(self):
        library = MissionLibrary(_MISSIONS_DIR)
        assert library.rejected == []

        for mission in library.list_missions():
            errors, warnings = validate_mission(mission)
            assert errors == [], errors
            assert warnings == [], warnings

    def test_validate_cli(self):
        result = subprocess.run(
            [sys.executable, "-m", "mission_schach.missions", "validate"],
            capture_output=True, text=True, cwd=str(_PROJECT_ROOT),
        )
        assert result.returncode == 0, result.stderr
        report = json.loads(result.stdout)
        assert report["missions"] == 9
        assert report["errors"] == []
