"""Shared test fixtures for the mission engine.

Fixtures:
    missions_dir       - Copy of the bundled missions under tmp_path.
    library            - MissionLibrary over missions_dir.
    progress_store     - ProgressStore writing to tmp_path.
    events             - EventEmitter that records everything it emits.
    clock              - Controllable UTC clock for elapsed-time checks.
    timings            - Zero-delay playback timings.
    session            - MissionSession wired to all of the above.
    enable_validation  - Sets MISSION_SCHACH_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mission_schach.events import EventEmitter
from mission_schach.missions import MissionLibrary
from mission_schach.playback import PlaybackTimings
from mission_schach.progress import ProgressStore
from mission_schach.session import MissionSession

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MISSIONS_DIR = _PROJECT_ROOT / "missions"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingEmitter(EventEmitter):
    """EventEmitter that keeps a log of (event, payload) pairs."""

    def __init__(self) -> None:
        super().__init__()
        self.log: list[tuple[str, dict]] = []

    def emit(self, event, payload=None):
        self.log.append((event, dict(payload or {})))
        super().emit(event, payload)

    def names(self) -> list[str]:
        return [name for name, _ in self.log]

    def payloads(self, event: str) -> list[dict]:
        return [payload for name, payload in self.log if name == event]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Mission and progress fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def missions_dir(tmp_path):
    """Copy of the bundled missions that tests may modify."""
    target = tmp_path / "missions"
    shutil.copytree(_MISSIONS_DIR, target)
    return target


@pytest.fixture()
def library(missions_dir):
    return MissionLibrary(missions_dir)


@pytest.fixture()
def progress_store(tmp_path):
    return ProgressStore(tmp_path / "data" / "progress.json")


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def events():
    return RecordingEmitter()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def timings():
    return PlaybackTimings(highlight_delay=0, execute_delay=0, move_delay=0)


@pytest.fixture()
def session(library, progress_store, events, timings, clock):
    return MissionSession(
        library,
        progress_store,
        events=events,
        timings=timings,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set MISSION_SCHACH_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("MISSION_SCHACH_VALIDATE")
    os.environ["MISSION_SCHACH_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("MISSION_SCHACH_VALIDATE", None)
    else:
        os.environ["MISSION_SCHACH_VALIDATE"] = original
