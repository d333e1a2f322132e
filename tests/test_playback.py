"""Tests for step-by-step solution playback.

Playback is driven either tick by tick or through run() with a fake
sleep, so no test ever waits on real time.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from mission_schach.errors import PlaybackInProgress, SessionNotActive
from mission_schach.events import Events
from mission_schach.models import HighlightTarget, Mission, SessionPhase
from mission_schach.playback import PlaybackTimings, step_commentary
from mission_schach.session import MissionSession

_SCHOLARS = "strategy-03-scholars-mate"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _StaticMissions:

    def __init__(self, *missions: Mission) -> None:
        self._missions = {m.id: m for m in missions}

    def load_mission(self, mission_id):
        return self._missions.get(mission_id)


def _custom_session(mission: Mission, events, timings) -> MissionSession:
    session = MissionSession(_StaticMissions(mission), MagicMock(), events=events, timings=timings)
    session.start(mission.id)
    return session


def _ticks(playback, count: int) -> None:
    for _ in range(count):
        assert playback.tick() is not None


async def _no_sleep(delay):
    return None


# ---------------------------------------------------------------------------
# Full playback
# ---------------------------------------------------------------------------


class TestFullPlayback:

    def test_run_to_completion(self, session, events):
        session.start(_SCHOLARS)
        assert session.playback.play() is True

        asyncio.run(session.playback.run())

        history = session.state.move_history
        assert [m.san for m in history] == ["Qh5", "Nf6", "Qxf7#"]
        assert [(m.from_square, m.to_square) for m in history] == [
            ("d1", "h5"), ("g8", "f6"), ("h5", "f7"),
        ]
        assert events.names().count(Events.PLAYBACK_COMPLETED) == 1
        assert len(events.payloads(Events.PLAYBACK_STEP)) == 3
        assert not session.playback.is_playing

    def test_playback_completes_mission_with_penalty(self, session):
        session.start(_SCHOLARS)
        session.playback.play()
        asyncio.run(session.playback.run())

        assert session.phase is SessionPhase.COMPLETED
        assert session.state.game_over_reason == "checkmate"
        assert session.state.solution_revealed
        assert session.state.score.final_score == 50

    def test_step_events(self, session, events):
        session.start(_SCHOLARS)
        session.playback.play()
        asyncio.run(session.playback.run())

        steps = events.payloads(Events.PLAYBACK_STEP)
        assert [s["index"] for s in steps] == [1, 2, 3]
        assert steps[0]["commentary"] == "Schritt 1: Qh5"
        assert steps[1]["commentary"] == "Schritt 2: g8-f6"
        assert steps[2]["commentary"] == "Letzter Schritt: h5f7 - Lösung komplett!"
        assert steps[2]["san"] == "Qxf7#"

    def test_delays_follow_timings(self, library, progress_store, events):
        session = MissionSession(library, progress_store, events=events, timings=PlaybackTimings())
        session.start(_SCHOLARS)
        session.playback.play()
        delays = []

        async def _record(delay):
            delays.append(delay)

        asyncio.run(session.playback.run(sleep=_record))

        assert delays == [0.4, 0.4, 2.0] * 3


# ---------------------------------------------------------------------------
# Tick phases and highlights
# ---------------------------------------------------------------------------


class TestTickPhases:

    def test_highlight_then_execute(self, session, events):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()

        playback.tick()
        assert playback.highlights == (HighlightTarget("piece", "d1"),)
        assert session.state.move_history == []

        playback.tick()
        assert playback.highlights == (
            HighlightTarget("piece", "d1"),
            HighlightTarget("destination", "h5"),
        )
        assert session.state.move_history == []

        playback.tick()
        assert [m.san for m in session.state.move_history] == ["Qh5"]
        assert playback.step_index == 1
        assert len(events.payloads(Events.SQUARES_HIGHLIGHTED)) == 2

    def test_tick_when_not_playing(self, session):
        session.start(_SCHOLARS)
        assert session.playback.tick() is None


# ---------------------------------------------------------------------------
# Controls
# ---------------------------------------------------------------------------


class TestControls:

    def test_pause_mid_step_stops_moves(self, session, events):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        _ticks(playback, 4)

        playback.pause()

        assert playback.tick() is None
        asyncio.run(playback.run(sleep=_no_sleep))
        assert len(session.state.move_history) == 1
        assert Events.PLAYBACK_COMPLETED not in events.names()
        assert session.phase is SessionPhase.ACTIVE

    def test_resume_after_pause(self, session, events):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        _ticks(playback, 3)
        playback.pause()

        assert playback.resume() is True
        asyncio.run(playback.run(sleep=_no_sleep))

        assert len(session.state.move_history) == 3
        assert events.names().count(Events.PLAYBACK_COMPLETED) == 1

    def test_resume_without_playback(self, session):
        session.start(_SCHOLARS)
        assert session.playback.resume() is False

    def test_play_toggles_off(self, session, events):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        playback.tick()

        assert playback.play() is False
        assert not playback.is_playing
        assert playback.highlights == ()
        assert playback.step_index == 0
        assert Events.HIGHLIGHTS_CLEARED in events.names()

    def test_play_requires_active_session(self, session):
        with pytest.raises(SessionNotActive):
            session.playback.play()

    def test_play_without_solution(self, events, timings):
        mission = Mission(id="no-solution", title="Leer", goals=("Bewege eine Figur",))
        session = _custom_session(mission, events, timings)

        assert session.playback.play() is False
        assert not session.state.solution_revealed

    def test_manual_move_during_playback(self, session):
        session.start(_SCHOLARS)
        session.playback.play()

        with pytest.raises(PlaybackInProgress):
            session.attempt_move("d1", "h5")

    def test_reset_to_original_position(self, session):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        original = playback.original_position
        _ticks(playback, 3)
        assert session.engine.position != original

        assert playback.reset_to_original_position() is True

        assert session.engine.position == original
        assert session.state.move_history == []
        assert playback.highlights == ()

    def test_reset_before_playback(self, session):
        session.start(_SCHOLARS)
        assert session.playback.reset_to_original_position() is False

    def test_stale_run_exits(self, session):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()

        async def _restart(delay):
            playback.stop()
            playback.play()

        asyncio.run(playback.run(sleep=_restart))

        assert session.state.move_history == []
        assert playback.is_playing

    def test_new_mission_drops_paused_playback(self, session):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        _ticks(playback, 3)
        playback.pause()

        session.start("rules-04-knight")

        assert playback.step_index == 0
        assert playback.total_steps == 0
        assert playback.original_position is None
        assert playback.resume() is False
        assert playback.reset_to_original_position() is False
        assert session.engine.position == session.mission.initial_position

    def test_run_exits_when_mission_changes(self, session):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()

        async def _switch(delay):
            session.start("rules-04-knight")

        asyncio.run(playback.run(sleep=_switch))

        assert session.state.move_history == []
        assert not playback.is_playing

    def test_reset_drops_paused_playback(self, session):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        _ticks(playback, 3)
        playback.pause()

        session.reset()

        assert playback.resume() is False
        assert playback.original_position is None
        assert session.state.move_history == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:

    def test_unresolvable_token_fails(self, events, timings):
        mission = Mission(id="broken", title="Kaputt", goals=("Setze Schachmatt",),
                          solution=("e4", "Zz9"))
        session = _custom_session(mission, events, timings)
        session.playback.play()

        asyncio.run(session.playback.run())

        assert len(session.state.move_history) == 1
        failed = events.payloads(Events.PLAYBACK_FAILED)
        assert failed == [{"index": 1, "token": "Zz9", "reason": "unresolvable move token"}]
        assert not session.playback.is_playing
        assert Events.PLAYBACK_COMPLETED not in events.names()

    def test_illegal_coordinate_token_fails(self, events, timings):
        mission = Mission(id="illegal", title="Illegal", goals=("Setze Schachmatt",),
                          solution=("e2e5",))
        session = _custom_session(mission, events, timings)
        session.playback.play()

        asyncio.run(session.playback.run())

        assert session.state.move_history == []
        failed = events.payloads(Events.PLAYBACK_FAILED)
        assert len(failed) == 1
        assert failed[0]["token"] == "e2e5"

    def test_playback_stops_after_exit(self, session, events):
        session.start(_SCHOLARS)
        playback = session.playback
        playback.play()
        _ticks(playback, 2)
        playback.pause()
        session.exit()

        playback.resume()
        asyncio.run(playback.run(sleep=_no_sleep))

        assert session.state.move_history == []
        assert Events.PLAYBACK_COMPLETED not in events.names()


class TestGoalsMetEarly:

    def test_playback_runs_past_completion(self, events, timings):
        mission = Mission(id="early", title="Früh fertig", goals=("Bewege einen Bauern",),
                          solution=("e4", "e5", "Nf3"))
        session = _custom_session(mission, events, timings)
        session.playback.play()

        asyncio.run(session.playback.run())

        assert session.phase is SessionPhase.COMPLETED
        assert [m.san for m in session.state.move_history] == ["e4", "e5", "Nf3"]
        assert events.names().count(Events.PLAYBACK_COMPLETED) == 1
        assert Events.PLAYBACK_FAILED not in events.names()

    def test_score_fixed_at_completion(self, events, timings):
        mission = Mission(id="early", title="Früh fertig", goals=("Bewege einen Bauern",),
                          solution=("e4", "e5", "Nf3"))
        session = _custom_session(mission, events, timings)
        session.playback.play()

        asyncio.run(session.playback.run())

        assert events.names().count(Events.MISSION_COMPLETED) == 1
        assert session.state.score.final_score == 50

    def test_learner_moves_still_rejected_after_completion(self, events, timings):
        mission = Mission(id="early", title="Früh fertig", goals=("Bewege einen Bauern",),
                          solution=("e4", "e5", "Nf3"))
        session = _custom_session(mission, events, timings)
        session.playback.play()
        asyncio.run(session.playback.run())

        with pytest.raises(SessionNotActive):
            session.attempt_move("g8", "f6")


class TestPromotionPlayback:

    def test_underpromotion_token(self, events, timings):
        mission = Mission(id="promo", title="Umwandlung", goals=("Setze Schachmatt",),
                          initial_position="8/4P3/8/8/8/2k5/8/4K3 w - - 0 1",
                          solution=("e8=N",))
        session = _custom_session(mission, events, timings)
        session.playback.play()

        asyncio.run(session.playback.run())

        assert [m.san for m in session.state.move_history] == ["e8=N"]
        assert session.engine.piece_at("e8") == "N"


class TestCommentary:

    def test_first_middle_last(self):
        assert step_commentary("e4", 1, 3) == "Schritt 1: e4"
        assert step_commentary("e5", 2, 3) == "Schritt 2: e5"
        assert step_commentary("Nf3", 3, 3) == "Letzter Schritt: Nf3 - Lösung komplett!"

    def test_single_step_solution(self):
        assert step_commentary("e4", 1, 1) == "Schritt 1: e4"
