"""Mission session controller for Mission Schach.

MissionSession owns the state of one mission attempt and ties the rules
engine, goal evaluator, hint generator, scoring and solution playback
together:

    idle --start--> active --(all goals met | checkmate)--> completed
    active --reset--> active (fresh state)
    active --exit--> aborted

Collaborators (mission provider, progress store, rules engine, event
emitter) are passed in; nothing is looked up globally.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable

from mission_schach.errors import (
    IllegalMove,
    MissionNotFound,
    PersistenceFailure,
    PlaybackInProgress,
    SessionNotActive,
)
from mission_schach.events import EventEmitter, Events
from mission_schach.goals import GoalEvaluator
from mission_schach.hints import MAX_HINT_LEVEL, HintGenerator
from mission_schach.models import (
    HintEntry,
    Mission,
    MoveRecord,
    ScoreResult,
    SessionPhase,
    SessionState,
)
from mission_schach.playback import PlaybackTimings, SolutionPlayback
from mission_schach.rules import RulesEngine
from mission_schach.scoring import score_session

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """Result of a square click: current selection, its targets, any move made."""

    selected: str | None = None
    targets: list[str] = field(default_factory=list)
    move: MoveRecord | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MissionSession:
    """State machine for a single learner working through missions."""

    def __init__(
        self,
        missions,
        progress,
        engine: RulesEngine | None = None,
        events: EventEmitter | None = None,
        timings: PlaybackTimings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Wire the session to its collaborators.

        Args:
            missions: Mission provider with load_mission(mission_id).
            progress: Persistence store with record_completion(mission_id, record).
            engine: Rules engine; a fresh RulesEngine if None.
            events: Event emitter for UI collaborators.
            timings: Delays used by solution playback.
            clock: Returns the current UTC time (injectable for tests).
        """
        self._missions = missions
        self._progress = progress
        self._engine = engine or RulesEngine()
        self.events = events or EventEmitter()
        self._clock = clock
        self._hints = HintGenerator()
        self._goals: GoalEvaluator | None = None
        self._state: SessionState | None = None
        self.playback = SolutionPlayback(self, timings)

    # -- accessors ---------------------------------------------------------

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def engine(self) -> RulesEngine:
        return self._engine

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase if self._state is not None else SessionPhase.IDLE

    @property
    def mission(self) -> Mission | None:
        return self._state.mission if self._state is not None else None

    @property
    def hints(self) -> list[HintEntry]:
        return self._hints.hints

    def elapsed_seconds(self) -> int:
        if self._state is None:
            return 0
        return int(round((self._clock() - self._state.started_at).total_seconds()))

    # -- lifecycle ---------------------------------------------------------

    def start(self, mission_id: str) -> SessionState:
        """Start a mission from its initial position.

        Args:
            mission_id: Id of the mission to load.

        Returns:
            The fresh SessionState.

        Raises:
            MissionNotFound: If the provider has no such mission. Any
                previous session is left untouched.
        """
        mission = self._missions.load_mission(mission_id)
        if mission is None:
            raise MissionNotFound(mission_id)

        self.playback.clear()
        state = self._begin(mission)
        logger.info("Started mission: %s", mission.title)
        self.events.emit(Events.MISSION_STARTED, {
            "mission_id": mission.id,
            "title": mission.title,
            "goals": list(mission.goals),
        })
        return state

    def reset(self) -> SessionState:
        """Discard the current attempt and restart the same mission.

        Raises:
            SessionNotActive: Unless the session is active or completed.
        """
        if self._state is None or self._state.phase not in (
            SessionPhase.ACTIVE, SessionPhase.COMPLETED,
        ):
            raise SessionNotActive("Nothing to reset")

        self.playback.clear()
        state = self._begin(self._state.mission)
        logger.info("Mission reset: %s", state.mission.id)
        self.events.emit(Events.MISSION_RESET, {"mission_id": state.mission.id})
        return state

    def exit(self) -> bool:
        """Abandon an active mission without recording progress.

        Returns:
            False if there was no active mission.
        """
        if self.phase is not SessionPhase.ACTIVE:
            return False
        self.playback.stop()
        self._state.phase = SessionPhase.ABORTED
        logger.info("Mission aborted: %s", self._state.mission.id)
        self.events.emit(Events.MISSION_ABORTED, {"mission_id": self._state.mission.id})
        return True

    def _begin(self, mission: Mission) -> SessionState:
        self._engine.load_position(mission.initial_position)
        self._state = SessionState(
            mission=mission,
            position=self._engine.position,
            started_at=self._clock(),
            phase=SessionPhase.ACTIVE,
        )
        self._goals = GoalEvaluator(mission.goals)
        self._hints.initialize(mission, self._engine)
        return self._state

    # -- moves -------------------------------------------------------------

    def attempt_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveRecord:
        """Try a learner move.

        Args:
            from_square: Source square (e.g. 'e2').
            to_square: Destination square (e.g. 'e4').
            promotion: Promotion piece letter; a queen if None.

        Returns:
            The MoveRecord appended to the history.

        Raises:
            SessionNotActive: If no mission is active.
            PlaybackInProgress: While the solution is being played back.
            IllegalMove: If the rules engine rejects the move; nothing changes.
        """
        self._require_active()
        if self.playback.is_playing:
            raise PlaybackInProgress("Wait for the solution playback to finish or stop it")
        return self._apply_move(from_square, to_square, promotion)

    def apply_playback_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveRecord:
        """Move path used by solution playback (no playback guard).

        Moves are still applied once the goals are met, so a replay
        always runs to the end of the solution.

        Raises:
            SessionNotActive: Unless the session is active or completed.
            IllegalMove: If the rules engine rejects the move.
        """
        if self.phase not in (SessionPhase.ACTIVE, SessionPhase.COMPLETED):
            raise SessionNotActive(f"No mission to play back (phase: {self.phase.value})")
        return self._apply_move(from_square, to_square, promotion)

    def select_square(self, square: str) -> Selection:
        """Click-to-move: select a piece, then click its destination.

        Args:
            square: The clicked square.

        Returns:
            Selection with the new selected square, its legal targets and
            the move made by this click, if any.

        Raises:
            SessionNotActive: If no mission is active.
            PlaybackInProgress: If a click would move during playback.
        """
        self._require_active()
        state = self._state
        selected = state.selected_square

        if selected is None:
            if self._engine.piece_at(square) is None:
                return Selection()
            return self._select(square)

        if selected == square:
            state.selected_square = None
            return Selection()

        try:
            record = self.attempt_move(selected, square)
        except IllegalMove:
            if self._engine.piece_at(square) is not None:
                return self._select(square)
            state.selected_square = None
            return Selection()
        return Selection(move=record)

    def _select(self, square: str) -> Selection:
        self._state.selected_square = square
        targets = sorted({m.to_square for m in self._engine.legal_moves(square)})
        logger.debug("Showing %d possible moves from %s", len(targets), square)
        return Selection(selected=square, targets=targets)

    def _apply_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveRecord:
        outcome = self._engine.apply_move(from_square, to_square, promotion)
        if not outcome.accepted:
            logger.info("Invalid move: %s-%s", from_square, to_square)
            raise IllegalMove(from_square, to_square)

        state = self._state
        record = MoveRecord(
            from_square=from_square,
            to_square=to_square,
            san=outcome.san,
            piece=outcome.piece,
            captured=outcome.captured,
            promotion=outcome.promotion,
        )
        state.move_history.append(record)
        state.position = outcome.position
        state.selected_square = None
        logger.info("Move made: %s Position: %s", record.san, state.position)
        self.events.emit(Events.MOVE_APPLIED, asdict(record))

        self._check_terminal()
        return record

    def _check_terminal(self) -> None:
        """Checkmate, then goals over the full history, then completion."""
        state = self._state
        checkmate = self._engine.is_checkmate()

        newly = self._goals.evaluate(state.move_history, self._engine, state.completed_goals)
        for goal in newly:
            logger.info("Goal completed: %s", goal)
            self.events.emit(Events.GOAL_COMPLETED, {"goal": goal})

        if checkmate:
            reason = "checkmate"
        elif self._engine.is_stalemate():
            reason = "stalemate"
        elif self._engine.is_draw():
            reason = "draw"
        else:
            reason = None

        if reason is not None:
            state.game_over_reason = reason
            logger.info("Game ended: %s", reason)
            self.events.emit(Events.GAME_ENDED, {"reason": reason})

        if checkmate or self._goals.all_completed(state.completed_goals):
            self.complete_session()

    def restore_position(self, fen: str) -> None:
        """Load a position and clear history and goals (playback reset)."""
        if self._state is None:
            raise SessionNotActive("No mission loaded")
        self._engine.load_position(fen)
        state = self._state
        state.position = self._engine.position
        state.move_history = []
        state.completed_goals = set()
        state.selected_square = None
        state.game_over_reason = None

    # -- help --------------------------------------------------------------

    def request_hint(self) -> HintEntry | None:
        """Escalate to the next hint level (capped at 3) and return its hint.

        Raises:
            SessionNotActive: If no mission is active.
        """
        self._require_active()
        state = self._state
        state.hint_level = min(state.hint_level + 1, MAX_HINT_LEVEL)

        hint = self._hints.hint_for_level(state.hint_level)
        if hint is not None:
            logger.info("Hint level %d: %s", hint.level, hint.text)
            self.events.emit(Events.HINT_SHOWN, asdict(hint))
        return hint

    def reveal_solution(self) -> tuple[str, ...]:
        """Reveal the mission's solution; costs points at completion.

        Raises:
            SessionNotActive: If no mission is active.
        """
        self._require_active()
        self.mark_solution_revealed()
        return self._state.mission.solution

    def mark_solution_revealed(self) -> None:
        if self._state is not None and not self._state.solution_revealed:
            self._state.solution_revealed = True
            logger.info("Solution shown for mission %s", self._state.mission.id)

    # -- completion --------------------------------------------------------

    def complete_session(self) -> ScoreResult:
        """Score the attempt, record it and mark the session completed.

        A failure to persist is logged; the in-memory result stands.

        Returns:
            The ScoreResult (the existing one if already completed).

        Raises:
            SessionNotActive: If no mission is active or completed.
        """
        state = self._state
        if state is not None and state.phase is SessionPhase.COMPLETED:
            return state.score
        self._require_active()

        score = score_session(state)
        state.score = score
        state.phase = SessionPhase.COMPLETED
        elapsed = self.elapsed_seconds()

        try:
            self._progress.record_completion(state.mission.id, {
                "status": "completed",
                "score": score.final_score,
                "stars": score.star_rating,
                "elapsed_seconds": elapsed,
            })
        except PersistenceFailure as exc:
            logger.warning("Could not save progress for %s: %s", state.mission.id, exc)

        logger.info(
            "Mission completed: %d points, %d stars",
            score.final_score, score.star_rating,
        )
        self.events.emit(Events.MISSION_COMPLETED, {
            "mission_id": state.mission.id,
            "elapsed_seconds": elapsed,
            **asdict(score),
        })
        return score

    # -- views -------------------------------------------------------------

    def snapshot(self) -> dict:
        """Plain-dict view of the session for tool responses and the TUI."""
        state = self._state
        if state is None:
            return {"phase": SessionPhase.IDLE.value}

        mission = state.mission
        history = state.move_history
        last = history[-1] if history else None
        return {
            "mission_id": mission.id,
            "title": mission.title,
            "instruction": mission.instruction,
            "mission_type": mission.type,
            "phase": state.phase.value,
            "fen": state.position,
            "turn": self._engine.turn,
            "move_list": [m.san for m in history],
            "last_move": f"{last.from_square}{last.to_square}" if last else None,
            "last_move_san": last.san if last else None,
            "goals": [
                {"text": g, "completed": g in state.completed_goals}
                for g in mission.goals
            ],
            "hint_level": state.hint_level,
            "solution_revealed": state.solution_revealed,
            "selected_square": state.selected_square,
            "is_check": self._engine.is_in_check(),
            "game_over_reason": state.game_over_reason,
            "legal_moves": [m.san for m in self._engine.legal_moves()],
            "elapsed_seconds": self.elapsed_seconds(),
            "score": asdict(state.score) if state.score is not None else None,
            "playback": {
                "is_playing": self.playback.is_playing,
                "step_index": self.playback.step_index,
                "total_steps": self.playback.total_steps,
                "highlights": [
                    {"kind": h.kind, "square": h.square}
                    for h in self.playback.highlights
                ],
            },
        }

    def _require_active(self) -> None:
        if self.phase is not SessionPhase.ACTIVE:
            raise SessionNotActive(f"No active mission (phase: {self.phase.value})")
