"""Step-by-step solution playback for Mission Schach.

Playback is a small state machine advanced by ``tick()``. Each tick
performs one phase of the current step and returns how long to wait
before the next tick:

    highlight source -> highlight destination -> execute move -> (next step)

``run()`` drives the ticks with ``asyncio.sleep``. Pausing and stopping
only flip flags; the loop notices them on its next tick, so a paused
playback never applies another move.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from mission_schach.errors import MissionError, SessionNotActive
from mission_schach.events import Events
from mission_schach.models import HighlightTarget, SessionPhase
from mission_schach.notation import ResolvedMove, resolve_move_token

if TYPE_CHECKING:
    from mission_schach.session import MissionSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackTimings:
    """Delays in seconds between the phases of a playback step."""

    highlight_delay: float = 0.4
    execute_delay: float = 0.4
    move_delay: float = 2.0


class _Step(Enum):
    HIGHLIGHT_SOURCE = "highlight_source"
    HIGHLIGHT_DESTINATION = "highlight_destination"
    EXECUTE = "execute"


def step_commentary(token: str, step: int, total: int) -> str:
    """Commentary shown after a playback step (1-based step)."""
    if step == 1:
        return f"Schritt {step}: {token}"
    if step == total:
        return f"Letzter Schritt: {token} - Lösung komplett!"
    return f"Schritt {step}: {token}"


class SolutionPlayback:
    """Replays a mission's solution through the session's move path."""

    def __init__(
        self,
        session: MissionSession,
        timings: PlaybackTimings | None = None,
    ) -> None:
        self._session = session
        self._timings = timings or PlaybackTimings()
        self._is_playing = False
        self._solution: tuple[str, ...] = ()
        self._step_index = 0
        self._original_position: str | None = None
        self._step = _Step.HIGHLIGHT_SOURCE
        self._pending: ResolvedMove | None = None
        self._highlights: tuple[HighlightTarget, ...] = ()
        self._generation = 0

    # -- state -------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def total_steps(self) -> int:
        return len(self._solution)

    @property
    def original_position(self) -> str | None:
        return self._original_position

    @property
    def highlights(self) -> tuple[HighlightTarget, ...]:
        return self._highlights

    @property
    def timings(self) -> PlaybackTimings:
        return self._timings

    # -- controls ----------------------------------------------------------

    def play(self) -> bool:
        """Start playback from the current position, or stop if playing.

        Starting playback marks the solution as revealed.

        Returns:
            True if playback started, False if it was toggled off or the
            mission has no solution.

        Raises:
            SessionNotActive: If the session is not active.
        """
        if self._is_playing:
            self.stop()
            return False

        state = self._session.state
        if state is None or state.phase is not SessionPhase.ACTIVE:
            raise SessionNotActive("Solution playback needs an active mission")

        if not state.mission.solution:
            logger.warning("Mission %s has no solution to play", state.mission.id)
            return False

        self._solution = state.mission.solution
        self._original_position = self._session.engine.position
        self._step_index = 0
        self._step = _Step.HIGHLIGHT_SOURCE
        self._pending = None
        self._generation += 1
        self._is_playing = True
        self._session.mark_solution_revealed()

        logger.info("Starting solution playback: %s", list(self._solution))
        return True

    def pause(self) -> None:
        """Halt at the next tick without losing the step position."""
        self._is_playing = False
        logger.info("Solution playback paused at step %d", self._step_index)

    def resume(self) -> bool:
        """Continue a paused playback with the current step.

        Returns:
            False if there is nothing to resume.
        """
        if self._is_playing or not self._solution:
            return False
        if self._step_index >= len(self._solution):
            return False
        self._step = _Step.HIGHLIGHT_SOURCE
        self._pending = None
        self._generation += 1
        self._is_playing = True
        logger.info("Solution playback resumed at step %d", self._step_index)
        return True

    def stop(self) -> None:
        """Halt playback, rewind to the first step and clear highlights."""
        self._is_playing = False
        self._step_index = 0
        self._step = _Step.HIGHLIGHT_SOURCE
        self._pending = None
        self._clear_highlights()
        logger.info("Solution playback stopped")

    def clear(self) -> None:
        """Stop and forget the solution and start position of the last run."""
        self.stop()
        self._solution = ()
        self._original_position = None
        self._generation += 1

    def reset_to_original_position(self) -> bool:
        """Restore the position playback started from.

        Clears the move history and highlights; does not stop playback.

        Returns:
            False if playback never started.
        """
        if self._original_position is None:
            return False
        self._session.restore_position(self._original_position)
        self._clear_highlights()
        logger.info("Position reset to original")
        return True

    def complete_playback(self) -> None:
        self._is_playing = False
        self._step = _Step.HIGHLIGHT_SOURCE
        logger.info("Solution playback completed")
        self._session.events.emit(Events.PLAYBACK_COMPLETED, {
            "total": len(self._solution),
        })

    # -- scheduler ---------------------------------------------------------

    def tick(self) -> float | None:
        """Run the next phase of the current step.

        Returns:
            Seconds to wait before the next tick, or None once playback
            has halted (paused, stopped, failed or completed).
        """
        if not self._is_playing:
            return None

        if self._step_index >= len(self._solution):
            self.complete_playback()
            return None

        token = self._solution[self._step_index]

        if self._step is _Step.HIGHLIGHT_SOURCE:
            resolved = resolve_move_token(token, self._session.engine)
            if resolved is None:
                self._fail(token, "unresolvable move token")
                return None
            self._pending = resolved
            self._set_highlights((HighlightTarget("piece", resolved.from_square),))
            self._step = _Step.HIGHLIGHT_DESTINATION
            return self._timings.highlight_delay

        if self._step is _Step.HIGHLIGHT_DESTINATION:
            source, target, _ = self._pending
            self._set_highlights((
                HighlightTarget("piece", source),
                HighlightTarget("destination", target),
            ))
            self._step = _Step.EXECUTE
            return self._timings.execute_delay

        source, target, promotion = self._pending
        try:
            record = self._session.apply_playback_move(source, target, promotion)
        except MissionError as exc:
            self._fail(token, str(exc))
            return None

        self._step_index += 1
        self._step = _Step.HIGHLIGHT_SOURCE
        self._pending = None
        total = len(self._solution)
        logger.info("Executed: %s -> %s%s", token, source, target)
        self._session.events.emit(Events.PLAYBACK_STEP, {
            "index": self._step_index,
            "total": total,
            "token": token,
            "san": record.san,
            "commentary": step_commentary(token, self._step_index, total),
        })
        return self._timings.move_delay

    async def run(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Drive ticks until playback halts.

        A run started before a later play()/resume() exits quietly so
        only one loop ever drives the playback.
        """
        generation = self._generation
        delay = self.tick()
        while delay is not None:
            await sleep(delay)
            if generation != self._generation:
                return
            delay = self.tick()

    # -- helpers -----------------------------------------------------------

    def _fail(self, token: str, reason: str) -> None:
        logger.warning("Solution playback failed at %r: %s", token, reason)
        index = self._step_index
        self.stop()
        self._session.events.emit(Events.PLAYBACK_FAILED, {
            "index": index,
            "token": token,
            "reason": reason,
        })

    def _set_highlights(self, highlights: tuple[HighlightTarget, ...]) -> None:
        self._highlights = highlights
        self._session.events.emit(Events.SQUARES_HIGHLIGHTED, {
            "highlights": [{"kind": h.kind, "square": h.square} for h in highlights],
        })

    def _clear_highlights(self) -> None:
        if self._highlights:
            self._highlights = ()
            self._session.events.emit(Events.HIGHLIGHTS_CLEARED, {})
