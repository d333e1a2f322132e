"""Escalating hints for Mission Schach.

Hints are generated once when a mission starts: a general hint keyed by
mission type, then (if the first solution move resolves) the source
square, then source and destination with board highlights.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mission_schach.models import HighlightTarget, HintEntry
from mission_schach.notation import resolve_move_token

if TYPE_CHECKING:
    from mission_schach.models import Mission
    from mission_schach.rules import RulesEngine

logger = logging.getLogger(__name__)

MAX_HINT_LEVEL = 3

_GENERAL_HINTS = {
    "tutorial": "Klicke auf die Figur, die du bewegen möchtest, und dann auf das Zielfeld.",
    "puzzle": "Analysiere die Stellung sorgfältig. Welche Figur kann das Problem lösen?",
    "tactical": "Suche nach taktischen Motiven. Gibt es eine Gabel, Fesselung oder andere Taktik?",
    "endgame": "Im Endspiel ist jeder Zug wichtig. Denke langfristig.",
    "general": "Schaue dir alle Figuren an und überlege, welche am besten helfen kann.",
}

_PUZZLE_IN_CHECK_HINT = "Der König steht im Schach! Du musst eine Lösung finden."


def general_hint(mission_type: str, in_check: bool) -> str:
    """Level-1 hint text for a mission type.

    Args:
        mission_type: One of the mission types; unknown types use 'general'.
        in_check: Whether the side to move is in check.

    Returns:
        Hint text.
    """
    if mission_type == "puzzle" and in_check:
        return _PUZZLE_IN_CHECK_HINT
    return _GENERAL_HINTS.get(mission_type, _GENERAL_HINTS["general"])


class HintGenerator:
    """Builds and serves the hint sequence of one mission attempt."""

    def __init__(self) -> None:
        self._hints: list[HintEntry] = []

    @property
    def hints(self) -> list[HintEntry]:
        return list(self._hints)

    def initialize(self, mission: Mission, engine: RulesEngine) -> list[HintEntry]:
        """Generate the hints for a mission at its starting position.

        Args:
            mission: The mission being started.
            engine: Rules engine set to the mission's initial position.

        Returns:
            The generated hints, ordered by level.
        """
        hints = [
            HintEntry(
                level=1,
                text=general_hint(mission.type, engine.is_in_check()),
            )
        ]

        resolved = None
        if mission.solution:
            resolved = resolve_move_token(mission.solution[0], engine)
            if resolved is None:
                logger.warning(
                    "Mission %s: first solution move %r has no hint highlight",
                    mission.id, mission.solution[0],
                )

        if resolved is not None:
            source, target = resolved.from_square, resolved.to_square
            hints.append(HintEntry(
                level=2,
                text=f"Schaue dir die Figur auf {source} genau an. Was kann sie erreichen?",
                highlights=(HighlightTarget("piece", source),),
            ))
            hints.append(HintEntry(
                level=3,
                text=f"Versuche, die Figur von {source} nach {target} zu bewegen.",
                highlights=(
                    HighlightTarget("piece", source),
                    HighlightTarget("destination", target),
                ),
            ))

        self._hints = hints
        logger.info("Initialized %d hints for mission %s", len(hints), mission.id)
        return list(hints)

    def hint_for_level(self, level: int) -> HintEntry | None:
        """Return the hint for a level, or the highest available one.

        Args:
            level: Requested hint level (1..3).

        Returns:
            Matching HintEntry, the last hint if there is no exact match,
            or None if no hints were generated.
        """
        if not self._hints:
            return None
        for hint in self._hints:
            if hint.level == level:
                return hint
        return self._hints[-1]
