"""Goal evaluation for Mission Schach.

Mission goals are free-text German sentences ("Setze den König matt",
"Bewege einen Bauern"). Each goal is mapped to a predicate over the move
history and the current position by the first matching rule of an
ordered keyword table. Mission content is authored against this exact
table, so rule order and keywords must not change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

if TYPE_CHECKING:
    from mission_schach.models import MoveRecord
    from mission_schach.rules import RulesEngine

logger = logging.getLogger(__name__)

Predicate = Callable[[Sequence["MoveRecord"], "RulesEngine"], bool]


@dataclass(frozen=True)
class GoalRule:
    """One row of the goal table.

    A rule matches a goal when every keyword of at least one keyword
    group occurs in the lowercased goal text.
    """

    name: str
    keyword_groups: tuple[tuple[str, ...], ...]
    predicate: Predicate

    def matches(self, goal_text: str) -> bool:
        text = goal_text.lower()
        return any(
            all(keyword in text for keyword in group)
            for group in self.keyword_groups
        )


def _is_checkmate(history, engine) -> bool:
    return engine.is_checkmate()


def _is_check(history, engine) -> bool:
    return engine.is_in_check()


def _played_e4(history, engine) -> bool:
    return any(
        (m.from_square == "e2" and m.to_square == "e4") or m.san == "e4"
        for m in history
    )


def _moved_pawn(history, engine) -> bool:
    return any(m.piece == "p" for m in history)


def _any_move(history, engine) -> bool:
    return len(history) > 0


def _always(history, engine) -> bool:
    # No click tracking; square-clicking goals complete immediately.
    return True


def _captured(history, engine) -> bool:
    return any(m.captured for m in history)


GOAL_RULES: tuple[GoalRule, ...] = (
    GoalRule("checkmate", (("matt",),), _is_checkmate),
    GoalRule("check", (("schach",),), _is_check),
    GoalRule("pawn_e4", (("e2-e4",), ("bauern", "e4")), _played_e4),
    GoalRule("pawn_move", (("bewege", "bauern"),), _moved_pawn),
    GoalRule("piece_move", (("figur", "bewege"),), _any_move),
    GoalRule("click_square", (("klicke", "feld"),), _always),
    GoalRule("valid_move", (("gültigen zug",),), _any_move),
    GoalRule("capture", (("schlage",), ("capture",)), _captured),
)


def match_rule(goal_text: str) -> GoalRule | None:
    """Return the first rule matching a goal, or None if undetectable."""
    for rule in GOAL_RULES:
        if rule.matches(goal_text):
            return rule
    return None


class GoalEvaluator:
    """Evaluates a mission's goals against live game state.

    Rules are resolved once per goal when the evaluator is built; every
    evaluation recomputes all predicates over the full history.
    """

    def __init__(self, goals: Iterable[str]) -> None:
        self._goals: tuple[str, ...] = tuple(goals)
        self._rules: dict[str, GoalRule | None] = {}
        for goal in self._goals:
            rule = match_rule(goal)
            if rule is None:
                logger.info("Goal cannot be auto-detected: %r", goal)
            self._rules[goal] = rule

    @property
    def goals(self) -> tuple[str, ...]:
        return self._goals

    def describe(self, goal: str) -> str | None:
        """Name of the rule a goal maps to, or None if undetectable."""
        rule = self._rules.get(goal, match_rule(goal))
        return rule.name if rule is not None else None

    def satisfied(
        self,
        history: Sequence[MoveRecord],
        engine: RulesEngine,
    ) -> set[str]:
        """Return every goal whose predicate currently holds."""
        met: set[str] = set()
        for goal in self._goals:
            rule = self._rules[goal]
            if rule is not None and rule.predicate(history, engine):
                met.add(goal)
        return met

    def evaluate(
        self,
        history: Sequence[MoveRecord],
        engine: RulesEngine,
        completed: set[str],
    ) -> list[str]:
        """Add newly satisfied goals to ``completed`` and return them.

        Goals already in ``completed`` stay there even if their predicate
        no longer holds (e.g. a check that was answered).

        Args:
            history: Full move history of the session.
            engine: Rules engine at the current position.
            completed: The session's completed-goal set, updated in place.

        Returns:
            Newly completed goals, in mission order.
        """
        met = self.satisfied(history, engine)
        newly = [g for g in self._goals if g in met and g not in completed]
        completed.update(newly)
        return newly

    def all_completed(self, completed: set[str]) -> bool:
        """True when the mission has goals and every one is completed."""
        return bool(self._goals) and all(g in completed for g in self._goals)
