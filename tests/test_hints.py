"""Tests for the escalating hint sequence."""

from __future__ import annotations

from mission_schach.hints import HintGenerator, general_hint
from mission_schach.models import HighlightTarget, Mission
from mission_schach.rules import RulesEngine


def _initialized(mission: Mission) -> HintGenerator:
    generator = HintGenerator()
    generator.initialize(mission, RulesEngine(mission.initial_position))
    return generator


class TestGeneralHint:

    def test_hint_by_type(self):
        assert "taktischen Motiven" in general_hint("tactical", in_check=False)
        assert "Endspiel" in general_hint("endgame", in_check=False)

    def test_unknown_type_uses_general(self):
        assert general_hint("mystery", in_check=False) == general_hint("general", in_check=False)

    def test_puzzle_in_check(self):
        assert "Schach" in general_hint("puzzle", in_check=True)
        assert general_hint("puzzle", in_check=False) != general_hint("puzzle", in_check=True)


class TestHintSequence:

    def test_three_levels_with_resolvable_solution(self):
        generator = _initialized(Mission(id="m", title="t", type="tutorial", solution=("Nf3",)))
        hints = generator.hints

        assert [h.level for h in hints] == [1, 2, 3]
        assert hints[0].highlights == ()
        assert "g1" in hints[1].text
        assert hints[1].highlights == (HighlightTarget("piece", "g1"),)
        assert "g1" in hints[2].text and "f3" in hints[2].text
        assert hints[2].highlights == (
            HighlightTarget("piece", "g1"),
            HighlightTarget("destination", "f3"),
        )

    def test_coordinate_solution(self):
        generator = _initialized(Mission(id="m", title="t", solution=("e2-e4",)))
        assert generator.hint_for_level(3).highlights[1] == HighlightTarget("destination", "e4")

    def test_no_solution_only_general_hint(self):
        generator = _initialized(Mission(id="m", title="t"))
        assert [h.level for h in generator.hints] == [1]

    def test_unresolvable_solution_only_general_hint(self):
        generator = _initialized(Mission(id="m", title="t", solution=("Qh5",)))
        assert [h.level for h in generator.hints] == [1]

    def test_level_falls_back_to_highest(self):
        generator = _initialized(Mission(id="m", title="t"))
        assert generator.hint_for_level(3).level == 1

    def test_no_hints_before_initialize(self):
        assert HintGenerator().hint_for_level(1) is None
