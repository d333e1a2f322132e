"""Score and star rating for completed missions.

Two star tables exist and are kept apart on purpose:

- ``session_star_rating``: 1-3 stars, stored in ScoreResult and in the
  persisted completion record.
- ``progress_star_rating``: 0-3 stars on a percentage of a maximum score,
  used when displaying progress.

They disagree at and below 40 points (1 vs 0 stars).
"""

from __future__ import annotations

from mission_schach.models import ScoreResult

BASE_SCORE = 100
MIN_SCORE = 10
HINT_PENALTY = 10
SOLUTION_PENALTY = 50
EXTRA_MOVE_PENALTY = 5

# (minimum score, stars), highest first
_SESSION_STAR_THRESHOLDS = [(80, 3), (60, 2)]
_PROGRESS_STAR_THRESHOLDS = [(80, 3), (60, 2), (40, 1)]


def session_star_rating(score: int) -> int:
    """Stars shown at mission completion (1-3)."""
    for threshold, stars in _SESSION_STAR_THRESHOLDS:
        if score >= threshold:
            return stars
    return 1


def progress_star_rating(score: int, max_score: int = BASE_SCORE) -> int:
    """Stars for the progress display (0-3), from a percentage of max_score."""
    percentage = (score / max_score) * 100 if max_score > 0 else 0
    for threshold, stars in _PROGRESS_STAR_THRESHOLDS:
        if percentage >= threshold:
            return stars
    return 0


def compute_score(
    hint_level: int,
    solution_revealed: bool,
    solution_length: int,
    moves_played: int,
) -> ScoreResult:
    """Compute the score of a completed mission attempt.

    Hints are penalized by the level reached, not by the number of
    requests, so the hint penalty is capped at 30.

    Args:
        hint_level: Highest hint level reached (0-3).
        solution_revealed: Whether the solution was revealed.
        solution_length: Number of moves in the mission's solution.
        moves_played: Number of moves in the session's history.

    Returns:
        ScoreResult with the penalty breakdown.
    """
    hint_penalty = HINT_PENALTY * hint_level
    solution_penalty = SOLUTION_PENALTY if solution_revealed else 0
    expected = solution_length or 1
    extra = max(0, moves_played - expected)
    over_move_penalty = EXTRA_MOVE_PENALTY * extra

    raw = BASE_SCORE - hint_penalty - solution_penalty - over_move_penalty
    final = max(MIN_SCORE, raw)

    return ScoreResult(
        base_score=BASE_SCORE,
        hint_penalty=hint_penalty,
        solution_penalty=solution_penalty,
        over_move_penalty=over_move_penalty,
        final_score=final,
        star_rating=session_star_rating(final),
    )


def score_session(state) -> ScoreResult:
    """Score a SessionState at completion time."""
    return compute_score(
        hint_level=state.hint_level,
        solution_revealed=state.solution_revealed,
        solution_length=len(state.mission.solution),
        moves_played=len(state.move_history),
    )
