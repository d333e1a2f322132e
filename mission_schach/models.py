"""Shared data models for Mission Schach.

Mission, MoveRecord, HintEntry and ScoreResult are the shared contract
between the session engine, the MCP server and the TUI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import chess

MISSION_TYPES = ("tutorial", "puzzle", "tactical", "endgame", "general")


class SessionPhase(str, Enum):
    """Lifecycle phase of a mission attempt."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Mission:
    """A pre-configured chess position with goals and a canonical solution."""

    id: str
    title: str
    instruction: str = ""
    type: str = "general"
    initial_position: str = chess.STARTING_FEN
    goals: tuple[str, ...] = ()
    solution: tuple[str, ...] = ()
    track_id: str = ""


@dataclass(frozen=True)
class MoveRecord:
    """One successfully applied move. Never mutated after it is appended."""

    from_square: str
    to_square: str
    san: str
    piece: str
    captured: str | None = None
    promotion: str | None = None


@dataclass(frozen=True)
class HighlightTarget:
    """A square to highlight; kind is 'piece' or 'destination'."""

    kind: str
    square: str


@dataclass(frozen=True)
class HintEntry:
    """A single hint of a mission's escalating hint sequence."""

    level: int
    text: str
    highlights: tuple[HighlightTarget, ...] = ()


@dataclass(frozen=True)
class ScoreResult:
    """Score breakdown computed when a mission is completed."""

    base_score: int
    hint_penalty: int
    solution_penalty: int
    over_move_penalty: int
    final_score: int
    star_rating: int


@dataclass
class SessionState:
    """Mutable state of one mission attempt, owned by MissionSession."""

    mission: Mission
    position: str
    move_history: list[MoveRecord] = field(default_factory=list)
    selected_square: str | None = None
    hint_level: int = 0
    solution_revealed: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_goals: set[str] = field(default_factory=set)
    phase: SessionPhase = SessionPhase.IDLE
    game_over_reason: str | None = None
    score: ScoreResult | None = None
