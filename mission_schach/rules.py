"""Rules engine adapter for Mission Schach.

Wraps a python-chess Board behind the small contract the session engine
consumes: load a position, apply a from/to move, query check/mate/draw
state and enumerate legal moves with their SAN.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import chess

logger = logging.getLogger(__name__)

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


@dataclass(frozen=True)
class LegalMove:
    """A legal move in the current position."""

    from_square: str
    to_square: str
    san: str
    promotion: str | None = None


@dataclass(frozen=True)
class MoveOutcome:
    """Result of applying a move through the rules engine."""

    accepted: bool
    san: str | None = None
    piece: str | None = None
    captured: str | None = None
    promotion: str | None = None
    position: str | None = None


def _parse_square(name: str) -> int | None:
    """Parse a square name like 'e4', returning None when invalid."""
    try:
        return chess.parse_square(name.strip().lower())
    except (ValueError, AttributeError):
        return None


class RulesEngine:
    """python-chess Board behind the mission rules contract."""

    def __init__(self, fen: str = chess.STARTING_FEN) -> None:
        """Initialize the engine at a position.

        Args:
            fen: FEN of the starting position.

        Raises:
            ValueError: If the FEN is invalid.
        """
        self._board = chess.Board(fen)

    @property
    def board(self) -> chess.Board:
        """A copy of the underlying board, for rendering."""
        return self._board.copy()

    @property
    def position(self) -> str:
        return self._board.fen()

    @property
    def turn(self) -> str:
        return "white" if self._board.turn == chess.WHITE else "black"

    def load_position(self, fen: str) -> None:
        """Replace the current position and clear the move stack.

        Args:
            fen: FEN of the position to load.

        Raises:
            ValueError: If the FEN is invalid.
        """
        self._board = chess.Board(fen)
        logger.debug("Loaded position %s", fen)

    def apply_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """Apply a from/to move if it is legal.

        Pawn moves to the last rank promote to a queen unless another
        piece is named.

        Args:
            from_square: Source square name (e.g. 'e2').
            to_square: Destination square name (e.g. 'e4').
            promotion: Promotion piece letter ('q', 'r', 'b', 'n'); ignored
                for moves that do not promote.

        Returns:
            MoveOutcome; accepted is False for illegal or malformed moves.
        """
        move = self._build_move(from_square, to_square, promotion)
        if move is None or not self._board.is_legal(move):
            return MoveOutcome(accepted=False)

        piece = self._board.piece_at(move.from_square)
        if self._board.is_en_passant(move):
            captured = "p"
        else:
            target = self._board.piece_at(move.to_square)
            captured = target.symbol().lower() if target is not None else None

        san = self._board.san(move)
        self._board.push(move)

        return MoveOutcome(
            accepted=True,
            san=san,
            piece=piece.symbol().lower(),
            captured=captured,
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            position=self._board.fen(),
        )

    def _build_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> chess.Move | None:
        """Build a chess.Move from square names, promoting to a queen by default."""
        from_sq = _parse_square(from_square)
        to_sq = _parse_square(to_square)
        if from_sq is None or to_sq is None or from_sq == to_sq:
            return None

        piece = self._board.piece_at(from_sq)
        piece_type = None
        if piece is not None and piece.piece_type == chess.PAWN:
            if chess.square_rank(to_sq) in (0, 7):
                piece_type = _PROMOTION_PIECES.get((promotion or "q").lower())
                if piece_type is None:
                    return None
        return chess.Move(from_sq, to_sq, promotion=piece_type)

    def is_in_check(self) -> bool:
        return self._board.is_check()

    def is_checkmate(self) -> bool:
        return self._board.is_checkmate()

    def is_stalemate(self) -> bool:
        return self._board.is_stalemate()

    def is_draw(self) -> bool:
        """Any drawn state: stalemate, dead position, 50 moves or repetition."""
        return (
            self._board.is_stalemate()
            or self._board.is_insufficient_material()
            or self._board.is_fifty_moves()
            or self._board.is_repetition(3)
        )

    def legal_moves(self, from_square: str | None = None) -> list[LegalMove]:
        """List legal moves, optionally filtered by source square.

        Args:
            from_square: Optional square name to filter moves from.

        Returns:
            List of LegalMove. Empty if from_square is not a valid square.
        """
        source = None
        if from_square is not None:
            source = _parse_square(from_square)
            if source is None:
                return []

        moves: list[LegalMove] = []
        for move in self._board.legal_moves:
            if source is not None and move.from_square != source:
                continue
            moves.append(LegalMove(
                from_square=chess.square_name(move.from_square),
                to_square=chess.square_name(move.to_square),
                san=self._board.san(move),
                promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
            ))
        return moves

    def piece_at(self, square: str) -> str | None:
        """Return the piece symbol on a square ('P' white, 'p' black) or None."""
        sq = _parse_square(square)
        if sq is None:
            return None
        piece = self._board.piece_at(sq)
        return piece.symbol() if piece is not None else None
