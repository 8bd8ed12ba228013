"""Rules-engine adapter over python-chess.

Positions are treated as values: every move application returns a new
board and leaves the input untouched.
"""

from __future__ import annotations

from datetime import datetime, timezone

import chess
import chess.pgn

from coach.errors import IllegalOperation
from coach.models import Color

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def new_position() -> chess.Board:
    return chess.Board()


def side_to_move(board: chess.Board) -> Color:
    return Color.WHITE if board.turn == chess.WHITE else Color.BLACK


def is_promotion(board: chess.Board, from_square: str, to_square: str) -> bool:
    """True if the piece on ``from_square`` is a pawn moving to its last rank."""
    try:
        origin = chess.parse_square(from_square)
        target = chess.parse_square(to_square)
    except ValueError:
        return False
    piece = board.piece_at(origin)
    if piece is None or piece.piece_type != chess.PAWN:
        return False
    last_rank = 7 if piece.color == chess.WHITE else 0
    return chess.square_rank(target) == last_rank


def apply_move(
    board: chess.Board,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> tuple[chess.Board, str]:
    """Validate and apply a move given as squares.

    Args:
        board: Current position (not modified).
        from_square: Origin square name, e.g. "e2".
        to_square: Destination square name, e.g. "e4".
        promotion: Optional promotion piece letter (q, r, b, n).

    Returns:
        Tuple of (new board, SAN of the move).

    Raises:
        IllegalOperation: If the squares are invalid or the move is illegal.
    """
    try:
        origin = chess.parse_square(from_square)
        target = chess.parse_square(to_square)
    except ValueError as exc:
        raise IllegalOperation(f"Invalid square: {exc}") from exc

    promo_piece = None
    if promotion:
        promo_piece = _PROMOTION_PIECES.get(promotion.lower())
        if promo_piece is None:
            raise IllegalOperation(f"Invalid promotion piece: {promotion}")

    move = chess.Move(origin, target, promotion=promo_piece)
    if move not in board.legal_moves:
        raise IllegalOperation(f"Illegal move: {move.uci()}")

    san = board.san(move)
    new_board = board.copy()
    new_board.push(move)
    return new_board, san


def apply_uci(board: chess.Board, uci: str) -> tuple[chess.Board, str]:
    """Apply a move in coordinate notation (``e2e4``, ``e7e8q``)."""
    if not uci or len(uci) < 4:
        raise IllegalOperation(f"Malformed move: {uci!r}")
    promotion = uci[4] if len(uci) > 4 else None
    return apply_move(board, uci[0:2], uci[2:4], promotion)


def is_checkmate(board: chess.Board) -> bool:
    return board.is_checkmate()


def is_stalemate(board: chess.Board) -> bool:
    return board.is_stalemate()


def is_draw(board: chess.Board) -> bool:
    """Any drawn termination other than stalemate also counts here."""
    return (
        board.is_stalemate()
        or board.is_insufficient_material()
        or board.is_seventyfive_moves()
        or board.is_fivefold_repetition()
        or board.can_claim_draw()
    )


def result_code(board: chess.Board) -> str | None:
    """Result string for a finished game, or None while it continues.

    Checkmate is won by the side not to move; all draw conditions
    (including claimable ones) score 1/2-1/2.
    """
    if board.is_checkmate():
        return "0-1" if board.turn == chess.WHITE else "1-0"
    if is_draw(board):
        return "1/2-1/2"
    return None


def full_move_text(board: chess.Board, headers: dict[str, str] | None = None) -> str:
    """Export the board's move stack as PGN text.

    Args:
        board: Board whose move stack holds the game.
        headers: Extra PGN headers (White, Black, Result, ...).

    Returns:
        PGN string.
    """
    game = chess.pgn.Game.from_board(board)
    game.headers["Event"] = "Play and Learn"
    game.headers["Date"] = datetime.now(timezone.utc).strftime("%Y.%m.%d")
    for key, value in (headers or {}).items():
        game.headers[key] = value
    return str(game)
