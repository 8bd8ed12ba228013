"""Board overlay for the reviewed move: square highlights and arrows.

Square names and move strings use coordinate notation (``e2e4``,
``e7e8q``). Malformed moves simply contribute nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import chess

from coach.annotations import annotate
from coach.models import Classification

GOOD_TINT = "rgba(76, 175, 80, 0.4)"
SUGGESTION_TINT = "rgba(255, 255, 0, 0.4)"
SUGGESTION_ARROW = "#ffff00"


@dataclass(frozen=True)
class Arrow:
    start: str
    end: str
    color: str


@dataclass
class Overlay:
    squares: dict[str, str] = field(default_factory=dict)
    arrows: list[Arrow] = field(default_factory=list)


def _squares(move: str | None) -> tuple[str, str] | None:
    """Split a coordinate move into (from, to), or None if it is malformed."""
    if not move or len(move) < 4:
        return None
    origin, target = move[0:2], move[2:4]
    if origin not in chess.SQUARE_NAMES or target not in chess.SQUARE_NAMES:
        return None
    return origin, target


def compute_overlay(
    played_move: str | None,
    predicted_best_move: str | None,
    classification: Classification | str | None,
    show_best_move: bool = True,
    show_arrows: bool = True,
) -> Overlay:
    """Compute highlights and arrows for the played and recommended moves.

    The played move's origin gets the good tint and its destination the
    severity color of its classification. When ``show_best_move`` is set
    and the best move differs from the played one, its squares get the
    suggestion tint, except where a played-move square already has one.

    Args:
        played_move: Move actually played.
        predicted_best_move: Engine recommendation.
        classification: Label of the played move (drives the color).
        show_best_move: Whether to add the recommendation overlay.
        show_arrows: Whether to emit arrows at all.

    Returns:
        Overlay with zero to four highlighted squares and up to two arrows.
    """
    overlay = Overlay()
    severity_color = annotate(classification).color

    played = _squares(played_move)
    if played is not None:
        origin, target = played
        overlay.squares[origin] = GOOD_TINT
        overlay.squares[target] = severity_color
        if show_arrows:
            overlay.arrows.append(Arrow(origin, target, severity_color))

    best = _squares(predicted_best_move)
    if show_best_move and best is not None and predicted_best_move != played_move:
        origin, target = best
        for square in (origin, target):
            overlay.squares.setdefault(square, SUGGESTION_TINT)
        if show_arrows:
            overlay.arrows.append(Arrow(origin, target, SUGGESTION_ARROW))

    return overlay
