"""Annotation symbols, severity profile and coaching feedback per move."""

from __future__ import annotations

from dataclasses import dataclass, field

from coach.models import Classification, MoveRecord


@dataclass(frozen=True)
class Annotation:
    symbol: str
    color: str
    message: str
    severity: int


@dataclass
class Feedback:
    message: str
    show_follow_up: bool
    suggestions: list[str] = field(default_factory=list)


# Severity: 0 = best, 4 = worst
_ANNOTATIONS: dict[Classification, Annotation] = {
    Classification.CHECKMATE: Annotation("#", "#00C851", "Checkmate", 0),
    Classification.BLUNDER: Annotation("??", "#ff4444", "Blunder", 4),
    Classification.MISTAKE: Annotation("?", "#ff8800", "Mistake", 3),
    Classification.INACCURACY: Annotation("?!", "#ffbb33", "Inaccuracy", 2),
    Classification.BRILLIANT: Annotation("!!", "#00C851", "Brilliant", 0),
    Classification.EXCELLENT: Annotation("!", "#5cb85c", "Excellent", 1),
    Classification.STANDARD: Annotation("", "#33b5e5", "Standard", 1),
}

FOLLOW_UP_SEVERITY = 2

_GENERIC_SUGGESTIONS = [
    "Control the center more effectively",
    "Develop your pieces toward the king",
    "Look for tactical opportunities",
]


def annotate(classification: Classification | str | None) -> Annotation:
    """Look up the annotation for a label.

    Unknown or missing labels get the Standard entry; this never raises.
    """
    label = Classification.parse(classification)
    if label is None:
        label = Classification.STANDARD
    return _ANNOTATIONS[label]


def feedback(move: MoveRecord) -> Feedback:
    """Build coaching feedback for a reviewed move.

    Moves with severity 2 or worse get a follow-up with four generic
    improvement suggestions, the first naming the engine's best move.

    Args:
        move: Sanitized move record.

    Returns:
        Feedback with the move's commentary as message.
    """
    severity = annotate(move.classification).severity
    show_follow_up = severity >= FOLLOW_UP_SEVERITY

    suggestions: list[str] = []
    if show_follow_up:
        suggestions = [f"Consider {move.predicted_best_move} instead"]
        suggestions.extend(_GENERIC_SUGGESTIONS)

    return Feedback(
        message=move.coach_commentary,
        show_follow_up=show_follow_up,
        suggestions=suggestions,
    )
