"""Evaluation sanitizer and move classifier.

Raw per-move records come from the analysis service or from storage
written by older versions, so scores may be missing, non-finite, out of
range, or wrapped in the extended-JSON ``{"$numberDouble": ...}`` form.
Everything is normalised to a finite score in [-1000, 1000] before the
classifier sees it.
"""

from __future__ import annotations

import math

from coach.models import Classification, Color, MoveRecord

EVAL_LIMIT = 1000.0

# Ordered band checks on |evaluation - predicted_evaluation| (first match wins)
_ERROR_BANDS = [
    (3.0, Classification.BLUNDER),
    (1.5, Classification.MISTAKE),
    (0.75, Classification.INACCURACY),
]

# Ordered checks on the signed difference, evaluated after the bands
_REWARD_BANDS = [
    (-1.0, Classification.BRILLIANT),
    (-0.5, Classification.EXCELLENT),
]

QUOTA_MARKER = "429 You exceeded your current quota"
QUOTA_MESSAGE = (
    "Coach commentary unavailable due to API limits. Please try again later."
)
NO_COMMENTARY = "No coach commentary available"

_TAGGED_KEY = "$numberDouble"


def _sentinel(player: Color | str | None) -> float:
    return EVAL_LIMIT if _as_color(player) == Color.WHITE else -EVAL_LIMIT


def _as_color(player: Color | str | None) -> Color:
    if isinstance(player, Color):
        return player
    if isinstance(player, str) and player.lower() == Color.BLACK.value:
        return Color.BLACK
    return Color.WHITE


def _parse_text(text: str) -> float | None:
    """Parse a textual number. Returns None for non-finite values, 0 for junk."""
    try:
        value = float(text)
    except ValueError:
        return 0.0
    if not math.isfinite(value):
        return None
    return value


def sanitize(raw_evaluation: object, player: Color | str | None) -> float:
    """Normalise a raw evaluation into a finite score in [-1000, 1000].

    Missing, NaN and infinite inputs (plain or tagged) become the decisive
    sentinel for the moving side: +1000 for white, -1000 for black. The
    function is idempotent on its own output.

    Args:
        raw_evaluation: Value as received (number, numeric string, tagged
            dict, None, ...).
        player: Side that made the move.

    Returns:
        Finite clamped evaluation.
    """
    if isinstance(raw_evaluation, dict) and _TAGGED_KEY in raw_evaluation:
        raw_evaluation = str(raw_evaluation[_TAGGED_KEY])

    if isinstance(raw_evaluation, str):
        value = _parse_text(raw_evaluation.strip())
    elif isinstance(raw_evaluation, (int, float)) and not isinstance(raw_evaluation, bool):
        value = float(raw_evaluation)
        if not math.isfinite(value):
            value = None
    else:
        value = None

    if value is None:
        return _sentinel(player)
    return max(-EVAL_LIMIT, min(EVAL_LIMIT, value))


def classify(evaluation: float, predicted_evaluation: float) -> Classification:
    """Classify a move from its evaluation and the engine's predicted one.

    The absolute-difference bands are checked before the signed reward
    bands, so a large negative difference is reported as an error rather
    than as Brilliant.

    Args:
        evaluation: Sanitized evaluation after the played move.
        predicted_evaluation: Sanitized evaluation after the best move.

    Returns:
        One of the seven classification labels.
    """
    if evaluation >= EVAL_LIMIT or evaluation <= -EVAL_LIMIT:
        return Classification.CHECKMATE

    eval_diff = evaluation - predicted_evaluation
    for threshold, label in _ERROR_BANDS:
        if abs(eval_diff) > threshold:
            return label
    for threshold, label in _REWARD_BANDS:
        if eval_diff < threshold:
            return label
    return Classification.STANDARD


def sanitize_commentary(text: object) -> str:
    """Replace provider quota errors and fill in missing commentary."""
    if isinstance(text, str) and QUOTA_MARKER in text:
        return QUOTA_MESSAGE
    if not text:
        return NO_COMMENTARY
    return str(text)


def _move_text(value: object) -> str:
    return value if isinstance(value, str) else ""


def sanitize_record(raw: dict) -> MoveRecord:
    """Run a raw move record through sanitizer, classifier and commentary cleanup.

    An upstream classification is kept when it is one of the known labels;
    otherwise the move is classified from its sanitized scores.

    Args:
        raw: Record dict using the stored snake_case keys.

    Returns:
        A fully populated MoveRecord.
    """
    player = _as_color(raw.get("player"))
    evaluation = sanitize(raw.get("evaluation"), player)
    predicted = sanitize(raw.get("predicted_evaluation"), player)

    classification = Classification.parse(raw.get("classification"))
    if classification is None:
        classification = classify(evaluation, predicted)

    fen = raw.get("board_fen")
    return MoveRecord(
        player=player,
        played_move=_move_text(raw.get("played_move")),
        predicted_best_move=_move_text(raw.get("predicted_best_move")),
        evaluation=evaluation,
        predicted_evaluation=predicted,
        board_fen=fen if isinstance(fen, str) and fen else None,
        classification=classification,
        coach_commentary=sanitize_commentary(raw.get("coach_commentary")),
    )


def sanitize_records(raw_moves: list) -> list[MoveRecord]:
    """Sanitize a list of raw records, skipping entries that are not dicts."""
    return [sanitize_record(m) for m in raw_moves if isinstance(m, dict)]
