"""Response shaping and validation for MCP tool responses.

Converts controller state into compact dicts for the LLM client. Move
lists are rendered as PGN-style strings (1.e4 e5 2.Nf3 ...), which is
natural for the agent to read.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Shaping functions
# ---------------------------------------------------------------------------


def analysis_view(controller) -> dict:
    """Summarize an AnalysisController for a tool response.

    Args:
        controller: AnalysisController instance.

    Returns:
        Dict with id, move count, viewed index, error and loading flags.
    """
    return {
        "analysis_id": controller.analysis_id,
        "total_moves": len(controller.moves),
        "current_move": controller.current_move,
        "fen": controller.current_fen,
        "error": controller.error or None,
        "is_loading": controller.is_loading,
    }


def review_view(review) -> dict:
    """Flatten a MoveReview into plain JSON types.

    Drops the raw evaluations' FEN (already in analysis_view) and keeps
    only what a coach needs to explain the move.
    """
    move = review.move
    return {
        "index": review.index,
        "label": review.label,
        "played_move": move.played_move,
        "best_move": move.predicted_best_move,
        "evaluation": move.evaluation,
        "eval_diff": round(move.evaluation - move.predicted_evaluation, 2),
        "classification": move.classification.value,
        "symbol": review.annotation.symbol,
        "color": review.annotation.color,
        "severity": review.annotation.severity,
        "commentary": review.feedback.message,
        "suggestions": list(review.feedback.suggestions),
        "squares": dict(review.overlay.squares),
        "arrows": [
            {"start": a.start, "end": a.end, "color": a.color}
            for a in review.overlay.arrows
        ],
    }


def play_view(game_id: str, session) -> dict:
    """Summarize a PlaySession for a tool response.

    Args:
        game_id: Handle of the play session.
        session: PlaySession instance.

    Returns:
        Dict with phase, FEN, PGN-style move list and status text.
    """
    return {
        "game_id": game_id,
        "phase": session.phase.value,
        "fen": session.fen,
        "human_color": session.human_color.value,
        "strength": session.strength,
        "opponent": session.opponent.name,
        "move_list": _moves_to_pgn_string(session.move_history),
        "status": session.status,
        "commentary": session.commentary or None,
        "result": session.result,
    }


def history_view(username: str, kind: str, entries: list[dict]) -> dict:
    """Wrap a user's stored analyses or games, dropping full move records."""
    return {
        "username": username,
        kind: [
            {k: v for k, v in entry.items() if k != "analysis"}
            for entry in entries
        ],
        "count": len(entries),
    }


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str]) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'

    Args:
        moves: List of SAN move strings.

    Returns:
        PGN-formatted move string.
    """
    if not moves:
        return ""

    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            # White's move gets the move number
            move_num = i // 2 + 1
            parts.append(f"{move_num}.{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

ANALYSIS_VIEW_SCHEMA = {
    "analysis_id": (str, type(None)),
    "total_moves": int,
    "current_move": int,
    "fen": str,
    "error": (str, type(None)),
    "is_loading": bool,
}

REVIEW_SCHEMA = {
    "index": int,
    "label": str,
    "played_move": str,
    "best_move": str,
    "evaluation": (int, float),
    "eval_diff": (int, float),
    "classification": str,
    "symbol": str,
    "color": str,
    "severity": int,
    "commentary": str,
    "suggestions": list,
    "squares": dict,
    "arrows": list,
}

PLAY_VIEW_SCHEMA = {
    "game_id": str,
    "phase": str,
    "fen": str,
    "human_color": str,
    "strength": int,
    "opponent": str,
    "move_list": str,
    "status": str,
    "commentary": (str, type(None)),
    "result": (str, type(None)),
}

HISTORY_SCHEMA = {
    "username": str,
    "count": int,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when COACH_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("COACH_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
