"""Shared data models for the game review and play coach.

MoveRecord and AnalysisSession are the persisted contract between the
analysis controller and the session store; Phase and OpponentProfile
describe the interactive play session.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class Color(str, Enum):
    WHITE = "white"
    BLACK = "black"


class Classification(str, Enum):
    """Quality label for a single ply."""

    CHECKMATE = "Checkmate"
    BLUNDER = "Blunder"
    MISTAKE = "Mistake"
    INACCURACY = "Inaccuracy"
    BRILLIANT = "Brilliant"
    EXCELLENT = "Excellent"
    STANDARD = "Standard"

    @classmethod
    def parse(cls, value: object) -> Classification | None:
        """Return the matching label, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return None
        return None


class Phase(str, Enum):
    """States of an interactive play session."""

    IDLE = "idle"
    CONFIGURING = "configuring"
    AWAITING_HUMAN_MOVE = "awaiting_human_move"
    AWAITING_OPPONENT_MOVE = "awaiting_opponent_move"
    FINISHED = "finished"


@dataclass
class MoveRecord:
    """One ply of a reviewed game after sanitization."""

    player: Color
    played_move: str
    predicted_best_move: str
    evaluation: float
    predicted_evaluation: float
    board_fen: str | None
    classification: Classification
    coach_commentary: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["player"] = self.player.value
        data["classification"] = self.classification.value
        return data


@dataclass
class AnalysisSession:
    """A reviewed game as stored by the session store."""

    id: str | None
    pgn: str
    moves: list[MoveRecord] = field(default_factory=list)
    last_viewed_move: int = 0
    username: str = ""
    comments: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "pgn": self.pgn,
            "analysis": [m.to_dict() for m in self.moves],
            "last_viewed_move": self.last_viewed_move,
            "comments": list(self.comments),
        }


@dataclass
class OpponentProfile:
    """Identity of the simulated opponent for a given strength."""

    name: str
    style: str
    description: str = ""
    elo: int | None = None


DEFAULT_OPPONENT = OpponentProfile(name="Bot", style="Unknown")


def move_label(index: int, player: Color | str) -> str:
    """Human-readable header for a ply, e.g. ``Move 3 (black)``."""
    color = player.value if isinstance(player, Color) else player
    return f"Move {index // 2 + 1} ({color})"
