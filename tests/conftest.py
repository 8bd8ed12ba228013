"""Shared test fixtures: in-memory fakes for every collaborator.

Usage:
    uv run pytest tests/                  # Fast, fakes only (no Stockfish)
    uv run pytest tests/ --e2e            # Also run real Stockfish tests

Fixtures:
    store            - In-memory session store recording every call.
    analysis_service - Returns scripted raw move records.
    move_generator   - Plays the first legal move unless scripted.
    commentator      - Returns canned commentary or fails on demand.
    opponents        - Opponent directory with a call counter.
"""

from __future__ import annotations

import asyncio
import copy
import uuid

import chess
import pytest

from coach.errors import DataError, UpstreamFailure
from coach.models import OpponentProfile


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip e2e tests unless --e2e is given."""
    if config.getoption("--e2e"):
        return
    skip = pytest.mark.skip(reason="needs --e2e (real Stockfish)")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def raw_move(
    player="white",
    played="e2e4",
    best="e2e4",
    evaluation=0.3,
    predicted=0.3,
    fen="rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1",
    classification=None,
    commentary="Solid central move.",
) -> dict:
    """Build a raw analysis record as the analysis service returns it."""
    record = {
        "player": player,
        "played_move": played,
        "predicted_best_move": best,
        "evaluation": evaluation,
        "predicted_evaluation": predicted,
        "board_fen": fen,
        "coach_commentary": commentary,
    }
    if classification is not None:
        record["classification"] = classification
    return record


def raw_game(length: int = 10) -> list[dict]:
    """A list of ``length`` plausible raw records alternating colors."""
    moves = []
    for i in range(length):
        moves.append(raw_move(
            player="white" if i % 2 == 0 else "black",
            evaluation=0.1 * i,
            predicted=0.1 * i,
            fen=f"fen-{i}",
        ))
    return moves


SAMPLE_PGN = "1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Ba4 Nf6 5. O-O Be7"


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeStore:
    """In-memory session store with failure switches."""

    def __init__(self) -> None:
        self.analyses: dict[str, dict] = {}
        self.games: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_reads = False
        self.fail_writes = False
        self.corrupt_ids: set[str] = set()
        self.create_gate: asyncio.Event | None = None

    def seed(self, analysis: list[dict], pgn: str = SAMPLE_PGN, last_viewed_move=0) -> str:
        analysis_id = uuid.uuid4().hex
        self.analyses[analysis_id] = {
            "id": analysis_id,
            "username": "alice",
            "pgn": pgn,
            "analysis": copy.deepcopy(analysis),
            "last_viewed_move": last_viewed_move,
            "comments": [],
        }
        return analysis_id

    def _write_check(self) -> None:
        if self.fail_writes:
            raise UpstreamFailure("store offline")

    async def create_analysis(self, username, pgn, analysis, last_viewed_move=0, comments=None):
        self.calls.append(("create_analysis", username, pgn, last_viewed_move))
        self._write_check()
        if self.create_gate is not None:
            await self.create_gate.wait()
        analysis_id = uuid.uuid4().hex
        self.analyses[analysis_id] = {
            "id": analysis_id,
            "username": username,
            "pgn": pgn,
            "analysis": copy.deepcopy(analysis),
            "last_viewed_move": last_viewed_move,
            "comments": list(comments or []),
        }
        return analysis_id

    async def get_analysis_by_id(self, analysis_id):
        self.calls.append(("get_analysis_by_id", analysis_id))
        if self.fail_reads:
            raise UpstreamFailure("store offline")
        if analysis_id in self.corrupt_ids:
            raise DataError("corrupt")
        record = self.analyses.get(analysis_id)
        return copy.deepcopy(record) if record is not None else None

    async def update_last_viewed(self, analysis_id, last_viewed_move):
        self.calls.append(("update_last_viewed", analysis_id, last_viewed_move))
        self._write_check()
        self.analyses[analysis_id]["last_viewed_move"] = last_viewed_move

    async def update_analysis(self, analysis_id, analysis, last_viewed_move=0, pgn=None):
        self.calls.append(("update_analysis", analysis_id, last_viewed_move))
        self._write_check()
        self.analyses[analysis_id]["analysis"] = copy.deepcopy(analysis)
        self.analyses[analysis_id]["last_viewed_move"] = last_viewed_move
        if pgn is not None:
            self.analyses[analysis_id]["pgn"] = pgn

    async def list_analyses(self, username):
        self.calls.append(("list_analyses", username))
        if self.fail_reads:
            raise UpstreamFailure("store offline")
        return [
            {"id": a["id"], "pgn": a["pgn"], "total_moves": len(a["analysis"]),
             "last_viewed_move": a["last_viewed_move"]}
            for a in self.analyses.values() if a["username"] == username
        ]

    async def save_finished_game(self, username, pgn, elo, result, bot_name):
        self.calls.append(("save_finished_game", result))
        self._write_check()
        self.games.append({
            "id": f"game-{len(self.games) + 1}",
            "username": username, "pgn": pgn, "elo": elo,
            "result": result, "bot_name": bot_name,
        })
        return f"game-{len(self.games)}"

    async def list_games(self, username):
        self.calls.append(("list_games", username))
        if self.fail_reads:
            raise UpstreamFailure("store offline")
        return [copy.deepcopy(g) for g in reversed(self.games) if g["username"] == username]

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


class FakeAnalysisService:
    """Returns a scripted analysis, or raises a scripted error."""

    def __init__(self, result: list[dict] | None = None) -> None:
        self.result = result if result is not None else raw_game(10)
        self.error: Exception | None = None
        self.requests: list[str] = []
        self.gate: asyncio.Event | None = None

    async def analyze_game(self, move_text):
        self.requests.append(move_text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.result)


class FakeMoveGenerator:
    """Plays the first legal move, or pops scripted replies (str/None/Exception)."""

    def __init__(self) -> None:
        self.replies: list = []
        self.requests: list[tuple[str, int]] = []
        self.gate: asyncio.Event | None = None

    async def best_move(self, fen, strength):
        self.requests.append((fen, strength))
        if self.gate is not None:
            await self.gate.wait()
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        board = chess.Board(fen)
        legal = sorted(board.legal_moves, key=lambda m: m.uci())
        return legal[0].uci() if legal else None


class FakeCommentator:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.requests: list[tuple] = []

    async def comment(self, fen, move_san, strength, opponent):
        self.requests.append((fen, move_san, strength, opponent.name))
        if self.error is not None:
            raise self.error
        return f"{opponent.name} says: interesting {move_san}."


class FakeOpponents:
    def __init__(self) -> None:
        self.calls: list[int] = []
        self.error: Exception | None = None

    async def profile(self, strength):
        self.calls.append(strength)
        if self.error is not None:
            raise self.error
        return OpponentProfile(name=f"Bot{strength}", style="tactical", elo=strength)


@pytest.fixture()
def store():
    return FakeStore()


@pytest.fixture()
def analysis_service():
    return FakeAnalysisService()


@pytest.fixture()
def move_generator():
    return FakeMoveGenerator()


@pytest.fixture()
def commentator():
    return FakeCommentator()


@pytest.fixture()
def opponents():
    return FakeOpponents()
