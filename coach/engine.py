"""Stockfish wrapper acting as move generator and game analysis service.

Wraps Stockfish via the python-chess UCI interface. Provides:
- Adaptive difficulty (sub-1320 uses depth + random blend)
- Whole-game analysis producing raw per-move review records
- Async adapters that run the blocking engine on a worker thread
"""

from __future__ import annotations

import asyncio
import io
import logging
import random
import shutil
from pathlib import Path

import chess
import chess.engine
import chess.pgn

from coach.errors import InputError, UpstreamFailure

logger = logging.getLogger(__name__)

# Stockfish search paths in priority order
_STOCKFISH_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
]

# Evaluations are reported in pawns from white's point of view
_DECISIVE_EVAL = 1000.0

_ENGINE_ERRORS = (chess.engine.EngineError, chess.engine.EngineTerminatedError, OSError)


def _find_stockfish() -> str:
    """Auto-detect Stockfish binary path.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to Stockfish binary.

    Raises:
        FileNotFoundError: If Stockfish is not found anywhere.
    """
    for path_str in _STOCKFISH_PATHS:
        if Path(path_str).is_file():
            return path_str

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return which_result

    raise FileNotFoundError(
        "Stockfish not found. Install it or set STOCKFISH_PATH."
    )


def _white_pov(score: chess.engine.PovScore) -> float:
    white = score.white()
    if white.is_mate():
        # Mate scores order above (white mates) or below (white is mated) any Cp
        return _DECISIVE_EVAL if white > chess.engine.Cp(0) else -_DECISIVE_EVAL
    return white.score() / 100.0


class ChessEngine:
    """Stockfish wrapper with adaptive difficulty and analysis."""

    def __init__(self, stockfish_path: str | None = None) -> None:
        """Initialize engine with Stockfish.

        Args:
            stockfish_path: Explicit path to Stockfish binary.
                If None, auto-detects from known locations.

        Raises:
            FileNotFoundError: If Stockfish is not found.
        """
        self._stockfish_path = stockfish_path or _find_stockfish()
        self._engine = chess.engine.SimpleEngine.popen_uci(self._stockfish_path)
        self._target_elo: int = 800
        self._random_pct: float = 0.0
        self._depth: int = 1
        self._use_uci_elo: bool = False
        self.set_difficulty(self._target_elo)

    def _open_engine(self) -> chess.engine.SimpleEngine:
        return chess.engine.SimpleEngine.popen_uci(self._stockfish_path)

    def _ensure_engine(self) -> None:
        """Ensure engine process is alive, restart once if terminated."""
        try:
            self._engine.ping()
        except chess.engine.EngineTerminatedError:
            logger.warning("Stockfish process terminated, restarting")
            self._engine = self._open_engine()
            self.set_difficulty(self._target_elo)

    def set_difficulty(self, target_elo: int) -> None:
        """Configure engine strength.

        For sub-1320 Elo: uses depth limiting + random move blending.
        For 1320+ Elo: uses Stockfish UCI_Elo directly.

        Args:
            target_elo: Desired engine Elo rating.
        """
        self._target_elo = target_elo

        if target_elo >= 1320:
            self._use_uci_elo = True
            self._random_pct = 0.0
            self._depth = 20
            self._ensure_engine()
            self._engine.configure({"UCI_LimitStrength": True, "UCI_Elo": target_elo})
        else:
            self._use_uci_elo = False
            self._random_pct = max(0.0, 0.85 - (target_elo / 1320) * 0.85)
            self._depth = max(1, min(5, target_elo // 250))
            self._ensure_engine()
            self._engine.configure({"UCI_LimitStrength": False})

    def get_engine_move(self, board: chess.Board) -> chess.Move | None:
        """Get an engine move at the configured difficulty.

        Args:
            board: Current board position.

        Returns:
            The engine's chosen move (None if the engine returned none).

        Raises:
            ValueError: If the game is already over.
        """
        if board.is_game_over():
            raise ValueError("Game is already over")

        self._ensure_engine()

        try:
            return self._get_engine_move_inner(board)
        except chess.engine.EngineTerminatedError:
            self._engine = self._open_engine()
            self.set_difficulty(self._target_elo)
            return self._get_engine_move_inner(board)

    def _get_engine_move_inner(self, board: chess.Board) -> chess.Move | None:
        if self._use_uci_elo:
            result = self._engine.play(board, chess.engine.Limit(time=1.0))
            return result.move

        # Sub-1320: random blend
        if random.random() < self._random_pct:
            legal_moves = list(board.legal_moves)
            return random.choice(legal_moves)

        result = self._engine.play(board, chess.engine.Limit(depth=self._depth))
        return result.move

    def analyze_game(self, pgn: str, depth: int = 12) -> list[dict]:
        """Analyze every ply of a game at full strength.

        Each record compares the evaluation after the played move with
        the evaluation the engine predicted after its own best move.

        Args:
            pgn: Game move text in PGN.
            depth: Search depth per position.

        Returns:
            List of raw record dicts (player, played_move,
            predicted_best_move, evaluation, predicted_evaluation,
            board_fen), one per ply.

        Raises:
            ValueError: If the PGN cannot be parsed or has no moves.
        """
        game = chess.pgn.read_game(io.StringIO(pgn))
        if game is None:
            raise ValueError("No game found in PGN")
        if game.errors:
            raise ValueError(f"Malformed PGN: {game.errors[0]}")
        moves = list(game.mainline_moves())
        if not moves:
            raise ValueError("PGN contains no moves")

        self._ensure_engine()
        try:
            return self._analyze_game_inner(game.board(), moves, depth)
        except chess.engine.EngineTerminatedError:
            self._engine = self._open_engine()
            self.set_difficulty(self._target_elo)
            return self._analyze_game_inner(game.board(), moves, depth)

    def _analyze_game_inner(
        self,
        board: chess.Board,
        moves: list[chess.Move],
        depth: int,
    ) -> list[dict]:
        # Full strength regardless of play difficulty
        self._engine.configure({"UCI_LimitStrength": False})
        try:
            records: list[dict] = []
            before = self._evaluate(board, depth)
            for move in moves:
                player = "white" if board.turn == chess.WHITE else "black"
                predicted_eval, best_move = before
                board.push(move)
                after = self._evaluate(board, depth)
                records.append({
                    "player": player,
                    "played_move": move.uci(),
                    "predicted_best_move": best_move.uci() if best_move else "",
                    "evaluation": after[0],
                    "predicted_evaluation": predicted_eval,
                    "board_fen": board.fen(),
                })
                before = after
            return records
        finally:
            self.set_difficulty(self._target_elo)

    def _evaluate(
        self, board: chess.Board, depth: int
    ) -> tuple[float, chess.Move | None]:
        """Score a position (white POV, pawns) and return the engine's best move."""
        if board.is_checkmate():
            return (-_DECISIVE_EVAL if board.turn == chess.WHITE else _DECISIVE_EVAL), None
        if board.is_game_over():
            return 0.0, None

        infos = self._engine.analyse(board, chess.engine.Limit(depth=depth), multipv=1)
        info = infos[0]
        pv = info.get("pv", [])
        return _white_pov(info["score"]), (pv[0] if pv else None)

    def close(self) -> None:
        """Clean up Stockfish process."""
        try:
            self._engine.quit()
        except chess.engine.EngineTerminatedError:
            pass


# ---------------------------------------------------------------------------
# Async collaborator adapters
# ---------------------------------------------------------------------------


class _EngineHandle:
    """Lazily started engine shared by the async adapters, one call at a time."""

    def __init__(self, engine: ChessEngine | None = None, stockfish_path: str | None = None) -> None:
        self._engine = engine
        self._stockfish_path = stockfish_path
        self._lock = asyncio.Lock()

    def _get(self) -> ChessEngine:
        if self._engine is None:
            try:
                self._engine = ChessEngine(self._stockfish_path)
            except FileNotFoundError as exc:
                raise UpstreamFailure(str(exc)) from exc
        return self._engine

    async def run(self, func, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(func, self._get(), *args)
            except _ENGINE_ERRORS as exc:
                raise UpstreamFailure(f"Engine error: {exc}") from exc

    def close(self) -> None:
        if self._engine is not None:
            self._engine.close()
            self._engine = None


class EngineMoveGenerator:
    """Move generator backed by a local Stockfish process."""

    def __init__(self, engine: ChessEngine | None = None, stockfish_path: str | None = None) -> None:
        self._handle = _EngineHandle(engine, stockfish_path)

    async def best_move(self, fen: str, strength: int) -> str | None:
        """Return the engine's move in coordinate notation at ``strength``, or None."""
        try:
            board = chess.Board(fen)
        except ValueError as exc:
            raise InputError(f"Invalid FEN: {exc}") from exc
        if board.is_game_over():
            return None
        return await self._handle.run(_pick_move, board, strength)

    def close(self) -> None:
        self._handle.close()


class EngineAnalysisService:
    """Game analysis service backed by a local Stockfish process."""

    def __init__(
        self,
        engine: ChessEngine | None = None,
        stockfish_path: str | None = None,
        depth: int = 12,
    ) -> None:
        self._handle = _EngineHandle(engine, stockfish_path)
        self._depth = depth

    async def analyze_game(self, move_text: str) -> list[dict]:
        """Analyze a whole game; raises InputError for unusable PGN."""
        try:
            return await self._handle.run(_analyze, move_text, self._depth)
        except ValueError as exc:
            raise InputError(str(exc)) from exc

    def close(self) -> None:
        self._handle.close()


def _pick_move(engine: ChessEngine, board: chess.Board, strength: int) -> str | None:
    engine.set_difficulty(strength)
    move = engine.get_engine_move(board)
    return move.uci() if move is not None else None


def _analyze(engine: ChessEngine, move_text: str, depth: int) -> list[dict]:
    return engine.analyze_game(move_text, depth=depth)
