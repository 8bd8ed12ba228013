"""MCP server for the chess review and play coach.

Exposes the analysis review controller and the interactive play session
as FastMCP tools. Every session is addressed by an explicit handle
returned from open_analysis / new_play_session; there is no global
"current" session.
"""

from __future__ import annotations

import logging
import sys
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from coach.analysis_session import AnalysisController
from coach.background import BackgroundTasks
from coach.commentary import GeminiCommentator
from coach.config import Settings
from coach.engine import EngineAnalysisService, EngineMoveGenerator
from coach.errors import CoachError
from coach.log import configure_logging
from coach.opponents import OpponentDirectory
from coach.play_session import PlaySession
from coach.store import JsonSessionStore

from response_schemas import (  # noqa: E402
    ANALYSIS_VIEW_SCHEMA,
    HISTORY_SCHEMA,
    PLAY_VIEW_SCHEMA,
    REVIEW_SCHEMA,
    analysis_view,
    history_view,
    play_view,
    review_view,
    validate_response,
)

logger = logging.getLogger("coach.server")

mcp = FastMCP("coach-review")

_settings = Settings.from_env()
_DATA_DIR = _settings.data_dir

# Collaborators shared by all sessions (replaced in tests)
_store = JsonSessionStore(_DATA_DIR)
_analysis_service = EngineAnalysisService(
    stockfish_path=_settings.stockfish_path, depth=_settings.analysis_depth
)
_move_generator = EngineMoveGenerator(stockfish_path=_settings.stockfish_path)
_commentator = GeminiCommentator(
    api_key=_settings.gemini_api_key, model=_settings.commentary_model
)
_opponents = OpponentDirectory()
_tasks = BackgroundTasks()

# Session handles -> controllers
_analyses: dict[str, AnalysisController] = {}
_games: dict[str, PlaySession] = {}


def _checked(response: dict, schema: dict) -> dict:
    """Log schema problems (only active with COACH_VALIDATE=1) and pass through."""
    for problem in validate_response(response, schema):
        logger.warning("Response schema violation: %s", problem)
    return response


def _analysis_response(key: str, controller: AnalysisController, **extra) -> dict:
    view = _checked(analysis_view(controller), ANALYSIS_VIEW_SCHEMA)
    return {"session_key": key, **view, **extra}


def _play_response(game_id: str, session: PlaySession) -> dict:
    return _checked(play_view(game_id, session), PLAY_VIEW_SCHEMA)


# ---------------------------------------------------------------------------
# Game review tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def open_analysis(analysis_id: str = "new", username: str = "") -> dict:
    """Open a stored game analysis, or start a new one with analysis_id='new'.

    Args:
        analysis_id: Stored analysis id, or 'new'.
        username: Owner to record when a new analysis is saved.

    Returns:
        Dict with session_key (use it for the other review tools), the
        analysis id, move count, current move index and any error.
    """
    controller = AnalysisController(_store, _analysis_service, username=username, tasks=_tasks)
    key = str(uuid.uuid4())
    _analyses[key] = controller
    await controller.open(analysis_id)
    return _analysis_response(key, controller)


@mcp.tool()
async def analyze_game(session_key: str, pgn: str | None = None) -> dict:
    """Analyze a game's PGN move by move and save the result.

    Args:
        session_key: Handle from open_analysis.
        pgn: Move text to analyze. Defaults to the session's stored PGN.

    Returns:
        Updated analysis summary, or an error dict.
    """
    controller = _analyses.get(session_key)
    if controller is None:
        return {"error": f"Analysis session not found: {session_key}"}

    try:
        await controller.analyze(pgn)
    except CoachError as exc:
        return {"error": str(exc)}
    return _analysis_response(session_key, controller)


@mcp.tool()
async def go_to_move(session_key: str, index: int) -> dict:
    """Jump to a move (0-based ply index). Out-of-range indexes are ignored.

    Args:
        session_key: Handle from open_analysis.
        index: Ply index to view.

    Returns:
        Analysis summary with a 'changed' flag.
    """
    controller = _analyses.get(session_key)
    if controller is None:
        return {"error": f"Analysis session not found: {session_key}"}

    changed = controller.go_to(index)
    return _analysis_response(session_key, controller, changed=changed)


@mcp.tool()
async def step_move(session_key: str, direction: str = "next") -> dict:
    """Step one ply forward ('next') or backward ('prev').

    Args:
        session_key: Handle from open_analysis.
        direction: 'next' or 'prev'.

    Returns:
        Analysis summary with a 'changed' flag.
    """
    controller = _analyses.get(session_key)
    if controller is None:
        return {"error": f"Analysis session not found: {session_key}"}

    try:
        changed = controller.step(direction)
    except CoachError as exc:
        return {"error": str(exc)}
    return _analysis_response(session_key, controller, changed=changed)


@mcp.tool()
async def review_move(
    session_key: str,
    show_best_move: bool = True,
    show_arrows: bool = True,
) -> dict:
    """Describe the currently viewed move: label, annotation, feedback, overlay.

    Args:
        session_key: Handle from open_analysis.
        show_best_move: Include the engine's recommended move overlay.
        show_arrows: Include arrows in the overlay.

    Returns:
        Review dict, or an error dict if nothing has been analyzed yet.
    """
    controller = _analyses.get(session_key)
    if controller is None:
        return {"error": f"Analysis session not found: {session_key}"}

    review = controller.review(show_best_move=show_best_move, show_arrows=show_arrows)
    if review is None:
        return {"error": "No analyzed moves to review"}
    return _checked(review_view(review), REVIEW_SCHEMA)


@mcp.tool()
async def list_analyses(username: str) -> dict:
    """List a user's saved analyses, most recently viewed first.

    Args:
        username: Owner the analyses were saved under.

    Returns:
        Dict with username and 'analyses' (id, pgn, total_moves,
        last_viewed_move per entry). Pass an id to open_analysis.
    """
    try:
        analyses = await _store.list_analyses(username)
    except CoachError as exc:
        return {"error": f"Failed to load analysis history: {exc}"}
    return _checked(history_view(username, "analyses", analyses), HISTORY_SCHEMA)


@mcp.tool()
async def list_games(username: str) -> dict:
    """List a user's finished games against the bots, newest first."""
    try:
        games = await _store.list_games(username)
    except CoachError as exc:
        return {"error": f"Failed to load game history: {exc}"}
    return _checked(history_view(username, "games", games), HISTORY_SCHEMA)


# ---------------------------------------------------------------------------
# Play tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def new_play_session(
    target_elo: int = 100,
    player_color: str = "white",
    username: str = "",
) -> dict:
    """Create a play session and choose the opponent (not started yet).

    Args:
        target_elo: Opponent strength (100, 400, 600, 800, 1000, 1200 suggested).
        player_color: 'white' or 'black'.
        username: Player name stored with the finished game.

    Returns:
        Play state dict including game_id.
    """
    session = PlaySession(
        _move_generator, _commentator, _store, _opponents,
        username=username, tasks=_tasks,
    )
    try:
        await session.configure(strength=target_elo, human_color=player_color)
    except CoachError as exc:
        return {"error": str(exc)}

    game_id = str(uuid.uuid4())
    _games[game_id] = session
    return _play_response(game_id, session)


@mcp.tool()
async def configure_game(
    game_id: str,
    target_elo: int | None = None,
    player_color: str | None = None,
) -> dict:
    """Change opponent strength or player color before (re)starting."""
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}

    try:
        await session.configure(strength=target_elo, human_color=player_color)
    except CoachError as exc:
        return {"error": str(exc)}
    return _play_response(game_id, session)


@mcp.tool()
async def start_game(game_id: str) -> dict:
    """Start the game. If the opponent has white, it moves immediately."""
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}

    try:
        await session.start()
    except CoachError as exc:
        return {"error": str(exc)}
    return _play_response(game_id, session)


@mcp.tool()
async def make_move(
    game_id: str,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> dict:
    """Play the human move (e.g. from_square='e2', to_square='e4').

    Pawns reaching the last rank promote to a queen unless promotion is given.
    The opponent's reply is included in the returned state.

    Args:
        game_id: Handle from new_play_session.
        from_square: Origin square.
        to_square: Destination square.
        promotion: Optional promotion piece letter (q, r, b, n).

    Returns:
        Updated play state, or an error dict for rejected moves.
    """
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}

    try:
        await session.attempt_move(from_square, to_square, promotion)
    except CoachError as exc:
        return {"error": str(exc)}
    return _play_response(game_id, session)


@mcp.tool()
async def engine_move(game_id: str) -> dict:
    """Retry the opponent's move after a failed or invalid reply."""
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}

    try:
        await session.request_opponent_move()
    except CoachError as exc:
        return {"error": str(exc)}
    return _play_response(game_id, session)


@mcp.tool()
async def reset_game(game_id: str) -> dict:
    """Abandon the current game and return the session to idle."""
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}

    session.reset()
    return _play_response(game_id, session)


@mcp.tool()
async def get_game(game_id: str) -> dict:
    """Current play state, including the latest opponent commentary."""
    session = _games.get(game_id)
    if session is None:
        return {"error": f"Game not found: {game_id}"}
    return _play_response(game_id, session)


@mcp.tool()
async def close_session(handle: str) -> dict:
    """Forget an analysis session_key or play game_id.

    Saved analyses and finished games stay in the store; only the
    in-memory session is dropped. An unfinished game is abandoned.

    Args:
        handle: session_key from open_analysis or game_id from
            new_play_session.

    Returns:
        Dict with the handle and which kind of session was closed.
    """
    if _analyses.pop(handle, None) is not None:
        return {"closed": handle, "kind": "analysis"}

    session = _games.pop(handle, None)
    if session is None:
        return {"error": f"Session not found: {handle}"}
    session.reset()
    return {"closed": handle, "kind": "game"}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    configure_logging(_settings.log_level)
    mcp.run()
