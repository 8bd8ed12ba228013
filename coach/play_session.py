"""Interactive play session against a remote move generator.

Phases: IDLE -> CONFIGURING -> AWAITING_HUMAN_MOVE <-> AWAITING_OPPONENT_MOVE
-> FINISHED, with reset() returning to IDLE from anywhere. Only one
move-applying operation may be in flight; overlapping requests are
rejected, never queued. Commentary and the finished-game save run in the
background and can never block or undo a move.
"""

from __future__ import annotations

import logging

import chess

from coach import rules
from coach.background import BackgroundTasks
from coach.errors import CoachError, IllegalOperation, InputError
from coach.models import DEFAULT_OPPONENT, Color, OpponentProfile, Phase

logger = logging.getLogger(__name__)

DEFAULT_STRENGTH = 100

MSG_SELECT = "Select an engine and make your move!"
MSG_RESET = "Select an engine and start a new game!"
MSG_NOT_STARTED = "Please start the game!"
MSG_NOT_YOUR_TURN = "It's not your turn!"
MSG_ILLEGAL = "Illegal move. Try again."
MSG_NO_RESPONSE = "Error: Engine failed to respond."
MSG_INVALID_ENGINE_MOVE = "Error: Invalid engine move."

_ACTIVE = (Phase.AWAITING_HUMAN_MOVE, Phase.AWAITING_OPPONENT_MOVE)


class PlaySession:
    """One game against the simulated opponent, with explicit phases."""

    def __init__(
        self,
        move_generator,
        commentator,
        store,
        opponents,
        username: str = "",
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self._generator = move_generator
        self._commentator = commentator
        self._store = store
        self._opponents = opponents
        self.username = username
        self._tasks = tasks or BackgroundTasks()

        self.phase = Phase.IDLE
        self.strength = DEFAULT_STRENGTH
        self.human_color = Color.WHITE
        self.opponent: OpponentProfile = DEFAULT_OPPONENT
        self._profiles: dict[int, OpponentProfile] = {}

        self._board: chess.Board | None = None
        self.move_history: list[str] = []
        self.commentary = ""
        self.status = MSG_SELECT
        self.result: str | None = None
        self.saved_game_id: str | None = None

        self._busy = False
        self._saved = False
        # Bumped on start/reset so late replies from an older game are dropped
        self._epoch = 0
        self._commentary_seq = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def fen(self) -> str:
        return self._board.fen() if self._board is not None else chess.STARTING_FEN

    @property
    def board(self) -> chess.Board | None:
        return self._board.copy() if self._board is not None else None

    @property
    def is_human_turn(self) -> bool:
        return (
            self.phase == Phase.AWAITING_HUMAN_MOVE
            and self._board is not None
            and rules.side_to_move(self._board) == self.human_color
        )

    # ------------------------------------------------------------------
    # Configuration and lifecycle
    # ------------------------------------------------------------------

    async def configure(
        self,
        strength: int | None = None,
        human_color: Color | str | None = None,
    ) -> OpponentProfile:
        """Choose opponent strength and/or the human's color before a game.

        Args:
            strength: Opponent rating-like strength (positive int).
            human_color: "white" or "black".

        Returns:
            The opponent profile for the selected strength.

        Raises:
            IllegalOperation: While a game is in progress.
            InputError: For an invalid strength or color.
        """
        if self.phase in _ACTIVE:
            raise IllegalOperation("Cannot change settings while a game is in progress")

        if strength is not None:
            if isinstance(strength, bool) or not isinstance(strength, int) or strength <= 0:
                raise InputError(f"Invalid strength: {strength!r}")
        color = _parse_color(human_color) if human_color is not None else None

        if self.phase == Phase.FINISHED:
            self._clear_game()

        if strength is not None:
            self.strength = strength
        if color is not None:
            self.human_color = color
        self.phase = Phase.CONFIGURING
        return await self._load_profile()

    async def _load_profile(self) -> OpponentProfile:
        cached = self._profiles.get(self.strength)
        if cached is None:
            try:
                cached = await self._opponents.profile(self.strength)
                self._profiles[self.strength] = cached
            except CoachError as exc:
                logger.warning("Opponent profile unavailable for %d: %s", self.strength, exc)
                cached = DEFAULT_OPPONENT
        self.opponent = cached
        return cached

    async def start(self) -> Phase:
        """Start a fresh game with the current settings.

        If the opponent moves first, its move is requested right away.

        Returns:
            The phase after starting (and after the opponent's opening move,
            when it has one).

        Raises:
            IllegalOperation: If a game is already in progress.
        """
        if self.phase in _ACTIVE:
            raise IllegalOperation("A game is already in progress; reset it first")

        if self.strength not in self._profiles:
            await self._load_profile()
        else:
            self.opponent = self._profiles[self.strength]

        self._clear_game()
        self._board = rules.new_position()
        self.status = self._playing_status()
        logger.info(
            "Game started: human=%s strength=%d opponent=%s",
            self.human_color.value, self.strength, self.opponent.name,
        )

        if rules.side_to_move(self._board) == self.human_color:
            self.phase = Phase.AWAITING_HUMAN_MOVE
        else:
            self.phase = Phase.AWAITING_OPPONENT_MOVE
            await self._opponent_turn()
        return self.phase

    def reset(self) -> None:
        """Discard the game and return to IDLE. Valid from any phase."""
        self._clear_game()
        self.phase = Phase.IDLE
        self.status = MSG_RESET

    def _clear_game(self) -> None:
        self._epoch += 1
        self._board = None
        self.move_history = []
        self.commentary = ""
        self.result = None
        self.saved_game_id = None
        self._busy = False
        self._saved = False

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    async def attempt_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> str:
        """Play the human's move, then let the opponent reply.

        A pawn reaching the last rank without an explicit ``promotion``
        becomes a queen.

        Args:
            from_square: Origin square, e.g. "e2".
            to_square: Destination square, e.g. "e4".
            promotion: Optional promotion piece letter.

        Returns:
            SAN of the human's move.

        Raises:
            IllegalOperation: If no game is running, it is not the human's
                turn, another move is in flight, or the move is illegal.
        """
        if self.phase not in _ACTIVE or self._board is None:
            self.status = MSG_NOT_STARTED
            raise IllegalOperation(MSG_NOT_STARTED)
        if self._busy or not self.is_human_turn:
            self.status = MSG_NOT_YOUR_TURN
            raise IllegalOperation(MSG_NOT_YOUR_TURN)

        if promotion is None and rules.is_promotion(self._board, from_square, to_square):
            promotion = "q"

        try:
            board, san = rules.apply_move(self._board, from_square, to_square, promotion)
        except IllegalOperation:
            self.status = MSG_ILLEGAL
            raise

        self._board = board
        self.move_history.append(san)
        if self._check_termination():
            return san

        self.phase = Phase.AWAITING_OPPONENT_MOVE
        self._request_commentary(board.fen(), san)
        await self._opponent_turn()
        return san

    async def request_opponent_move(self) -> bool:
        """Ask the move generator for the opponent's move.

        Runs automatically after a human move and at start when the
        opponent moves first; calling it directly retries a turn that got
        stuck on a failed or invalid reply.

        Returns:
            True if a move was applied.

        Raises:
            IllegalOperation: If it is not the opponent's turn or a move is
                already in flight.
        """
        if self.phase != Phase.AWAITING_OPPONENT_MOVE:
            raise IllegalOperation("It is not the opponent's turn")
        if self._busy:
            raise IllegalOperation("Ordering violation: a move is already in flight")
        return await self._opponent_turn()

    async def _opponent_turn(self) -> bool:
        epoch = self._epoch
        self._busy = True
        try:
            try:
                uci = await self._generator.best_move(self.fen, self.strength)
            except CoachError as exc:
                if epoch != self._epoch:
                    return False
                logger.warning("Opponent move request failed: %s", exc)
                self.status = MSG_NO_RESPONSE
                return False

            if epoch != self._epoch:
                logger.debug("Dropping opponent reply for a discarded game")
                return False
            if not uci:
                self.status = MSG_NO_RESPONSE
                return False

            try:
                board, san = rules.apply_uci(self._board, uci)
            except IllegalOperation:
                logger.warning("Opponent returned an illegal move: %s", uci)
                self.status = MSG_INVALID_ENGINE_MOVE
                return False

            self._board = board
            self.move_history.append(san)
            if not self._check_termination():
                self.phase = Phase.AWAITING_HUMAN_MOVE
                self.status = self._playing_status()
            return True
        finally:
            if epoch == self._epoch:
                self._busy = False

    # ------------------------------------------------------------------
    # Termination and background work
    # ------------------------------------------------------------------

    def _check_termination(self) -> bool:
        board = self._board
        code = rules.result_code(board)
        if code is None:
            return False

        self.result = code
        self.phase = Phase.FINISHED
        if rules.is_checkmate(board):
            human_lost = rules.side_to_move(board) == self.human_color
            self.status = (
                f"{self.opponent.name} wins by checkmate!" if human_lost
                else "You win by checkmate!"
            )
        elif rules.is_stalemate(board):
            self.status = "Game drawn by stalemate!"
        else:
            self.status = "Game drawn!"
        logger.info("Game finished: %s (%s)", code, self.status)
        self._save_finished()
        return True

    def _save_finished(self) -> None:
        if self._saved:
            return
        self._saved = True

        bot = f"{self.opponent.name} (Elo {self.strength})"
        you = self.username or "Player"
        pgn = rules.full_move_text(self._board, {
            "White": you if self.human_color == Color.WHITE else bot,
            "Black": you if self.human_color == Color.BLACK else bot,
            "Result": self.result,
        })
        self._tasks.spawn(
            self._store_game(pgn, self.result, self._epoch),
            "save finished game",
        )

    async def _store_game(self, pgn: str, result: str, epoch: int) -> None:
        try:
            game_id = await self._store.save_finished_game(
                self.username, pgn, self.strength, result, self.opponent.name
            )
        except CoachError as exc:
            logger.warning("Error saving game: %s", exc)
            return
        if epoch == self._epoch:
            self.saved_game_id = game_id

    def _request_commentary(self, fen: str, san: str) -> None:
        self._commentary_seq += 1
        self._tasks.spawn(
            self._fetch_commentary(fen, san, self._epoch, self._commentary_seq),
            f"commentary for {san}",
        )

    async def _fetch_commentary(self, fen: str, san: str, epoch: int, seq: int) -> None:
        opponent = self.opponent
        try:
            text = await self._commentator.comment(fen, san, self.strength, opponent)
        except CoachError as exc:
            logger.warning("Error fetching bot commentary: %s", exc)
            text = f"{opponent.name}: Nice try with {san}!"
        if epoch == self._epoch and seq == self._commentary_seq:
            self.commentary = text

    def _playing_status(self) -> str:
        side = "White" if self.human_color == Color.WHITE else "Black"
        return f"Playing as {side} against {self.opponent.name} (ELO {self.strength})"


def _parse_color(value: Color | str) -> Color:
    if isinstance(value, Color):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in ("white", "w"):
            return Color.WHITE
        if lowered in ("black", "b"):
            return Color.BLACK
    raise InputError(f"Invalid color: {value!r}")
