"""Analysis session controller: load or create a reviewed game and navigate it.

The controller owns the in-memory view (moves + viewed index), which is
always the source of truth. The session store is a best-effort mirror:
last-viewed writes are dispatched in the background and only logged on
failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from coach.annotations import Annotation, Feedback, annotate, feedback
from coach.background import BackgroundTasks
from coach.errors import CoachError, DataError, InputError, UpstreamFailure
from coach.evaluation import sanitize_records
from coach.models import AnalysisSession, MoveRecord, move_label
from coach.overlay import Overlay, compute_overlay

logger = logging.getLogger(__name__)

NEW_ANALYSIS = "new"
START_POSITION = "start"

_DIRECTIONS = {"next": 1, "prev": -1}


@dataclass
class MoveReview:
    """Everything a presentation layer needs to show the viewed move."""

    index: int
    label: str
    move: MoveRecord
    annotation: Annotation
    feedback: Feedback
    overlay: Overlay


class AnalysisController:
    """Drives one analysis session against an injected store and analysis service."""

    def __init__(
        self,
        store,
        analysis_service,
        username: str = "",
        tasks: BackgroundTasks | None = None,
    ) -> None:
        """Create a controller with an empty, unsaved session.

        Args:
            store: Session store (create_analysis, get_analysis_by_id,
                update_last_viewed, update_analysis).
            analysis_service: Object with ``analyze_game(move_text)``.
            username: Owner recorded on newly created analyses.
            tasks: Background dispatcher for fire-and-forget writes.
        """
        self._store = store
        self._service = analysis_service
        self.username = username
        self._tasks = tasks or BackgroundTasks()
        self.session = AnalysisSession(id=None, pgn="", username=username)
        self.current_move = 0
        self.error = ""
        self.is_loading = False
        self._nav_token = 0
        self._persist_lock = asyncio.Lock()

    @property
    def moves(self) -> list[MoveRecord]:
        return self.session.moves

    @property
    def analysis_id(self) -> str | None:
        return self.session.id

    @property
    def current(self) -> MoveRecord | None:
        if 0 <= self.current_move < len(self.session.moves):
            return self.session.moves[self.current_move]
        return None

    @property
    def current_fen(self) -> str:
        move = self.current
        if move is None or move.board_fen is None:
            return START_POSITION
        return move.board_fen

    # ------------------------------------------------------------------
    # Loading and analysis
    # ------------------------------------------------------------------

    async def open(self, analysis_id: str | None) -> AnalysisSession:
        """Open a stored analysis, or start an empty one for ``"new"``.

        Stored moves are re-sanitized on load since they may predate the
        current rules or contain malformed values. A stored analysis with
        no moves is analyzed immediately from its move text.

        Args:
            analysis_id: Stored id, or "new"/None for a fresh session.

        Returns:
            The current session (check ``error`` for recoverable problems).
        """
        if analysis_id is None or analysis_id == NEW_ANALYSIS:
            self.session = AnalysisSession(id=None, pgn="", username=self.username)
            self.current_move = 0
            self.error = ""
            return self.session

        token = self._nav_token
        self.is_loading = True
        try:
            try:
                record = await self._store.get_analysis_by_id(analysis_id)
            except DataError as exc:
                logger.warning("Stored analysis %s unusable: %s", analysis_id, exc)
                self.error = "Analysis not found"
                return self.session
            except UpstreamFailure as exc:
                self.error = f"Failed to load analysis history: {exc}"
                return self.session

            if record is None:
                self.error = "Analysis not found"
                return self.session

            raw_moves = record.get("analysis")
            moves = sanitize_records(raw_moves) if isinstance(raw_moves, list) else []
            comments = record.get("comments")
            self.session = AnalysisSession(
                id=analysis_id,
                pgn=record.get("pgn") or "",
                username=record.get("username") or self.username,
                comments=comments if isinstance(comments, list) else [],
            )

            if not moves:
                try:
                    await self.analyze(self.session.pgn)
                except InputError as exc:
                    self.error = str(exc)
                return self.session

            self.session.moves = moves
            if token == self._nav_token:
                self.current_move = _stored_index(record.get("last_viewed_move"), len(moves))
            self.session.last_viewed_move = self.current_move
            self.error = ""
            return self.session
        finally:
            self.is_loading = False

    async def analyze(self, move_text: str | None = None) -> AnalysisSession:
        """Request a full analysis of ``move_text`` and persist the result.

        New sessions are created in the store (assigning the id); sessions
        that were loaded without moves are updated in place.

        Args:
            move_text: PGN to analyze. Defaults to the session's stored PGN.

        Returns:
            The current session. Upstream failures are reported via
            ``error`` and leave the previous moves untouched.

        Raises:
            InputError: If there is no move text or the service rejects it.
        """
        text = move_text if move_text is not None else self.session.pgn
        if not text or not text.strip():
            raise InputError("Please enter a PGN.")

        token = self._nav_token
        self.is_loading = True
        try:
            try:
                raw = await self._service.analyze_game(text)
            except UpstreamFailure as exc:
                logger.warning("Analysis request failed: %s", exc)
                self.error = f"Analysis failed: {exc}"
                return self.session

            moves = sanitize_records(raw or [])
            if not moves:
                self.error = "Analysis failed."
                return self.session

            # A navigation made while waiting wins if it still fits
            index = 0
            if token != self._nav_token and self.current_move < len(moves):
                index = self.current_move

            self.session.pgn = text
            self.session.moves = moves
            self.session.last_viewed_move = index
            self.current_move = index
            self.error = ""

            await self._save_analysis(text, index)
            return self.session
        finally:
            self.is_loading = False

    async def _save_analysis(self, text: str, index: int) -> None:
        payload = [m.to_dict() for m in self.session.moves]
        created = self.session.id is None
        # Queued last-viewed writes wait until the full record is saved
        async with self._persist_lock:
            try:
                if created:
                    self.session.id = await self._store.create_analysis(
                        self.session.username or self.username,
                        text,
                        payload,
                        index,
                        [],
                    )
                    logger.info("Created analysis %s (%d moves)", self.session.id, len(payload))
                else:
                    await self._store.update_analysis(self.session.id, payload, index, pgn=text)
            except CoachError as exc:
                logger.warning("Saving analysis failed: %s", exc)
                self.error = f"Failed to save analysis: {exc}"
                return

        # Navigation while the id was still unknown was never dispatched
        if created and self.current_move != index:
            self._tasks.spawn(
                self._persist_viewed(self.session.id, self.current_move, self._nav_token),
                f"update last viewed move of {self.session.id}",
            )

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_to(self, index: int) -> bool:
        """View move ``index``; out-of-range requests are ignored.

        Persistence of the new index is dispatched in the background, so
        this must be called from within the running event loop when the
        session has an id.

        Returns:
            True if the viewed move changed, False if the request was ignored.
        """
        if isinstance(index, bool) or not isinstance(index, int):
            return False
        if not 0 <= index < len(self.session.moves):
            return False

        self._nav_token += 1
        self.current_move = index
        self.session.last_viewed_move = index

        if self.session.id is not None:
            self._tasks.spawn(
                self._persist_viewed(self.session.id, index, self._nav_token),
                f"update last viewed move of {self.session.id}",
            )
        return True

    def step(self, direction: str) -> bool:
        """Move one ply forward (``"next"``) or back (``"prev"``)."""
        delta = _DIRECTIONS.get(direction)
        if delta is None:
            raise InputError(f"Unknown direction: {direction!r}")
        return self.go_to(self.current_move + delta)

    async def _persist_viewed(self, analysis_id: str, index: int, token: int) -> None:
        async with self._persist_lock:
            if token != self._nav_token:
                logger.debug("Skipping stale last-viewed write (%d)", index)
                return
            try:
                await self._store.update_last_viewed(analysis_id, index)
            except CoachError as exc:
                logger.warning("Failed to update last viewed move: %s", exc)

    # ------------------------------------------------------------------
    # Derived view
    # ------------------------------------------------------------------

    def review(self, show_best_move: bool = True, show_arrows: bool = True) -> MoveReview | None:
        """Annotation, feedback and overlay for the viewed move (None if no moves)."""
        move = self.current
        if move is None:
            return None
        return MoveReview(
            index=self.current_move,
            label=move_label(self.current_move, move.player),
            move=move,
            annotation=annotate(move.classification),
            feedback=feedback(move),
            overlay=compute_overlay(
                move.played_move,
                move.predicted_best_move,
                move.classification,
                show_best_move=show_best_move,
                show_arrows=show_arrows,
            ),
        )


def _stored_index(value: object, length: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    if 0 <= value < length:
        return value
    return 0
