"""JSON-file session store for analyses and finished games.

Each analysis lives in ``<data_dir>/analyses/<id>.json``; finished games
are written to ``<data_dir>/games/`` as a JSON record plus a PGN file.
Writes are atomic (unique temp file + os.replace) and serialized, so a
last-viewed update can never interleave with a full record update. File
access runs on a worker thread so callers on the event loop are never
blocked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from coach.errors import DataError, UpstreamFailure

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _write_text(path: Path, text: str) -> None:
    """Write text atomically via a uniquely named sibling temp file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _write_json(path: Path, data: dict) -> None:
    _write_text(path, json.dumps(data, indent=2, ensure_ascii=False))


class JsonSessionStore:
    """Persists analysis sessions and finished games under a data directory."""

    def __init__(self, data_dir: str | Path = "data") -> None:
        self._data_dir = Path(data_dir)
        self._analyses_dir = self._data_dir / "analyses"
        self._games_dir = self._data_dir / "games"
        # Read-modify-write of a record runs on worker threads
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Async interface
    # ------------------------------------------------------------------

    async def create_analysis(
        self,
        username: str,
        pgn: str,
        analysis: list[dict],
        last_viewed_move: int = 0,
        comments: list | None = None,
    ) -> str:
        """Save a new analysis and return its id."""
        return await self._run(
            self._create_analysis, username, pgn, analysis, last_viewed_move, comments or []
        )

    async def get_analysis_by_id(self, analysis_id: str) -> dict | None:
        """Load an analysis record, or None if no such id exists.

        Raises:
            DataError: If the stored file is corrupt.
        """
        return await self._run(self._get_analysis, analysis_id)

    async def update_last_viewed(self, analysis_id: str, last_viewed_move: int) -> None:
        await self._run(self._update, analysis_id, {"last_viewed_move": last_viewed_move})

    async def update_analysis(
        self,
        analysis_id: str,
        analysis: list[dict],
        last_viewed_move: int = 0,
        pgn: str | None = None,
    ) -> None:
        """Replace the stored moves of an existing analysis.

        Args:
            analysis_id: Id of the stored analysis.
            analysis: New move records.
            last_viewed_move: Index to resume at.
            pgn: Move text the records were computed from, when it changed.

        Raises:
            DataError: If the analysis does not exist or is corrupt.
        """
        fields = {"analysis": analysis, "last_viewed_move": last_viewed_move}
        if pgn is not None:
            fields["pgn"] = pgn
        await self._run(self._update, analysis_id, fields)

    async def list_analyses(self, username: str) -> list[dict]:
        """Summaries of a user's analyses, most recently updated first."""
        return await self._run(self._list_analyses, username)

    async def save_finished_game(
        self,
        username: str,
        pgn: str,
        elo: int,
        result: str,
        bot_name: str,
    ) -> str:
        """Save a finished play session and return its id."""
        return await self._run(self._save_game, username, pgn, elo, result, bot_name)

    async def list_games(self, username: str) -> list[dict]:
        """A user's finished games, newest first."""
        return await self._run(self._list_games, username)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as exc:
            raise UpstreamFailure(f"Session store unavailable: {exc}") from exc

    # ------------------------------------------------------------------
    # Blocking implementation
    # ------------------------------------------------------------------

    def _analysis_path(self, analysis_id: str) -> Path | None:
        if not isinstance(analysis_id, str) or not _ID_PATTERN.match(analysis_id):
            return None
        return self._analyses_dir / f"{analysis_id}.json"

    def _create_analysis(
        self,
        username: str,
        pgn: str,
        analysis: list[dict],
        last_viewed_move: int,
        comments: list,
    ) -> str:
        analysis_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc).isoformat()
        with self._write_lock:
            _write_json(self._analyses_dir / f"{analysis_id}.json", {
                "id": analysis_id,
                "username": username,
                "pgn": pgn,
                "analysis": analysis,
                "last_viewed_move": last_viewed_move,
                "comments": comments,
                "created_at": now,
                "updated_at": now,
            })
        return analysis_id

    def _get_analysis(self, analysis_id: str) -> dict | None:
        path = self._analysis_path(analysis_id)
        if path is None or not path.exists():
            return None
        return _read_record(path, f"Analysis {analysis_id}")

    def _update(self, analysis_id: str, fields: dict) -> None:
        with self._write_lock:
            data = self._get_analysis(analysis_id)
            if data is None:
                raise DataError(f"Analysis not found: {analysis_id}")
            data.update(fields)
            data["updated_at"] = datetime.now(timezone.utc).isoformat()
            _write_json(self._analyses_dir / f"{analysis_id}.json", data)

    def _list_analyses(self, username: str) -> list[dict]:
        summaries = []
        for data in _records_for(self._analyses_dir, username):
            moves = data.get("analysis")
            summaries.append({
                "id": data.get("id"),
                "pgn": data.get("pgn", ""),
                "total_moves": len(moves) if isinstance(moves, list) else 0,
                "last_viewed_move": data.get("last_viewed_move", 0),
                "created_at": data.get("created_at", ""),
                "updated_at": data.get("updated_at", ""),
            })
        summaries.sort(key=lambda s: s["updated_at"], reverse=True)
        return summaries

    def _save_game(
        self,
        username: str,
        pgn: str,
        elo: int,
        result: str,
        bot_name: str,
    ) -> str:
        game_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        with self._write_lock:
            _write_json(self._games_dir / f"{game_id}.json", {
                "id": game_id,
                "username": username,
                "pgn": pgn,
                "elo": elo,
                "result": result,
                "bot_name": bot_name,
                "date": now.isoformat(),
            })
            filename = f"game_{now.strftime('%Y%m%d_%H%M%S')}_{game_id[:8]}.pgn"
            _write_text(self._games_dir / filename, pgn + "\n")
        return game_id

    def _list_games(self, username: str) -> list[dict]:
        games = [
            {
                "id": data.get("id"),
                "date": data.get("date", ""),
                "result": data.get("result"),
                "elo": data.get("elo"),
                "bot_name": data.get("bot_name"),
                "pgn": data.get("pgn", ""),
            }
            for data in _records_for(self._games_dir, username)
        ]
        games.sort(key=lambda g: g["date"], reverse=True)
        return games


def _read_record(path: Path, what: str) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        # Keep the broken file for inspection
        shutil.copy2(path, path.with_suffix(".bak"))
        raise DataError(f"{what} is corrupt") from exc

    if not isinstance(data, dict):
        raise DataError(f"{what} is corrupt")
    data.setdefault("id", path.stem)
    return data


def _records_for(folder: Path, username: str) -> list[dict]:
    """Every readable JSON record in ``folder`` owned by ``username``."""
    if not folder.is_dir():
        return []
    records = []
    for path in sorted(folder.glob("*.json")):
        try:
            data = _read_record(path, path.name)
        except DataError as exc:
            logger.warning("Skipping unreadable record: %s", exc)
            continue
        if data.get("username") == username:
            records.append(data)
    return records
