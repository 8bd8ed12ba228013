"""Runtime configuration for the coach library.

Values come from environment variables with project defaults, so the
MCP server and tests can point the library at a different data
directory or engine binary without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"
DEFAULT_COMMENTARY_MODEL = "gemini-2.0-flash"
DEFAULT_ANALYSIS_DEPTH = 12
DEFAULT_LOG_LEVEL = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Resolved configuration values."""

    data_dir: Path = DEFAULT_DATA_DIR
    stockfish_path: str | None = None
    gemini_api_key: str | None = None
    commentary_model: str = DEFAULT_COMMENTARY_MODEL
    analysis_depth: int = DEFAULT_ANALYSIS_DEPTH
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the process environment.

        Returns:
            Settings with every unset variable falling back to its default.
        """
        data_dir = os.environ.get("COACH_DATA_DIR")
        return cls(
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
            stockfish_path=os.environ.get("STOCKFISH_PATH") or None,
            gemini_api_key=(
                os.environ.get("GEMINI_API_KEY")
                or os.environ.get("GOOGLE_API_KEY")
                or None
            ),
            commentary_model=os.environ.get(
                "COACH_COMMENTARY_MODEL", DEFAULT_COMMENTARY_MODEL
            ),
            analysis_depth=_env_int("COACH_ANALYSIS_DEPTH", DEFAULT_ANALYSIS_DEPTH),
            log_level=os.environ.get("COACH_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )
