"""Tests for the commentary client, opponent directory, config and logging."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from coach.commentary import GeminiCommentator, build_prompt
from coach.config import DEFAULT_ANALYSIS_DEPTH, DEFAULT_COMMENTARY_MODEL, Settings
from coach.errors import UpstreamFailure
from coach.log import configure_logging
from coach.models import OpponentProfile
from coach.opponents import SUPPORTED_STRENGTHS, OpponentDirectory

OPPONENT = OpponentProfile(name="Rookie Rita", style="aggressive", elo=400)


def _client(text="Bold move!", error=None) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=MagicMock(text=text), side_effect=error
    )
    return client


# ---------------------------------------------------------------------------
# Commentary
# ---------------------------------------------------------------------------


class TestCommentator:

    def test_prompt_mentions_persona_and_move(self):
        prompt = build_prompt("fen-x", "Nf3", 400, OPPONENT)
        assert "Rookie Rita" in prompt
        assert "400" in prompt
        assert "Nf3" in prompt
        assert "fen-x" in prompt

    def test_comment(self):
        client = _client("  Bold move!  ")
        commentator = GeminiCommentator(client=client, model="test-model")
        text = asyncio.run(commentator.comment("fen-x", "e4", 400, OPPONENT))
        assert text == "Bold move!"
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "test-model"

    def test_unconfigured(self):
        commentator = GeminiCommentator()
        with pytest.raises(UpstreamFailure, match="not configured"):
            asyncio.run(commentator.comment("fen-x", "e4", 400, OPPONENT))

    def test_api_error(self):
        error = genai_errors.APIError(
            429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
        )
        commentator = GeminiCommentator(client=_client(error=error))
        with pytest.raises(UpstreamFailure):
            asyncio.run(commentator.comment("fen-x", "e4", 400, OPPONENT))

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_reply(self, text):
        commentator = GeminiCommentator(client=_client(text))
        with pytest.raises(UpstreamFailure, match="empty"):
            asyncio.run(commentator.comment("fen-x", "e4", 400, OPPONENT))


# ---------------------------------------------------------------------------
# Opponents
# ---------------------------------------------------------------------------


class TestOpponentDirectory:

    @pytest.mark.parametrize("strength", SUPPORTED_STRENGTHS)
    def test_supported_strengths(self, strength):
        profile = asyncio.run(OpponentDirectory().profile(strength))
        assert profile.name
        assert profile.elo == strength

    def test_nearest_band(self):
        directory = OpponentDirectory()
        near_800 = asyncio.run(directory.profile(850))
        exact_800 = asyncio.run(directory.profile(800))
        assert near_800.name == exact_800.name
        assert near_800.elo == 850

    def test_distinct_personas(self):
        directory = OpponentDirectory()
        names = {asyncio.run(directory.profile(s)).name for s in SUPPORTED_STRENGTHS}
        assert len(names) == len(SUPPORTED_STRENGTHS)


# ---------------------------------------------------------------------------
# Config and logging
# ---------------------------------------------------------------------------


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("COACH_DATA_DIR", "STOCKFISH_PATH", "GEMINI_API_KEY", "GOOGLE_API_KEY",
                     "COACH_COMMENTARY_MODEL", "COACH_ANALYSIS_DEPTH", "COACH_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.stockfish_path is None
        assert settings.gemini_api_key is None
        assert settings.commentary_model == DEFAULT_COMMENTARY_MODEL
        assert settings.analysis_depth == DEFAULT_ANALYSIS_DEPTH
        assert settings.log_level == "INFO"

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COACH_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("STOCKFISH_PATH", "/usr/games/stockfish")
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "key-123")
        monkeypatch.setenv("COACH_ANALYSIS_DEPTH", "18")
        monkeypatch.setenv("COACH_LOG_LEVEL", "debug")
        settings = Settings.from_env()
        assert settings.data_dir == Path(tmp_path)
        assert settings.stockfish_path == "/usr/games/stockfish"
        assert settings.gemini_api_key == "key-123"
        assert settings.analysis_depth == 18
        assert settings.log_level == "DEBUG"

    def test_bad_depth_falls_back(self, monkeypatch):
        monkeypatch.setenv("COACH_ANALYSIS_DEPTH", "deep")
        assert Settings.from_env().analysis_depth == DEFAULT_ANALYSIS_DEPTH


class TestLogging:

    def test_idempotent(self):
        logger = configure_logging("warning")
        configure_logging("DEBUG")
        named = [h for h in logger.handlers if h.get_name() == "coach-rich"]
        assert len(named) == 1
        assert logger.level == logging.DEBUG
