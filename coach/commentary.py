"""Opponent commentary via the Gemini API (google-genai).

The play session treats commentary as best effort: any failure here is
raised as UpstreamFailure and replaced by a fallback line by the caller.
"""

from __future__ import annotations

import logging

from google import genai
from google.genai import errors as genai_errors

from coach.config import DEFAULT_COMMENTARY_MODEL
from coach.errors import UpstreamFailure
from coach.models import OpponentProfile

logger = logging.getLogger(__name__)


def build_prompt(
    fen: str,
    move_san: str,
    strength: int,
    opponent: OpponentProfile,
) -> str:
    """Prompt asking the opponent persona to react to the player's last move."""
    return (
        f"You are {opponent.name}, a chess bot rated about {strength} Elo "
        f"with a {opponent.style} playing style. Your opponent just played "
        f"{move_san}. The position is now (FEN): {fen}\n"
        "Reply in character with one or two short, friendly sentences of "
        "commentary on that move. Do not suggest your own next move."
    )


class GeminiCommentator:
    """Commentary service backed by a Gemini model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_COMMENTARY_MODEL,
        client: genai.Client | None = None,
    ) -> None:
        """Create the commentator.

        Args:
            api_key: Gemini API key. Without one (and without a client) every
                request fails with UpstreamFailure.
            model: Model name used for generation.
            client: Pre-built client, mainly for tests.
        """
        self._model = model
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(api_key=api_key)

    async def comment(
        self,
        fen: str,
        move_san: str,
        strength: int,
        opponent: OpponentProfile,
    ) -> str:
        """Generate commentary on the last move.

        Raises:
            UpstreamFailure: If no client is configured, the API errors, or
                the reply is empty.
        """
        if self._client is None:
            raise UpstreamFailure("Commentary service is not configured")

        prompt = build_prompt(fen, move_san, strength, opponent)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=prompt,
            )
        except genai_errors.APIError as exc:
            raise UpstreamFailure(f"Commentary request failed: {exc}") from exc

        text = (response.text or "").strip()
        if not text:
            raise UpstreamFailure("Commentary service returned an empty reply")
        logger.debug("Commentary for %s: %s", move_san, text)
        return text
