"""Moderation of user-entered prompt text."""

import logging
from dataclasses import dataclass
from typing import Protocol

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationVerdict:
    """Outcome of a moderation check."""

    flagged: bool
    categories: list[str]


class ModerationClient(Protocol):
    """Interface for a text moderation API."""

    async def moderate(self, *, model: str, text: str) -> ModerationVerdict:
        """Classify ``text`` and return the verdict."""


@dataclass
class ModerationService:
    """Check prompt fragments before they reach image generation."""

    client: ModerationClient
    model: str

    async def is_allowed(self, session_id: int, text: str) -> bool:
        """Return False when the text is flagged.

        Moderation outages let the text through; the generation provider
        applies its own safety filter downstream.
        """
        if not text.strip():
            return True
        try:
            verdict = await self.client.moderate(model=self.model, text=text)
        except Exception:
            _logger.warning(
                "Moderation unavailable for session_id=%s", session_id, exc_info=True
            )
            return True
        if verdict.flagged:
            _logger.info(
                "Prompt text flagged: session_id=%s categories=%s",
                session_id,
                ",".join(verdict.categories),
            )
        return not verdict.flagged
