"""Translation of prompt descriptions into English."""

import logging
from dataclasses import dataclass
from typing import Protocol

_logger = logging.getLogger(__name__)


class TranslationClient(Protocol):
    """Interface for a machine translation API."""

    async def translate(self, text: str, target_language: str) -> str:
        """Return ``text`` translated into ``target_language``."""


@dataclass
class TranslationService:
    """Translate descriptions when a client is configured."""

    client: TranslationClient | None = None
    target_language: str = "en"

    async def to_english(self, text: str) -> str:
        """Translate ``text``; on any failure return it unchanged."""
        if self.client is None or not text.strip() or text.isascii():
            return text
        try:
            translated = await self.client.translate(text, self.target_language)
        except Exception:
            _logger.warning("Translation failed, using source text", exc_info=True)
            return text
        return translated.strip() or text
