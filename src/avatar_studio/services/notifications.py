"""Fire-and-forget chat notifications."""

import logging
from dataclasses import dataclass

from avatar_studio.adapters.telegram_client import TelegramClient

_logger = logging.getLogger(__name__)


@dataclass
class Notifier:
    """Send chat messages, logging delivery failures instead of raising."""

    telegram_client: TelegramClient

    async def send(
        self, session_id: int, text: str, reply_markup: dict | None = None
    ) -> bool:
        try:
            await self.telegram_client.send_message(
                session_id, text, reply_markup=reply_markup
            )
        except Exception:
            _logger.warning(
                "Failed to notify session_id=%s", session_id, exc_info=True
            )
            return False
        return True

    async def send_photo(
        self, session_id: int, photo_url: str, caption: str | None = None
    ) -> bool:
        try:
            await self.telegram_client.send_photo(session_id, photo_url, caption)
        except Exception:
            _logger.warning(
                "Failed to send photo to session_id=%s", session_id, exc_info=True
            )
            return False
        return True
