"""Intake of training photos sent to the bot."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from avatar_studio.adapters.telegram_file_client import TelegramFileClient
from avatar_studio.domain.sessions import PhotoRecord
from avatar_studio.errors import SessionValidationError, StorageError
from avatar_studio.services.datasets import BlobStorage
from avatar_studio.services.sessions import SessionRegistry

_logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def progress_message(count: int, min_photos: int, max_photos: int) -> str:
    """Reply sent after each accepted photo."""
    text = f"Photo {count}/{max_photos} uploaded."
    if count >= min_photos:
        text += " That's enough to train your model, send /train to start."
    else:
        text += f" Send at least {min_photos - count} more."
    return text


@dataclass
class PhotoIntakeService:
    """Store an uploaded photo and append it to the session."""

    registry: SessionRegistry
    storage: BlobStorage
    file_client: TelegramFileClient
    min_photos: int = 5
    max_photos: int = 10
    clock: Callable[[], datetime] = _utc_now

    async def accept(self, session_id: int, file_id: str) -> str:
        """Store the Telegram file and return the progress reply.

        Raises ``SessionValidationError`` when the session can't take more
        photos and ``StorageError`` when the file couldn't be stored.
        """
        path = f"photos/{session_id}/{uuid4().hex}.jpg"
        try:
            data = await self.file_client.download_file_bytes(file_id)
            await self.storage.upload(path, data, "image/jpeg")
        except Exception as exc:
            raise StorageError(f"Failed to store photo for session {session_id}") from exc

        record = PhotoRecord(storage_path=path, uploaded_at=self.clock())
        try:
            count = await self.registry.append_photo(
                session_id, record, self.max_photos
            )
        except SessionValidationError:
            await self._discard(path)
            raise
        _logger.info(
            "Photo accepted: session_id=%s count=%s path=%s", session_id, count, path
        )
        return progress_message(count, self.min_photos, self.max_photos)

    async def _discard(self, path: str) -> None:
        try:
            await self.storage.delete(path)
        except Exception:
            _logger.warning("Failed to discard rejected photo %s", path, exc_info=True)
