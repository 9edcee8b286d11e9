"""Packaging of session photos into a training dataset archive."""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Protocol

from avatar_studio.domain.sessions import PhotoRecord
from avatar_studio.errors import StorageError

_logger = logging.getLogger(__name__)


class BlobStorage(Protocol):
    """Interface for the object storage bucket."""

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at ``path`` (overwriting) and return the path."""

    async def download(self, path: str) -> bytes:
        """Return the bytes stored at ``path``."""

    async def delete(self, path: str) -> None:
        """Remove the object at ``path``."""

    async def signed_url(self, path: str, expires_in: int) -> str:
        """Return a time-limited URL for ``path``."""


@dataclass(frozen=True)
class PackagedDataset:
    """Uploaded dataset archive and the URL handed to the training job."""

    archive_path: str
    public_url: str


@dataclass
class DatasetPackager:
    """Bundle accepted photos into one archive and manage its lifetime."""

    storage: BlobStorage
    signed_url_ttl_seconds: int = 3600

    async def pack(self, session_id: int, photos: list[PhotoRecord]) -> PackagedDataset:
        """Download photos, zip them, upload the archive and sign a URL."""
        buffer = io.BytesIO()
        added = 0
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for index, photo in enumerate(photos, start=1):
                try:
                    data = await self.storage.download(photo.storage_path)
                except Exception:
                    _logger.warning(
                        "Skipping photo %s for dataset of session_id=%s",
                        photo.storage_path,
                        session_id,
                        exc_info=True,
                    )
                    continue
                archive.writestr(_entry_name(index, photo.storage_path), data)
                added += 1

        if added == 0:
            raise StorageError(f"No photos could be read for session {session_id}")

        archive_path = self.archive_path_for(session_id)
        try:
            await self.storage.upload(archive_path, buffer.getvalue(), "application/zip")
            public_url = await self.storage.signed_url(
                archive_path, self.signed_url_ttl_seconds
            )
        except Exception as exc:
            raise StorageError(
                f"Failed to upload dataset for session {session_id}"
            ) from exc

        _logger.info(
            "Dataset built: session_id=%s photos=%s path=%s",
            session_id,
            added,
            archive_path,
        )
        return PackagedDataset(archive_path=archive_path, public_url=public_url)

    def archive_path_for(self, session_id: int) -> str:
        return f"datasets/{session_id}/dataset.zip"

    async def delete(self, archive_path: str) -> None:
        """Remove a dataset archive; failures are logged, never raised."""
        try:
            await self.storage.delete(archive_path)
        except Exception:
            _logger.warning("Failed to delete dataset %s", archive_path, exc_info=True)
            return
        _logger.info("Deleted dataset %s", archive_path)

    async def delete_photos(self, photos: list[PhotoRecord]) -> int:
        """Remove source photos best-effort and return how many were deleted."""
        deleted = 0
        for photo in photos:
            try:
                await self.storage.delete(photo.storage_path)
            except Exception:
                _logger.warning(
                    "Failed to delete photo %s", photo.storage_path, exc_info=True
                )
                continue
            deleted += 1
        return deleted


def _entry_name(index: int, storage_path: str) -> str:
    suffix = PurePosixPath(storage_path).suffix or ".jpg"
    return f"{index:02d}{suffix}"
