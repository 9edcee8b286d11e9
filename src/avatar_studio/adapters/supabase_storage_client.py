"""Supabase Storage adapter for photos and dataset archives."""

import asyncio
from dataclasses import dataclass

from supabase import Client

from avatar_studio.services.datasets import BlobStorage


@dataclass
class SupabaseStorageClient(BlobStorage):
    """Blob storage backed by a Supabase Storage bucket.

    The Supabase SDK is synchronous, so calls run in a worker thread to keep
    the event loop free for other sessions.
    """

    client: Client
    bucket: str

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes, overwriting any existing object."""
        await asyncio.to_thread(
            self._bucket().upload,
            path,
            data,
            {"content-type": content_type, "upsert": "true"},
        )
        return path

    async def download(self, path: str) -> bytes:
        """Download an object's bytes."""
        return await asyncio.to_thread(self._bucket().download, path)

    async def delete(self, path: str) -> None:
        """Remove an object; missing objects are not an error."""
        await asyncio.to_thread(self._bucket().remove, [path])

    async def signed_url(self, path: str, expires_in: int) -> str:
        """Create a signed download URL."""
        response = await asyncio.to_thread(
            self._bucket().create_signed_url, path, expires_in
        )
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise RuntimeError(f"Supabase returned no signed URL for {path}")
        return url

    def _bucket(self):  # type: ignore[no-untyped-def]
        return self.client.storage.from_(self.bucket)
