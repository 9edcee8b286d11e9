"""Telegram file download client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class TelegramFileClient(Protocol):
    """Interface for downloading files users send to the bot."""

    async def download_file_bytes(self, file_id: str) -> bytes:
        """Download a Telegram file and return its bytes."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Resolve a file id with getFile, then fetch it from the file endpoint."""

    bot_token: str
    http_client: httpx.AsyncClient
    max_file_bytes: int = 20 * 1024 * 1024

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramFileClient":
        """Create a Telegram file client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def download_file_bytes(self, file_id: str) -> bytes:
        """Download an uploaded photo or document."""
        file_path = await self._resolve_path(file_id)
        response = await self.http_client.get(
            f"https://api.telegram.org/file/bot{self.bot_token}/{file_path}",
            timeout=30,
        )
        response.raise_for_status()
        if len(response.content) > self.max_file_bytes:
            raise ValueError(f"Telegram file {file_id} exceeds the size limit")
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _resolve_path(self, file_id: str) -> str:
        response = await self.http_client.get(
            f"https://api.telegram.org/bot{self.bot_token}/getFile",
            params={"file_id": file_id},
            timeout=10,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise RuntimeError("Telegram getFile failed")
        return payload["result"]["file_path"]
