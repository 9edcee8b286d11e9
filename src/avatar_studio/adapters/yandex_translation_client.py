"""Yandex Cloud Translate API client."""

from dataclasses import dataclass

import httpx

from avatar_studio.services.translation import TranslationClient

_TRANSLATE_URL = "https://translate.api.cloud.yandex.net/translate/v2/translate"


@dataclass
class HttpxYandexTranslationClient(TranslationClient):
    """HTTPX-backed Yandex Translate client."""

    api_key: str
    http_client: httpx.AsyncClient
    folder_id: str | None = None

    @classmethod
    def create(
        cls, api_key: str, folder_id: str | None = None
    ) -> "HttpxYandexTranslationClient":
        """Create a translation client with a managed httpx session."""
        return cls(
            api_key=api_key, http_client=httpx.AsyncClient(), folder_id=folder_id
        )

    async def translate(self, text: str, target_language: str) -> str:
        """Translate a single text."""
        payload: dict[str, object] = {
            "targetLanguageCode": target_language,
            "texts": [text],
        }
        if self.folder_id:
            payload["folderId"] = self.folder_id
        response = await self.http_client.post(
            _TRANSLATE_URL,
            json=payload,
            headers={"Authorization": f"Api-Key {self.api_key}"},
            timeout=10,
        )
        response.raise_for_status()
        translations = response.json().get("translations") or []
        if not translations:
            raise RuntimeError("Yandex returned no translations")
        return str(translations[0]["text"])

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
