import asyncio
from dataclasses import dataclass

from avatar_studio.services.moderation import ModerationService, ModerationVerdict
from avatar_studio.services.translation import TranslationService
from tests.conftest import FakeModerationClient, FakeTranslationClient


@dataclass
class UnavailableModerationClient:
    async def moderate(self, *, model: str, text: str) -> ModerationVerdict:
        raise RuntimeError("rate limited")


@dataclass
class UnavailableTranslationClient:
    async def translate(self, text: str, target_language: str) -> str:
        raise RuntimeError("quota exceeded")


def test_flagged_text_is_blocked() -> None:
    client = FakeModerationClient()
    service = ModerationService(client=client, model="omni-moderation-latest")

    assert asyncio.run(service.is_allowed(1, "a FORBIDDEN place")) is False
    assert asyncio.run(service.is_allowed(1, "a quiet park")) is True
    assert client.checked == ["a FORBIDDEN place", "a quiet park"]


def test_moderation_outage_lets_text_through() -> None:
    service = ModerationService(client=UnavailableModerationClient(), model="m")

    assert asyncio.run(service.is_allowed(1, "a quiet park")) is True


def test_blank_text_skips_moderation() -> None:
    client = FakeModerationClient()

    assert asyncio.run(ModerationService(client, "m").is_allowed(1, "  ")) is True
    assert client.checked == []


def test_ascii_text_is_not_translated() -> None:
    client = FakeTranslationClient()
    service = TranslationService(client=client)

    assert asyncio.run(service.to_english("a quiet park")) == "a quiet park"
    assert client.calls == []


def test_non_ascii_text_is_translated() -> None:
    service = TranslationService(client=FakeTranslationClient())

    assert asyncio.run(service.to_english("тихий парк")) == "[en] тихий парк"


def test_translation_failure_keeps_source() -> None:
    service = TranslationService(client=UnavailableTranslationClient())

    assert asyncio.run(service.to_english("тихий парк")) == "тихий парк"


def test_without_client_text_is_unchanged() -> None:
    assert asyncio.run(TranslationService().to_english("тихий парк")) == "тихий парк"
