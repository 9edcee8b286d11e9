import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from avatar_studio.domain.sessions import Session, TrainingState
from avatar_studio.services.cleanup import (
    EXPIRED_MESSAGE,
    IdleSessionCleaner,
    is_abandoned,
)
from avatar_studio.services.datasets import DatasetPackager
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.sessions import SessionRegistry
from tests.conftest import FakeBlobStorage, FakeTelegramClient, add_photos

START = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class _Stop(Exception):
    pass


class _Now:
    def __init__(self, value: datetime) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value


def _cleaner(
    registry: SessionRegistry,
    storage: FakeBlobStorage,
    telegram_client: FakeTelegramClient,
    now: _Now,
) -> IdleSessionCleaner:
    return IdleSessionCleaner(
        registry=registry,
        packager=DatasetPackager(storage),
        notifier=Notifier(telegram_client),
        clock=now,
    )


def test_expires_only_abandoned_uploads(
    storage: FakeBlobStorage, telegram_client: FakeTelegramClient
) -> None:
    now = _Now(START)
    registry = SessionRegistry(clock=now)
    cleaner = _cleaner(registry, storage, telegram_client, now)

    async def scenario() -> int:
        await add_photos(registry, storage, 1, 3)
        now.value = START + timedelta(hours=20)
        await add_photos(registry, storage, 2, 2)
        now.value = START + timedelta(hours=25)
        return await cleaner.run_once()

    expired = asyncio.run(scenario())

    assert expired == 1
    assert asyncio.run(registry.get(1)).photos == []
    assert len(asyncio.run(registry.get(2)).photos) == 2
    assert not any(path.startswith("photos/1/") for path in storage.objects)
    assert telegram_client.texts_for(1) == [EXPIRED_MESSAGE]
    assert telegram_client.texts_for(2) == []


def test_training_sessions_are_never_expired(
    storage: FakeBlobStorage, telegram_client: FakeTelegramClient
) -> None:
    now = _Now(START)
    registry = SessionRegistry(clock=now)
    cleaner = _cleaner(registry, storage, telegram_client, now)

    async def scenario() -> int:
        await add_photos(registry, storage, 1, 5)
        await registry.begin_training(1, 5)
        now.value = START + timedelta(days=3)
        return await cleaner.run_once()

    assert asyncio.run(scenario()) == 0
    assert asyncio.run(registry.get(1)).training_state is TrainingState.TRAINING


def test_is_abandoned_requires_photos() -> None:
    cutoff = START
    assert not is_abandoned(Session(last_activity_at=START - timedelta(days=1)), cutoff)


def test_run_forever_survives_failures(
    storage: FakeBlobStorage, telegram_client: FakeTelegramClient
) -> None:
    registry = SessionRegistry()
    calls: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        calls.append(seconds)
        if len(calls) > 2:
            raise _Stop

    cleaner = IdleSessionCleaner(
        registry=registry,
        packager=DatasetPackager(storage),
        notifier=Notifier(telegram_client),
        interval_seconds=60,
        sleep=fake_sleep,
    )

    async def broken() -> int:
        raise RuntimeError("boom")

    cleaner.run_once = broken  # type: ignore[method-assign]

    with pytest.raises(_Stop):
        asyncio.run(cleaner.run_forever())

    assert calls == [60, 60, 60]
