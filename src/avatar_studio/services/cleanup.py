"""Periodic expiry of abandoned photo uploads."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from avatar_studio.domain.sessions import Session, TrainingState
from avatar_studio.services.datasets import DatasetPackager
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.sessions import SessionRegistry

_logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = (
    "Your uploaded photos were deleted after 24 hours of inactivity. "
    "Send new photos whenever you're ready."
)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def is_abandoned(session: Session, cutoff: datetime) -> bool:
    """True for sessions holding photos that nobody touched since ``cutoff``."""
    if not session.photos:
        return False
    if session.training_state in (TrainingState.TRAINING, TrainingState.READY):
        return False
    return session.last_activity_at is not None and session.last_activity_at <= cutoff


@dataclass
class IdleSessionCleaner:
    """Delete photos of sessions that stopped short of training."""

    registry: SessionRegistry
    packager: DatasetPackager
    notifier: Notifier
    idle_after: timedelta = timedelta(hours=24)
    interval_seconds: float = 6 * 3600
    clock: Callable[[], datetime] = _utc_now
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run_once(self) -> int:
        """Expire every abandoned session and return how many were reset."""
        cutoff = self.clock() - self.idle_after
        expired = 0
        for session_id in await self.registry.session_ids():
            previous = await self.registry.reset_if(
                session_id, lambda session: is_abandoned(session, cutoff)
            )
            if previous is None:
                continue
            deleted = await self.packager.delete_photos(previous.photos)
            await self.notifier.send(session_id, EXPIRED_MESSAGE)
            _logger.info(
                "Expired idle session_id=%s photos_deleted=%s", session_id, deleted
            )
            expired += 1
        return expired

    async def run_forever(self) -> None:
        """Run ``run_once`` on a fixed interval until cancelled."""
        while True:
            await self.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                _logger.exception("Idle session cleanup failed")
