"""Lifecycle of trained models beyond a single training run."""

import logging
from dataclasses import dataclass
from typing import Protocol

from avatar_studio.domain.models import TrainedModelRecord
from avatar_studio.domain.sessions import TrainingState
from avatar_studio.errors import SessionValidationError
from avatar_studio.services.datasets import DatasetPackager
from avatar_studio.services.jobs import JobGateway
from avatar_studio.services.sessions import SessionRegistry

_logger = logging.getLogger(__name__)


class TrainedModelRepository(Protocol):
    """Durable store of trained model identities keyed by session id."""

    async def upsert(self, record: TrainedModelRecord) -> None:
        """Create or replace the record for ``record.session_id``."""

    async def find_by_session_id(self, session_id: int) -> TrainedModelRecord | None:
        """Return the stored record, if any."""

    async def delete_by_session_id(self, session_id: int) -> None:
        """Remove the stored record, if any."""


@dataclass
class ModelLifecycleService:
    """Restore models into cold sessions and delete them on request."""

    registry: SessionRegistry
    repository: TrainedModelRepository
    gateway: JobGateway
    packager: DatasetPackager

    async def ensure_loaded(self, session_id: int) -> bool:
        """Recover a durable model into an idle session.

        Returns True when the session is ready after the call.
        """
        session = await self.registry.get(session_id)
        if session.training_state is TrainingState.READY:
            return True
        if session.training_state is not TrainingState.IDLE or session.photos:
            return False
        try:
            record = await self.repository.find_by_session_id(session_id)
        except Exception:
            _logger.warning(
                "Failed to load stored model for session_id=%s",
                session_id,
                exc_info=True,
            )
            return False
        if record is None:
            return False
        restored = await self.registry.restore_model(
            session_id,
            record.model_version,
            record.trigger_word,
            training_id=record.training_id,
        )
        if restored:
            _logger.info(
                "Restored model for session_id=%s version=%s",
                session_id,
                record.model_version,
            )
        return restored

    async def delete_model(self, session_id: int) -> None:
        """Delete the trained model and every artifact, then reset the session."""
        session = await self.registry.get(session_id)
        if session.training_state is TrainingState.TRAINING:
            raise SessionValidationError(
                "Training is still running. Wait for it to finish first."
            )
        record = await self.repository.find_by_session_id(session_id)
        version = session.model_version or (record.model_version if record else None)
        if version is None:
            raise SessionValidationError("You don't have a trained model yet.")

        await self.gateway.delete_artifact(version)
        if session.dataset_path:
            await self.packager.delete(session.dataset_path)
        await self.packager.delete_photos(session.photos)
        await self.repository.delete_by_session_id(session_id)
        await self.registry.reset(session_id)
        _logger.info("Model deleted: session_id=%s version=%s", session_id, version)
