"""Drive a session from collected photos to a trained model.

A run packages the photos, submits a remote training job and polls it to a
terminal status. Every way out of a run leaves the session in ``ready`` or
``failed``; the ``training`` state itself is what keeps a second run for the
same session from starting.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from avatar_studio.domain.jobs import JobKind, JobSnapshot, JobStatus
from avatar_studio.domain.models import TrainedModelRecord
from avatar_studio.domain.sessions import PhotoRecord, Session
from avatar_studio.errors import JobTimeoutError, PipelineError, SessionValidationError
from avatar_studio.services.datasets import DatasetPackager
from avatar_studio.services.jobs import JobGateway
from avatar_studio.services.models import TrainedModelRepository
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.polling import PollPolicy, poll_until_terminal
from avatar_studio.services.sessions import SessionRegistry
from avatar_studio.services.tasks import BackgroundTaskRunner

_logger = logging.getLogger(__name__)

STARTED_MESSAGE = (
    "Training has started. It usually takes a few minutes, "
    "I'll message you when your model is ready."
)
READY_MESSAGE = (
    "Your model is ready! I've deleted the original photos. "
    "Send /generate to create your first photo, or /model to manage the model."
)
REJECTED_MESSAGE = (
    "Training didn't succeed this time. "
    "Please upload a new set of photos and try again."
)
TIMEOUT_MESSAGE = (
    "Training is taking too long, so I've stopped it. "
    "Please upload your photos again and retry later."
)
ERROR_MESSAGE = "Something went wrong while training your model. Please try again later."


def trigger_word_for(session_id: int) -> str:
    """Return the token that anchors a session's subject in prompts."""
    return f"user{session_id}"


@dataclass(frozen=True)
class ArtifactPolicy:
    """What to do with datasets and photos after an unexpected failure."""

    preserve_on_failure: bool = False


@dataclass
class _Attempt:
    photos: list[PhotoRecord] = field(default_factory=list)
    dataset_path: str | None = None


@dataclass
class TrainingCoordinator:
    """Run one training attempt per session."""

    registry: SessionRegistry
    packager: DatasetPackager
    gateway: JobGateway
    notifier: Notifier
    model_repository: TrainedModelRepository
    task_runner: BackgroundTaskRunner
    min_photos: int = 5
    poll_policy: PollPolicy = field(
        default_factory=lambda: PollPolicy(
            interval_seconds=10,
            error_backoff_seconds=5,
            max_consecutive_errors=3,
            timeout_seconds=600,
        )
    )
    artifact_policy: ArtifactPolicy = field(default_factory=ArtifactPolicy)
    default_model_version: str | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def start(self, session_id: int) -> Session:
        """Admit the session into training and continue in the background.

        Raises ``SessionValidationError`` when the session can't train.
        """
        session = await self.registry.begin_training(session_id, self.min_photos)
        self.task_runner.submit(f"training:{session_id}", self._drive(session_id))
        _logger.info(
            "Training admitted: session_id=%s photos=%s",
            session_id,
            len(session.photos),
        )
        return session

    async def run(self, session_id: int) -> None:
        """Admit and run a whole training attempt inline."""
        await self.registry.begin_training(session_id, self.min_photos)
        await self._drive(session_id)

    async def _drive(self, session_id: int) -> None:
        attempt = _Attempt()
        try:
            await self._train(session_id, attempt)
        except JobTimeoutError as exc:
            _logger.warning("Training timed out: session_id=%s: %s", session_id, exc)
            await self._fail(session_id, attempt, TIMEOUT_MESSAGE)
        except asyncio.CancelledError:
            _logger.warning("Training cancelled: session_id=%s", session_id)
            await asyncio.shield(self._fail(session_id, attempt, ERROR_MESSAGE))
            raise
        except Exception:
            _logger.exception("Training failed: session_id=%s", session_id)
            await self._fail(
                session_id,
                attempt,
                ERROR_MESSAGE,
                preserve=self.artifact_policy.preserve_on_failure,
            )

    async def _train(self, session_id: int, attempt: _Attempt) -> None:
        ceiling = self.poll_policy.timeout_seconds
        deadline = asyncio.timeout(ceiling)
        try:
            async with deadline:
                snapshot = await self._run_job(session_id, attempt)
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            raise JobTimeoutError(
                f"Training for session {session_id} exceeded {ceiling:g}s"
            ) from exc

        if snapshot.status is JobStatus.SUCCEEDED:
            await self._succeed(session_id, attempt, snapshot)
            return
        _logger.warning(
            "Training ended with status %s: session_id=%s error=%s",
            snapshot.status.value,
            session_id,
            snapshot.error,
        )
        await self._fail(session_id, attempt, REJECTED_MESSAGE)

    async def _run_job(self, session_id: int, attempt: _Attempt) -> JobSnapshot:
        """Package, submit and poll; bounded as a whole by the ceiling."""
        session = await self.registry.get(session_id)
        attempt.photos = list(session.photos)
        attempt.dataset_path = self.packager.archive_path_for(session_id)

        dataset = await self.packager.pack(session_id, attempt.photos)
        attempt.dataset_path = dataset.archive_path
        await self.registry.attach_dataset(session_id, dataset.archive_path)

        job_id = await self.gateway.submit_training(
            dataset.public_url, trigger_word_for(session_id)
        )
        await self.registry.attach_training_job(session_id, job_id)
        await self.notifier.send(session_id, STARTED_MESSAGE)

        return await poll_until_terminal(
            self.gateway,
            job_id,
            JobKind.TRAINING,
            self.poll_policy,
            clock=self.clock,
            sleep=self.sleep,
        )

    async def _succeed(
        self, session_id: int, attempt: _Attempt, snapshot: JobSnapshot
    ) -> None:
        version = snapshot.version or self.default_model_version
        if not version:
            raise PipelineError(f"Training {snapshot.job_id} finished without a version")
        trigger_word = trigger_word_for(session_id)
        try:
            await self.registry.mark_ready(session_id, version, trigger_word)
        except SessionValidationError:
            _logger.warning(
                "Session %s left training before job %s finished; discarding %s",
                session_id,
                snapshot.job_id,
                version,
            )
            await self._cleanup(attempt)
            await self.gateway.delete_artifact(version)
            return

        try:
            await self.model_repository.upsert(
                TrainedModelRecord(
                    session_id=session_id,
                    model_version=version,
                    trigger_word=trigger_word,
                    training_id=snapshot.job_id,
                )
            )
        except Exception:
            _logger.exception("Failed to persist model for session_id=%s", session_id)
        await self._cleanup(attempt)
        await self.notifier.send(session_id, READY_MESSAGE)
        _logger.info("Training finished: session_id=%s version=%s", session_id, version)

    async def _fail(
        self,
        session_id: int,
        attempt: _Attempt,
        message: str,
        preserve: bool = False,
    ) -> None:
        previous = await self.registry.mark_failed(session_id)
        if preserve:
            _logger.warning(
                "Preserving artifacts of failed training: session_id=%s dataset=%s",
                session_id,
                attempt.dataset_path,
            )
        else:
            await self._cleanup(attempt)
        if previous is None:
            _logger.info("Session %s was no longer training", session_id)
            return
        await self.notifier.send(session_id, message)

    async def _cleanup(self, attempt: _Attempt) -> None:
        if attempt.dataset_path:
            await self.packager.delete(attempt.dataset_path)
            attempt.dataset_path = None
        await self.packager.delete_photos(attempt.photos)
