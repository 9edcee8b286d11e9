"""Gateway over the remote asynchronous job API."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

import httpx

from avatar_studio.adapters.replicate_client import ReplicateClient
from avatar_studio.domain.jobs import (
    JobKind,
    JobSnapshot,
    JobStatus,
    PredictionPayload,
    TrainingPayload,
)
from avatar_studio.errors import TransientRemoteError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# ValueError covers malformed JSON and pydantic validation failures.
_TRANSIENT_ERRORS = (httpx.HTTPError, ValueError)


class JobGateway(Protocol):
    """Interface the coordinators use to drive remote jobs."""

    async def submit_training(self, dataset_url: str, concept: str) -> str:
        """Start a training job and return its id."""

    async def submit_generation(
        self,
        model_version: str,
        prompt: str,
        negative_prompt: str | None = None,
        num_outputs: int = 1,
    ) -> str:
        """Start a generation job and return its id."""

    async def poll(self, job_id: str, kind: JobKind) -> JobSnapshot:
        """Return the current status of a job."""

    async def delete_artifact(self, version_id: str) -> None:
        """Delete a trained model version."""


@dataclass
class RemoteJobGateway(JobGateway):
    """Submit, poll and delete remote jobs with a single inline retry.

    The gateway retries one transient failure per call; accumulated retries
    across many polls are the caller's concern.
    """

    client: ReplicateClient
    retry_delay_seconds: float = 2.0
    training_steps: int = 800

    async def submit_training(self, dataset_url: str, concept: str) -> str:
        """Start training on a dataset URL and return the job id."""

        async def call() -> TrainingPayload:
            raw = await self.client.create_training(
                dataset_url, concept, self.training_steps
            )
            return TrainingPayload.model_validate(raw)

        training = await self._call_with_retry(call, action="submit_training")
        _logger.info("Training submitted: job_id=%s concept=%s", training.id, concept)
        return training.id

    async def submit_generation(
        self,
        model_version: str,
        prompt: str,
        negative_prompt: str | None = None,
        num_outputs: int = 1,
    ) -> str:
        """Start an image generation and return the job id."""

        async def call() -> PredictionPayload:
            raw = await self.client.create_prediction(
                model_version, prompt, negative_prompt, num_outputs
            )
            return PredictionPayload.model_validate(raw)

        prediction = await self._call_with_retry(call, action="submit_generation")
        _logger.info("Generation submitted: job_id=%s", prediction.id)
        return prediction.id

    async def poll(self, job_id: str, kind: JobKind) -> JobSnapshot:
        """Return the current status of a job."""
        if kind is JobKind.TRAINING:

            async def call() -> JobSnapshot:
                raw = await self.client.get_training(job_id)
                return _training_snapshot(TrainingPayload.model_validate(raw))

        else:

            async def call() -> JobSnapshot:
                raw = await self.client.get_prediction(job_id)
                return _prediction_snapshot(PredictionPayload.model_validate(raw))

        return await self._call_with_retry(call, action=f"poll:{kind.value}:{job_id}")

    async def delete_artifact(self, version_id: str) -> None:
        """Delete a trained model version; a missing version counts as deleted."""
        try:
            await self.client.delete_model_version(version_id)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == httpx.codes.NOT_FOUND:
                _logger.warning(
                    "Model version %s not found during delete; treating as deleted",
                    version_id,
                )
                return
            raise
        _logger.info("Deleted model version %s", version_id)

    async def _call_with_retry(
        self, func: Callable[[], Awaitable[T]], *, action: str
    ) -> T:
        """Call once, retry once after a fixed delay, then give up."""
        try:
            return await func()
        except _TRANSIENT_ERRORS as exc:
            _logger.warning(
                "Remote %s failed (status=%s), retrying: %s",
                action,
                _status_code_from_exception(exc),
                exc,
            )
        await asyncio.sleep(self.retry_delay_seconds)
        try:
            return await func()
        except _TRANSIENT_ERRORS as exc:
            raise TransientRemoteError(f"Remote {action} failed twice") from exc


def _training_snapshot(payload: TrainingPayload) -> JobSnapshot:
    version = payload.output.version if payload.output else None
    return JobSnapshot(
        job_id=payload.id,
        status=JobStatus.from_remote(payload.status),
        version=version,
        error=payload.error,
    )


def _prediction_snapshot(payload: PredictionPayload) -> JobSnapshot:
    output = payload.output
    if isinstance(output, str):
        outputs = [output]
    else:
        outputs = list(output or [])
    return JobSnapshot(
        job_id=payload.id,
        status=JobStatus.from_remote(payload.status),
        outputs=outputs,
        error=payload.error,
    )


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"
