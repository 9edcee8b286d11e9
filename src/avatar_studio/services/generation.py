"""Generate images with a session's trained model."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from avatar_studio.domain.jobs import JobKind, JobStatus
from avatar_studio.domain.prompt_flow import build_generation_prompt
from avatar_studio.domain.sessions import Session
from avatar_studio.errors import JobTimeoutError, PipelineError
from avatar_studio.services.jobs import JobGateway
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.polling import PollPolicy, poll_until_terminal
from avatar_studio.services.sessions import SessionRegistry
from avatar_studio.services.tasks import BackgroundTaskRunner

_logger = logging.getLogger(__name__)

STARTED_MESSAGE = "Generating your photo, this takes about a minute..."
DONE_MESSAGE = (
    "Done! Send /generate to create another photo or /model to manage your model."
)
NO_IMAGES_MESSAGE = (
    "I couldn't get any images this time. Try describing the photo differently."
)
TIMEOUT_MESSAGE = "Generation is taking too long. Please try again in a few minutes."
ERROR_MESSAGE = "I couldn't generate images. Please try again or adjust the description."


@dataclass
class GenerationCoordinator:
    """Submit a generation for a ready session and deliver the results.

    Failures are reported to the chat and never touch the training state:
    a failed generation leaves the trained model usable.
    """

    registry: SessionRegistry
    gateway: JobGateway
    notifier: Notifier
    task_runner: BackgroundTaskRunner
    poll_policy: PollPolicy = field(
        default_factory=lambda: PollPolicy(
            interval_seconds=5,
            error_backoff_seconds=3,
            max_consecutive_errors=3,
        )
    )
    num_outputs: int = 1
    max_outputs: int = 4
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def start(self, session_id: int) -> Session:
        """Accept the assembled prompt and generate in the background."""
        submitted = await self.registry.begin_generation(session_id)
        self.task_runner.submit(
            f"generation:{session_id}", self._drive(session_id, submitted)
        )
        return submitted

    async def run(self, session_id: int) -> None:
        """Accept the assembled prompt and generate inline."""
        submitted = await self.registry.begin_generation(session_id)
        await self._drive(session_id, submitted)

    async def _drive(self, session_id: int, submitted: Session) -> None:
        try:
            delivered = await self._generate(session_id, submitted)
        except JobTimeoutError as exc:
            _logger.warning("Generation timed out: session_id=%s: %s", session_id, exc)
            await self.notifier.send(session_id, TIMEOUT_MESSAGE)
        except Exception:
            _logger.exception("Generation failed: session_id=%s", session_id)
            await self.notifier.send(session_id, ERROR_MESSAGE)
        else:
            if delivered:
                await self.notifier.send(session_id, DONE_MESSAGE)
            else:
                await self.notifier.send(session_id, NO_IMAGES_MESSAGE)

    async def _generate(self, session_id: int, submitted: Session) -> int:
        if submitted.model_version is None or submitted.trigger_word is None:
            raise PipelineError(f"Session {session_id} has no trained model")
        prompt, negative_prompt = build_generation_prompt(
            submitted.prompt, submitted.trigger_word
        )
        await self.notifier.send(session_id, STARTED_MESSAGE)
        job_id = await self.gateway.submit_generation(
            submitted.model_version, prompt, negative_prompt, self.num_outputs
        )
        snapshot = await poll_until_terminal(
            self.gateway,
            job_id,
            JobKind.GENERATION,
            self.poll_policy,
            clock=self.clock,
            sleep=self.sleep,
        )
        if snapshot.status is not JobStatus.SUCCEEDED:
            _logger.warning(
                "Generation ended with status %s: session_id=%s error=%s",
                snapshot.status.value,
                session_id,
                snapshot.error,
            )
            return 0

        delivered = 0
        for url in snapshot.outputs[: self.max_outputs]:
            if await self.notifier.send_photo(session_id, url):
                delivered += 1
        _logger.info(
            "Generation delivered: session_id=%s images=%s", session_id, delivered
        )
        return delivered
