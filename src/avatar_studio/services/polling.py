"""Poll a remote job until it reaches a terminal status."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from avatar_studio.domain.jobs import JobKind, JobSnapshot
from avatar_studio.errors import ConsecutiveFailureError, JobTimeoutError
from avatar_studio.services.jobs import JobGateway

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    """Cadence and bounds for a polling loop."""

    interval_seconds: float
    error_backoff_seconds: float
    max_consecutive_errors: int = 3
    timeout_seconds: float | None = None


async def poll_until_terminal(
    gateway: JobGateway,
    job_id: str,
    kind: JobKind,
    policy: PollPolicy,
    *,
    clock: Callable[[], float],
    sleep: Callable[[float], Awaitable[None]],
) -> JobSnapshot:
    """Sleep, poll and repeat until the job is terminal.

    A poll failure counts towards ``max_consecutive_errors`` and is followed
    by the shorter backoff instead of the regular interval. The optional
    ceiling is measured on ``clock`` from the first sleep, so time spent in
    backoff and in the gateway's own retry counts too. A single poll is also
    cut off once the remaining budget runs out, so a hung request cannot
    outlive the ceiling.
    """
    started = clock()
    delay = policy.interval_seconds
    consecutive_errors = 0
    last_status = None
    while True:
        await sleep(delay)
        elapsed = clock() - started
        if policy.timeout_seconds is not None and elapsed >= policy.timeout_seconds:
            raise JobTimeoutError(
                f"{kind.value} job {job_id} not finished after {elapsed:.0f}s"
            )
        budget = (
            None
            if policy.timeout_seconds is None
            else policy.timeout_seconds - elapsed
        )
        deadline = asyncio.timeout(budget)
        try:
            async with deadline:
                snapshot = await gateway.poll(job_id, kind)
        except Exception as exc:
            if deadline.expired():
                raise JobTimeoutError(
                    f"{kind.value} job {job_id} poll did not return within "
                    f"the {policy.timeout_seconds:g}s ceiling"
                ) from exc
            consecutive_errors += 1
            if consecutive_errors >= policy.max_consecutive_errors:
                raise ConsecutiveFailureError(
                    f"Polling {kind.value} job {job_id} failed "
                    f"{consecutive_errors} times in a row"
                ) from exc
            _logger.warning(
                "Poll of %s job %s failed (%s/%s): %s",
                kind.value,
                job_id,
                consecutive_errors,
                policy.max_consecutive_errors,
                exc,
            )
            delay = policy.error_backoff_seconds
            continue

        consecutive_errors = 0
        delay = policy.interval_seconds
        if snapshot.status is not last_status:
            _logger.info(
                "%s job %s status: %s", kind.value, job_id, snapshot.status.value
            )
            last_status = snapshot.status
        if snapshot.status.is_terminal:
            return snapshot
