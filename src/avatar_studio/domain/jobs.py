"""Models for remote training and generation jobs."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel


class JobKind(Enum):
    """Kind of remote job, which selects the polling endpoint."""

    TRAINING = "training"
    GENERATION = "generation"


class JobStatus(Enum):
    """Normalised remote job status."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING

    @classmethod
    def from_remote(cls, raw: str) -> "JobStatus":
        """Map a remote status string; anything non-terminal is pending."""
        normalized = raw.strip().lower()
        if normalized == "cancelled":
            normalized = "canceled"
        for status in (cls.SUCCEEDED, cls.FAILED, cls.CANCELED):
            if status.value == normalized:
                return status
        return cls.PENDING


class TrainingOutput(BaseModel):
    """Output block of a finished training."""

    version: str | None = None
    weights: str | None = None


class TrainingPayload(BaseModel):
    """Training resource returned by the remote job API."""

    id: str
    status: str
    output: TrainingOutput | None = None
    error: str | None = None


class PredictionPayload(BaseModel):
    """Prediction resource returned by the remote job API."""

    id: str
    status: str
    output: list[str] | str | None = None
    error: str | None = None


@dataclass(frozen=True)
class JobSnapshot:
    """Status of a remote job at the time it was polled."""

    job_id: str
    status: JobStatus
    version: str | None = None
    outputs: list[str] = field(default_factory=list)
    error: str | None = None
