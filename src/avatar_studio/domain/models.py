"""Domain models for trained personal models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TrainedModelRecord:
    """Represents a trained model persisted in the database."""

    session_id: int
    model_version: str
    trigger_word: str
    training_id: str | None = None
    updated_at: datetime | None = None
