"""Domain models for per-chat photo sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from avatar_studio.domain.prompts import (
    PhotoStyle,
    PromptCategory,
    SubjectGender,
)


class TrainingState(Enum):
    """Lifecycle of the personalised model for a session."""

    IDLE = "idle"
    TRAINING = "training"
    READY = "ready"
    FAILED = "failed"


class PromptState(Enum):
    """Step of the incremental prompt assembly flow."""

    IDLE = "idle"
    STYLE_SELECTED = "style_selected"
    LOCATION_SELECTED = "location_selected"
    CLOTHING_SELECTED = "clothing_selected"
    SELECTING_ADDITIONAL_PARAMS = "selecting_additional_params"
    SELECTING_ADDITIONAL_CATEGORIES = "selecting_additional_categories"
    READY_TO_GENERATE = "ready_to_generate"
    EDITING_LOCATION = "editing_location"
    EDITING_CLOTHING = "editing_clothing"
    EDITING_DETAILS = "editing_details"


@dataclass(frozen=True)
class PhotoRecord:
    """Uploaded source photo kept in blob storage."""

    storage_path: str
    uploaded_at: datetime


@dataclass
class PromptDraft:
    """Prompt fragments collected so far."""

    style: PhotoStyle | None = None
    gender: SubjectGender | None = None
    location: str | None = None
    clothing: str | None = None
    additional_details: str | None = None
    choices: dict[PromptCategory, Enum] = field(default_factory=dict)
    selected_categories: set[PromptCategory] = field(default_factory=set)
    active_category: PromptCategory | None = None
    translated_prompt: str | None = None


@dataclass
class Session:
    """Accumulated state of one chat, owned by the session registry."""

    photos: list[PhotoRecord] = field(default_factory=list)
    training_state: TrainingState = TrainingState.IDLE
    dataset_path: str | None = None
    training_job_id: str | None = None
    model_version: str | None = None
    trigger_word: str | None = None
    prompt_state: PromptState = PromptState.IDLE
    prompt: PromptDraft = field(default_factory=PromptDraft)
    last_activity_at: datetime | None = None
