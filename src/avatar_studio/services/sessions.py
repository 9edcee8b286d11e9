"""In-memory registry of per-chat sessions.

Every operation runs under a lock scoped to one session id, so mutations of
a single session are linearised while different sessions proceed
concurrently. Reads hand out deep copies; the registry is the only holder of
live ``Session`` instances.
"""

import asyncio
import copy
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from avatar_studio.domain.prompt_flow import PromptEvent, advance_prompt
from avatar_studio.domain.sessions import (
    PhotoRecord,
    PromptDraft,
    PromptState,
    Session,
    TrainingState,
)
from avatar_studio.errors import SessionValidationError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

TRAINING_TRANSITIONS: dict[TrainingState, frozenset[TrainingState]] = {
    TrainingState.IDLE: frozenset({TrainingState.TRAINING}),
    TrainingState.TRAINING: frozenset({TrainingState.READY, TrainingState.FAILED}),
    TrainingState.FAILED: frozenset({TrainingState.IDLE}),
    TrainingState.READY: frozenset(),
}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SessionRegistry:
    """Concurrency-safe map from chat id to session state."""

    clock: Callable[[], datetime] = _utc_now
    _sessions: dict[int, Session] = field(default_factory=dict, repr=False)
    _locks: dict[int, asyncio.Lock] = field(default_factory=dict, repr=False)
    _lock_users: dict[int, int] = field(default_factory=dict, repr=False)

    async def get(self, session_id: int) -> Session:
        """Return a copy of the session, creating it on first access."""
        async with self._lock(session_id):
            return copy.deepcopy(self._ensure(session_id))

    async def update(self, session_id: int, mutate: Callable[[Session], T]) -> T:
        """Run ``mutate`` against the live session atomically.

        The return value is deep-copied so the live session never escapes.
        """
        async with self._lock(session_id):
            return copy.deepcopy(mutate(self._ensure(session_id)))

    async def touch(self, session_id: int) -> None:
        """Record inbound activity for the session."""
        async with self._lock(session_id):
            self._ensure(session_id).last_activity_at = self.clock()

    async def reset(self, session_id: int) -> Session:
        """Restore the session to defaults and return its previous state."""
        async with self._lock(session_id):
            previous = self._sessions.get(session_id) or Session()
            self._sessions[session_id] = Session()
            _logger.info("Session reset: session_id=%s", session_id)
            return previous

    async def reset_if(
        self, session_id: int, predicate: Callable[[Session], bool]
    ) -> Session | None:
        """Drop the session only if ``predicate`` holds; return the old state.

        The next access recreates it with defaults.
        """
        async with self._lock(session_id):
            session = self._sessions.get(session_id)
            if session is None or not predicate(session):
                return None
            del self._sessions[session_id]
            _logger.info("Session dropped: session_id=%s", session_id)
            return session

    async def session_ids(self) -> list[int]:
        return list(self._sessions)

    async def snapshot(self) -> dict[int, Session]:
        """Return copies of all known sessions."""
        result: dict[int, Session] = {}
        for session_id in list(self._sessions):
            async with self._lock(session_id):
                session = self._sessions.get(session_id)
                if session is not None:
                    result[session_id] = copy.deepcopy(session)
        return result

    async def append_photo(
        self, session_id: int, record: PhotoRecord, max_photos: int
    ) -> int:
        """Append a photo unless the session is full; return the new count."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            session.last_activity_at = self.clock()
            if session.training_state is TrainingState.TRAINING:
                raise SessionValidationError(
                    "Your model is training right now. "
                    "I'll message you as soon as it's ready."
                )
            if session.training_state is TrainingState.READY:
                raise SessionValidationError(
                    "Your model is already trained. Send /generate to create photos "
                    "or /model to delete it and start over."
                )
            if session.training_state is TrainingState.FAILED:
                _transition(session, TrainingState.IDLE)
                session.photos = []
            if len(session.photos) >= max_photos:
                raise SessionValidationError(
                    f"You've already uploaded {max_photos} photos. "
                    "Send /train to start training."
                )
            session.photos.append(record)
            return len(session.photos)

    async def begin_training(self, session_id: int, min_photos: int) -> Session:
        """Move an idle session with enough photos into training."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            session.last_activity_at = self.clock()
            problem = training_blocker(session, min_photos)
            if problem is not None:
                raise SessionValidationError(problem)
            _transition(session, TrainingState.TRAINING)
            session.dataset_path = None
            session.training_job_id = None
            return copy.deepcopy(session)

    async def attach_dataset(self, session_id: int, dataset_path: str) -> None:
        """Record the packaged dataset owned by the running training."""
        async with self._lock(session_id):
            session = self._require_training(session_id)
            session.dataset_path = dataset_path

    async def attach_training_job(self, session_id: int, job_id: str) -> None:
        """Record the remote training job id."""
        async with self._lock(session_id):
            session = self._require_training(session_id)
            session.training_job_id = job_id

    async def mark_ready(
        self, session_id: int, model_version: str, trigger_word: str
    ) -> Session:
        """Finish training successfully; return the state before the change."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            previous = copy.deepcopy(session)
            _transition(session, TrainingState.READY)
            session.model_version = model_version
            session.trigger_word = trigger_word
            session.dataset_path = None
            session.photos = []
            session.prompt = PromptDraft()
            session.prompt_state = PromptState.IDLE
            return previous

    async def mark_failed(self, session_id: int) -> Session | None:
        """Finish training unsuccessfully.

        Returns the state before the change, or None when the session was no
        longer training (for example after a reset).
        """
        async with self._lock(session_id):
            session = self._ensure(session_id)
            if session.training_state is not TrainingState.TRAINING:
                return None
            previous = copy.deepcopy(session)
            _transition(session, TrainingState.FAILED)
            session.dataset_path = None
            return previous

    async def restore_model(
        self,
        session_id: int,
        model_version: str,
        trigger_word: str,
        training_id: str | None = None,
    ) -> bool:
        """Load a durable model into a cold session; return True if applied."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            if session.training_state is not TrainingState.IDLE or session.photos:
                return False
            session.training_state = TrainingState.READY
            session.model_version = model_version
            session.trigger_word = trigger_word
            session.training_job_id = training_id
            return True

    async def apply_prompt_event(
        self, session_id: int, event: PromptEvent, value: object = None
    ) -> Session:
        """Advance the prompt flow of a ready session."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            session.last_activity_at = self.clock()
            if session.training_state is not TrainingState.READY:
                raise SessionValidationError(
                    "Your model isn't ready yet. Upload photos and send /train first."
                )
            advance_prompt(session, event, value)
            return copy.deepcopy(session)

    async def set_translated_prompt(self, session_id: int, text: str) -> None:
        """Store the English rendition of the assembled prompt."""
        async with self._lock(session_id):
            session = self._ensure(session_id)
            if session.prompt_state is PromptState.READY_TO_GENERATE:
                session.prompt.translated_prompt = text

    async def begin_generation(self, session_id: int) -> Session:
        """Accept a generation and clear prompt fields.

        Returns the session as it was on submission, including the draft.
        """
        async with self._lock(session_id):
            session = self._ensure(session_id)
            session.last_activity_at = self.clock()
            problem = generation_blocker(session)
            if problem is not None:
                raise SessionValidationError(problem)
            submitted = copy.deepcopy(session)
            session.prompt = PromptDraft()
            session.prompt_state = PromptState.IDLE
            return submitted

    @asynccontextmanager
    async def _lock(self, session_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.pop(session_id) - 1
            if users:
                self._lock_users[session_id] = users
            elif session_id not in self._sessions:
                # Nobody holds or waits on the lock of a dropped session.
                del self._locks[session_id]

    def _ensure(self, session_id: int) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session()
            self._sessions[session_id] = session
        return session

    def _require_training(self, session_id: int) -> Session:
        session = self._ensure(session_id)
        if session.training_state is not TrainingState.TRAINING:
            raise SessionValidationError("Training was cancelled.")
        return session


def _transition(session: Session, target: TrainingState) -> None:
    if target not in TRAINING_TRANSITIONS[session.training_state]:
        raise SessionValidationError(
            f"Can't move from {session.training_state.value} to {target.value}."
        )
    session.training_state = target


def training_blocker(session: Session, min_photos: int) -> str | None:
    """Return why the session can't start training, or None if it can."""
    if session.training_state is TrainingState.TRAINING:
        return "Training is already running."
    if session.training_state is TrainingState.READY:
        return "Your model is already trained. Send /generate to use it."
    if session.training_state is TrainingState.FAILED:
        return "The last training attempt failed. Please upload a fresh set of photos."
    if len(session.photos) < min_photos:
        return (
            f"I need at least {min_photos} photos to train, "
            f"you've sent {len(session.photos)}."
        )
    return None


def generation_blocker(session: Session) -> str | None:
    """Return why the session can't generate, or None if it can."""
    if session.training_state is not TrainingState.READY or not session.model_version:
        return "Your model isn't ready yet. Upload photos and send /train first."
    if session.prompt_state is not PromptState.READY_TO_GENERATE:
        return "Finish describing the photo first. Send /generate to start."
    return None
