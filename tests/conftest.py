import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from avatar_studio.adapters.telegram_client import TelegramClient
from avatar_studio.config import Settings
from avatar_studio.containers import AppContainer
from avatar_studio.domain.jobs import JobKind, JobSnapshot, JobStatus
from avatar_studio.domain.models import TrainedModelRecord
from avatar_studio.domain.sessions import PhotoRecord
from avatar_studio.services.cleanup import IdleSessionCleaner
from avatar_studio.services.datasets import BlobStorage, DatasetPackager
from avatar_studio.services.generation import GenerationCoordinator
from avatar_studio.services.jobs import JobGateway
from avatar_studio.services.models import (
    ModelLifecycleService,
    TrainedModelRepository,
)
from avatar_studio.services.moderation import (
    ModerationClient,
    ModerationService,
    ModerationVerdict,
)
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.photos import PhotoIntakeService
from avatar_studio.services.polling import PollPolicy
from avatar_studio.services.prompts import PromptService
from avatar_studio.services.rate_limit import DailyRateGate, SlidingWindowRateGate
from avatar_studio.services.sessions import SessionRegistry
from avatar_studio.services.subscriptions import SubscriptionGate
from avatar_studio.services.tasks import BackgroundTaskRunner
from avatar_studio.services.training import TrainingCoordinator
from avatar_studio.services.translation import TranslationClient, TranslationService


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    photos: list[tuple[int, str]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    member_statuses: dict[tuple[str, int], str] = field(default_factory=dict)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    fail_sends: bool = False

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> None:
        if self.fail_sends:
            raise RuntimeError("telegram down")
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)

    async def send_photo(
        self, chat_id: int, photo_url: str, caption: str | None = None
    ) -> None:
        if self.fail_sends:
            raise RuntimeError("telegram down")
        self.photos.append((chat_id, photo_url))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        self.callbacks.append((callback_query_id, text))

    async def get_chat_member_status(self, chat_id: str, user_id: int) -> str:
        return self.member_statuses.get((chat_id, user_id), "member")

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    def texts_for(self, chat_id: int) -> list[str]:
        return [text for target, text in self.messages if target == chat_id]


@dataclass
class FakeTelegramFileClient:
    downloads: list[str] = field(default_factory=list)

    async def download_file_bytes(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        return f"image-{file_id}".encode()


@dataclass
class FakeBlobStorage(BlobStorage):
    """In-memory bucket."""

    objects: dict[str, bytes] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    unreadable: set[str] = field(default_factory=set)
    fail_uploads: bool = False
    fail_deletes: bool = False

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_uploads:
            raise RuntimeError("upload failed")
        self.objects[path] = data
        return path

    async def download(self, path: str) -> bytes:
        if path in self.unreadable or path not in self.objects:
            raise RuntimeError(f"missing {path}")
        return self.objects[path]

    async def delete(self, path: str) -> None:
        if self.fail_deletes:
            raise RuntimeError("delete failed")
        self.deleted.append(path)
        self.objects.pop(path, None)

    async def signed_url(self, path: str, expires_in: int) -> str:
        return f"https://storage.test/{path}?expires={expires_in}"


@dataclass
class FakeJobGateway(JobGateway):
    """Scripted remote job gateway.

    Each poll pops the next scripted item for the job kind; exceptions are
    raised, snapshots returned. The last item repeats once the script runs
    out.
    """

    training_script: list[JobSnapshot | Exception] = field(default_factory=list)
    generation_script: list[JobSnapshot | Exception] = field(default_factory=list)
    submitted_trainings: list[tuple[str, str]] = field(default_factory=list)
    submitted_generations: list[tuple[str, str, str | None]] = field(
        default_factory=list
    )
    deleted_versions: list[str] = field(default_factory=list)
    polls: list[tuple[str, JobKind]] = field(default_factory=list)
    fail_submit: Exception | None = None

    async def submit_training(self, dataset_url: str, concept: str) -> str:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted_trainings.append((dataset_url, concept))
        return f"train-{len(self.submitted_trainings)}"

    async def submit_generation(
        self,
        model_version: str,
        prompt: str,
        negative_prompt: str | None = None,
        num_outputs: int = 1,
    ) -> str:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted_generations.append((model_version, prompt, negative_prompt))
        return f"pred-{len(self.submitted_generations)}"

    async def poll(self, job_id: str, kind: JobKind) -> JobSnapshot:
        self.polls.append((job_id, kind))
        script = (
            self.training_script
            if kind is JobKind.TRAINING
            else self.generation_script
        )
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def delete_artifact(self, version_id: str) -> None:
        self.deleted_versions.append(version_id)


@dataclass
class HungJobGateway(FakeJobGateway):
    """Gateway whose polls, and optionally submissions, never return."""

    hang_submit: bool = False

    async def submit_training(self, dataset_url: str, concept: str) -> str:
        if self.hang_submit:
            await asyncio.sleep(3600)
        return await super().submit_training(dataset_url, concept)

    async def poll(self, job_id: str, kind: JobKind) -> JobSnapshot:
        self.polls.append((job_id, kind))
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


@dataclass
class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class InMemoryModelRepository(TrainedModelRepository):
    records: dict[int, TrainedModelRecord] = field(default_factory=dict)
    fail_upserts: bool = False

    async def upsert(self, record: TrainedModelRecord) -> None:
        if self.fail_upserts:
            raise RuntimeError("database unavailable")
        self.records[record.session_id] = record

    async def find_by_session_id(self, session_id: int) -> TrainedModelRecord | None:
        return self.records.get(session_id)

    async def delete_by_session_id(self, session_id: int) -> None:
        self.records.pop(session_id, None)


@dataclass
class FakeModerationClient(ModerationClient):
    banned_words: set[str] = field(default_factory=lambda: {"forbidden"})
    checked: list[str] = field(default_factory=list)

    async def moderate(self, *, model: str, text: str) -> ModerationVerdict:
        self.checked.append(text)
        flagged = any(word in text.lower() for word in self.banned_words)
        return ModerationVerdict(
            flagged=flagged, categories=["violence"] if flagged else []
        )


@dataclass
class FakeTranslationClient(TranslationClient):
    calls: list[str] = field(default_factory=list)

    async def translate(self, text: str, target_language: str) -> str:
        self.calls.append(text)
        return f"[{target_language}] {text}"


class RecordingTaskRunner(BackgroundTaskRunner):
    """Task runner that records submissions without running them."""

    def __init__(self) -> None:
        super().__init__()
        self.submitted: list[str] = []

    def submit(self, name: str, coro: Coroutine[Any, Any, None]) -> Any:
        self.submitted.append(name)
        coro.close()
        return None


def succeeded_training(version: str = "v123") -> JobSnapshot:
    return JobSnapshot(job_id="train-1", status=JobStatus.SUCCEEDED, version=version)


def pending(job_id: str = "train-1") -> JobSnapshot:
    return JobSnapshot(job_id=job_id, status=JobStatus.PENDING)


async def add_photos(
    registry: SessionRegistry,
    storage: FakeBlobStorage,
    session_id: int,
    count: int,
) -> list[PhotoRecord]:
    """Store ``count`` photos and append them to the session."""
    records = []
    for index in range(count):
        path = f"photos/{session_id}/{index}.jpg"
        storage.objects[path] = f"photo-{index}".encode()
        record = PhotoRecord(storage_path=path, uploaded_at=datetime.now(tz=UTC))
        await registry.append_photo(session_id, record, max_photos=10)
        records.append(record)
    return records


def fast_training_policy() -> PollPolicy:
    return PollPolicy(
        interval_seconds=10,
        error_backoff_seconds=5,
        max_consecutive_errors=3,
        timeout_seconds=600,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        admin_token="admin-token",
        replicate_api_token="replicate-token",
        replicate_training_version="ostris/flux-dev-lora-trainer:abc123",
        replicate_model_owner="studio",
        replicate_destination_model_slug="avatars",
        openai_api_key="openai-key",
    )


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def storage() -> FakeBlobStorage:
    return FakeBlobStorage()


@pytest.fixture
def gateway() -> FakeJobGateway:
    return FakeJobGateway()


@pytest.fixture
def model_repository() -> InMemoryModelRepository:
    return InMemoryModelRepository()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def training_coordinator(
    registry: SessionRegistry,
    storage: FakeBlobStorage,
    gateway: FakeJobGateway,
    telegram_client: FakeTelegramClient,
    model_repository: InMemoryModelRepository,
    clock: FakeClock,
) -> TrainingCoordinator:
    return TrainingCoordinator(
        registry=registry,
        packager=DatasetPackager(storage),
        gateway=gateway,
        notifier=Notifier(telegram_client),
        model_repository=model_repository,
        task_runner=BackgroundTaskRunner(),
        poll_policy=fast_training_policy(),
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def generation_coordinator(
    registry: SessionRegistry,
    gateway: FakeJobGateway,
    telegram_client: FakeTelegramClient,
    clock: FakeClock,
) -> GenerationCoordinator:
    return GenerationCoordinator(
        registry=registry,
        gateway=gateway,
        notifier=Notifier(telegram_client),
        task_runner=BackgroundTaskRunner(),
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def container(
    settings: Settings,
    telegram_client: FakeTelegramClient,
    storage: FakeBlobStorage,
    gateway: FakeJobGateway,
    model_repository: InMemoryModelRepository,
    registry: SessionRegistry,
) -> AppContainer:
    task_runner = RecordingTaskRunner()
    notifier = Notifier(telegram_client)
    packager = DatasetPackager(storage)
    training_coordinator = TrainingCoordinator(
        registry=registry,
        packager=packager,
        gateway=gateway,
        notifier=notifier,
        model_repository=model_repository,
        task_runner=task_runner,
        min_photos=settings.min_photos,
    )
    generation_coordinator = GenerationCoordinator(
        registry=registry,
        gateway=gateway,
        notifier=notifier,
        task_runner=task_runner,
    )
    prompt_service = PromptService(
        registry=registry,
        moderation=ModerationService(
            client=FakeModerationClient(), model=settings.openai_moderation_model
        ),
        translation=TranslationService(),
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        registry=registry,
        training_gate=SlidingWindowRateGate(limit=1, window_seconds=3600),
        generation_gate=SlidingWindowRateGate(limit=2, window_seconds=60),
        generation_daily_gate=DailyRateGate(daily_limit=50),
        photo_service=PhotoIntakeService(
            registry=registry,
            storage=storage,
            file_client=FakeTelegramFileClient(),
        ),
        prompt_service=prompt_service,
        training_coordinator=training_coordinator,
        generation_coordinator=generation_coordinator,
        model_service=ModelLifecycleService(
            registry=registry,
            repository=model_repository,
            gateway=gateway,
            packager=packager,
        ),
        subscription_gate=SubscriptionGate(telegram_client=telegram_client),
        cleaner=IdleSessionCleaner(
            registry=registry,
            packager=packager,
            notifier=notifier,
            idle_after=timedelta(hours=24),
        ),
        task_runner=task_runner,
        close_resources=close_resources,
    )
