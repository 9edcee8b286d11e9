"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from avatar_studio.adapters.openai_moderation_client import OpenAIModerationClient
from avatar_studio.adapters.replicate_client import HttpxReplicateClient
from avatar_studio.adapters.supabase_model_repository import SupabaseModelRepository
from avatar_studio.adapters.supabase_storage_client import SupabaseStorageClient
from avatar_studio.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from avatar_studio.adapters.telegram_file_client import HttpxTelegramFileClient
from avatar_studio.adapters.yandex_translation_client import (
    HttpxYandexTranslationClient,
)
from avatar_studio.config import Settings, parse_channel_list
from avatar_studio.services.cleanup import IdleSessionCleaner
from avatar_studio.services.datasets import DatasetPackager
from avatar_studio.services.generation import GenerationCoordinator
from avatar_studio.services.jobs import RemoteJobGateway
from avatar_studio.services.models import ModelLifecycleService
from avatar_studio.services.moderation import ModerationService
from avatar_studio.services.notifications import Notifier
from avatar_studio.services.photos import PhotoIntakeService
from avatar_studio.services.polling import PollPolicy
from avatar_studio.services.prompts import PromptService
from avatar_studio.services.rate_limit import DailyRateGate, SlidingWindowRateGate
from avatar_studio.services.sessions import SessionRegistry
from avatar_studio.services.subscriptions import SubscriptionGate
from avatar_studio.services.tasks import BackgroundTaskRunner
from avatar_studio.services.training import ArtifactPolicy, TrainingCoordinator
from avatar_studio.services.translation import TranslationService


@dataclass
class AppContainer:
    """Holds application-wide dependencies.

    Everything here is a process-wide singleton built once at startup.
    """

    settings: Settings
    telegram_client: TelegramClient
    registry: SessionRegistry
    training_gate: SlidingWindowRateGate
    generation_gate: SlidingWindowRateGate
    generation_daily_gate: DailyRateGate
    photo_service: PhotoIntakeService
    prompt_service: PromptService
    training_coordinator: TrainingCoordinator
    generation_coordinator: GenerationCoordinator
    model_service: ModelLifecycleService
    subscription_gate: SubscriptionGate
    cleaner: IdleSessionCleaner
    task_runner: BackgroundTaskRunner
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    storage = SupabaseStorageClient(supabase_client, resolved_settings.supabase_bucket)
    model_repository = SupabaseModelRepository(supabase_client)
    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token
    )
    replicate_client = HttpxReplicateClient.create(
        api_token=resolved_settings.replicate_api_token,
        training_version=resolved_settings.replicate_training_version,
        model_owner=resolved_settings.replicate_model_owner,
        destination_slug=resolved_settings.replicate_destination_model_slug,
    )
    moderation_client = OpenAIModerationClient.create(resolved_settings.openai_api_key)
    translation_client = None
    if resolved_settings.yandex_translate_api_key:
        translation_client = HttpxYandexTranslationClient.create(
            api_key=resolved_settings.yandex_translate_api_key,
            folder_id=resolved_settings.yandex_cloud_folder_id,
        )

    registry = SessionRegistry()
    task_runner = BackgroundTaskRunner()
    notifier = Notifier(telegram_client)
    packager = DatasetPackager(storage)
    gateway = RemoteJobGateway(
        client=replicate_client,
        retry_delay_seconds=resolved_settings.remote_retry_delay_seconds,
    )
    training_coordinator = TrainingCoordinator(
        registry=registry,
        packager=packager,
        gateway=gateway,
        notifier=notifier,
        model_repository=model_repository,
        task_runner=task_runner,
        min_photos=resolved_settings.min_photos,
        poll_policy=PollPolicy(
            interval_seconds=resolved_settings.training_poll_interval_seconds,
            error_backoff_seconds=resolved_settings.training_error_backoff_seconds,
            max_consecutive_errors=resolved_settings.max_consecutive_poll_errors,
            timeout_seconds=resolved_settings.training_timeout_seconds,
        ),
        artifact_policy=ArtifactPolicy(
            preserve_on_failure=resolved_settings.preserve_failed_artifacts
        ),
        default_model_version=resolved_settings.replicate_default_model_version,
    )
    generation_coordinator = GenerationCoordinator(
        registry=registry,
        gateway=gateway,
        notifier=notifier,
        task_runner=task_runner,
        poll_policy=PollPolicy(
            interval_seconds=resolved_settings.generation_poll_interval_seconds,
            error_backoff_seconds=resolved_settings.generation_error_backoff_seconds,
            max_consecutive_errors=resolved_settings.max_consecutive_poll_errors,
            timeout_seconds=resolved_settings.generation_timeout_seconds,
        ),
        max_outputs=resolved_settings.max_generation_outputs,
    )
    prompt_service = PromptService(
        registry=registry,
        moderation=ModerationService(
            client=moderation_client,
            model=resolved_settings.openai_moderation_model,
        ),
        translation=TranslationService(client=translation_client),
    )
    photo_service = PhotoIntakeService(
        registry=registry,
        storage=storage,
        file_client=telegram_file_client,
        min_photos=resolved_settings.min_photos,
        max_photos=resolved_settings.max_photos,
    )
    model_service = ModelLifecycleService(
        registry=registry,
        repository=model_repository,
        gateway=gateway,
        packager=packager,
    )
    cleaner = IdleSessionCleaner(
        registry=registry,
        packager=packager,
        notifier=notifier,
        idle_after=timedelta(hours=resolved_settings.idle_expiration_hours),
        interval_seconds=resolved_settings.idle_cleanup_interval_hours * 3600,
    )

    async def close_resources() -> None:
        await task_runner.close()
        await telegram_client.close()
        await telegram_file_client.close()
        await replicate_client.close()
        await moderation_client.close()
        if translation_client is not None:
            await translation_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        registry=registry,
        training_gate=SlidingWindowRateGate(
            limit=resolved_settings.training_rate_limit,
            window_seconds=resolved_settings.training_rate_window_seconds,
        ),
        generation_gate=SlidingWindowRateGate(
            limit=resolved_settings.generation_rate_limit,
            window_seconds=resolved_settings.generation_rate_window_seconds,
        ),
        generation_daily_gate=DailyRateGate(
            daily_limit=resolved_settings.generation_daily_limit
        ),
        photo_service=photo_service,
        prompt_service=prompt_service,
        training_coordinator=training_coordinator,
        generation_coordinator=generation_coordinator,
        model_service=model_service,
        subscription_gate=SubscriptionGate(
            telegram_client=telegram_client,
            required_channels=parse_channel_list(resolved_settings.required_channels),
        ),
        cleaner=cleaner,
        task_runner=task_runner,
        close_resources=close_resources,
    )
