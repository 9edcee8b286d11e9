"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from avatar_studio.api.admin import router as admin_router
from avatar_studio.api.telegram_models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
)
from avatar_studio.app_logging import configure_logging
from avatar_studio.containers import AppContainer
from avatar_studio.domain.sessions import TrainingState
from avatar_studio.errors import SessionValidationError, StorageError
from avatar_studio.services.prompts import GENERATE_CALLBACK
from avatar_studio.services.sessions import generation_blocker, training_blocker
from avatar_studio.services.subscriptions import subscription_message
from avatar_studio.telegram_commands import (
    CHAT_MENU_BUTTON,
    BotCommand,
    parse_command,
    telegram_commands,
)

logger = logging.getLogger(__name__)

DELETE_MODEL_CALLBACK = "m:delete"

WELCOME_MESSAGE = (
    "Hi! I turn your selfies into a personal photo model.\n"
    "1. Send me {min_photos} to {max_photos} clear photos of yourself, "
    "one face per photo.\n"
    "2. Send /train and wait a few minutes.\n"
    "3. Send /generate to describe any photo you like."
)
HELP_MESSAGE = (
    "Tips for good results:\n"
    "- Use well-lit photos where your face is clearly visible.\n"
    "- Mix close-ups and half-body shots, avoid sunglasses and group photos.\n"
    "- After training, /generate walks you through style, place and outfit.\n"
    "- /model shows your model and lets you delete it."
)
NO_MODEL_MESSAGE = (
    "You don't have a trained model yet. "
    "Send {min_photos}-{max_photos} photos of yourself, then /train."
)
TRAINING_ACCEPTED_MESSAGE = "Got it! Packing your photos and starting training..."
TRAINING_LIMITED_MESSAGE = (
    "You've already started a training recently. Please try again later."
)
GENERATION_LIMITED_MESSAGE = (
    "You're generating too fast. Please wait a minute and try again."
)
GENERATION_DAILY_LIMITED_MESSAGE = (
    "You've reached today's generation limit. Come back tomorrow!"
)
GENERATION_ACCEPTED_MESSAGE = "Your photo is on its way!"
MODEL_DELETED_MESSAGE = (
    "Your model and all its files are deleted. Send new photos to start again."
)
UNSUPPORTED_MESSAGE = "Send me photos of yourself, or /help to see what I can do."
PHOTO_ERROR_MESSAGE = "I couldn't save that photo. Please send it again."
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again in a moment."


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        cleanup_task = asyncio.create_task(state_container.cleaner.run_forever())
        yield
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(update: TelegramUpdate, request: Request) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        if update.callback_query:
            await _handle_callback(state_container, update.callback_query)
        elif update.message:
            await _handle_message(state_container, update.message)
        return {"status": "ok"}

    return app


async def _handle_message(container: AppContainer, message: TelegramMessage) -> None:
    chat_id = message.chat.id
    await container.registry.touch(chat_id)
    try:
        await container.model_service.ensure_loaded(chat_id)
        await _dispatch_message(container, message)
    except SessionValidationError as exc:
        await _reply(container, chat_id, exc.user_message)
    except StorageError:
        logger.exception("Failed to store photo for chat_id=%s", chat_id)
        await _reply(container, chat_id, PHOTO_ERROR_MESSAGE)
    except Exception:
        logger.exception("Failed to handle message for chat_id=%s", chat_id)
        await _reply(container, chat_id, GENERIC_ERROR_MESSAGE)


async def _dispatch_message(  # noqa: PLR0911
    container: AppContainer, message: TelegramMessage
) -> None:
    chat_id = message.chat.id
    settings = container.settings
    command = parse_command(message.text or "")

    if command is BotCommand.START:
        await _reply(
            container,
            chat_id,
            WELCOME_MESSAGE.format(
                min_photos=settings.min_photos, max_photos=settings.max_photos
            ),
        )
        return
    if command is BotCommand.HELP:
        await _reply(container, chat_id, HELP_MESSAGE)
        return
    if command is BotCommand.TRAIN:
        await _start_training(container, chat_id, message.from_user.id)
        return
    if command is BotCommand.GENERATE:
        reply = await container.prompt_service.start(chat_id)
        await _reply(container, chat_id, reply.text, reply.reply_markup)
        return
    if command is BotCommand.MODEL:
        await _show_model(container, chat_id)
        return
    if command is BotCommand.CANCEL:
        reply = await container.prompt_service.cancel(chat_id)
        await _reply(container, chat_id, reply.text)
        return

    file_id = _photo_file_id(message)
    if file_id is not None:
        text = await container.photo_service.accept(chat_id, file_id)
        await _reply(container, chat_id, text)
        return

    if message.text:
        reply = await container.prompt_service.handle_text(chat_id, message.text)
        if reply is not None:
            await _reply(container, chat_id, reply.text, reply.reply_markup)
            return
    await _reply(container, chat_id, UNSUPPORTED_MESSAGE)


async def _handle_callback(
    container: AppContainer, callback: TelegramCallbackQuery
) -> None:
    await container.telegram_client.answer_callback_query(callback.id)
    chat_id = callback.message.chat.id if callback.message else callback.from_user.id
    data = callback.data or ""
    await container.registry.touch(chat_id)
    try:
        await container.model_service.ensure_loaded(chat_id)
        if data == GENERATE_CALLBACK:
            await _start_generation(container, chat_id, callback.from_user.id)
        elif data == DELETE_MODEL_CALLBACK:
            await container.model_service.delete_model(chat_id)
            await _reply(container, chat_id, MODEL_DELETED_MESSAGE)
        else:
            reply = await container.prompt_service.handle_action(chat_id, data)
            if reply is not None:
                await _reply(container, chat_id, reply.text, reply.reply_markup)
    except SessionValidationError as exc:
        await _reply(container, chat_id, exc.user_message)
    except Exception:
        logger.exception(
            "Failed to handle callback %r for chat_id=%s", data, chat_id
        )
        await _reply(container, chat_id, GENERIC_ERROR_MESSAGE)


async def _start_training(container: AppContainer, chat_id: int, user_id: int) -> None:
    """Validate, gate and hand the session to the training coordinator."""
    allowed, channels = await container.subscription_gate.check_access(user_id)
    if not allowed:
        await _reply(container, chat_id, subscription_message(channels))
        return
    session = await container.registry.get(chat_id)
    problem = training_blocker(session, container.settings.min_photos)
    if problem is not None:
        await _reply(container, chat_id, problem)
        return
    if not container.training_gate.try_acquire(chat_id):
        await _reply(container, chat_id, TRAINING_LIMITED_MESSAGE)
        return
    try:
        await container.training_coordinator.start(chat_id)
    except SessionValidationError:
        # The session changed after the pre-check; the slot was never used.
        container.training_gate.release(chat_id)
        raise
    await _reply(container, chat_id, TRAINING_ACCEPTED_MESSAGE)


async def _start_generation(
    container: AppContainer, chat_id: int, user_id: int
) -> None:
    """Validate, gate and hand the prompt to the generation coordinator."""
    allowed, channels = await container.subscription_gate.check_access(user_id)
    if not allowed:
        await _reply(container, chat_id, subscription_message(channels))
        return
    session = await container.registry.get(chat_id)
    problem = generation_blocker(session)
    if problem is not None:
        await _reply(container, chat_id, problem)
        return
    # Check the daily cap first so a denial there doesn't burn a window slot.
    if container.generation_daily_gate.remaining(chat_id) <= 0:
        await _reply(container, chat_id, GENERATION_DAILY_LIMITED_MESSAGE)
        return
    if not container.generation_gate.try_acquire(chat_id):
        await _reply(container, chat_id, GENERATION_LIMITED_MESSAGE)
        return
    container.generation_daily_gate.try_acquire(chat_id)
    try:
        await container.generation_coordinator.start(chat_id)
    except SessionValidationError:
        container.generation_gate.release(chat_id)
        container.generation_daily_gate.release(chat_id)
        raise
    await _reply(container, chat_id, GENERATION_ACCEPTED_MESSAGE)


async def _show_model(container: AppContainer, chat_id: int) -> None:
    session = await container.registry.get(chat_id)
    settings = container.settings
    if session.training_state is TrainingState.TRAINING:
        await _reply(
            container,
            chat_id,
            "Your model is training right now. I'll message you when it's ready.",
        )
        return
    if session.training_state is not TrainingState.READY:
        await _reply(
            container,
            chat_id,
            NO_MODEL_MESSAGE.format(
                min_photos=settings.min_photos, max_photos=settings.max_photos
            ),
        )
        return
    await _reply(
        container,
        chat_id,
        "Your model is ready. Send /generate to create photos.\n"
        "Deleting it removes the model and every stored file.",
        {
            "inline_keyboard": [
                [{"text": "Delete model", "callback_data": DELETE_MODEL_CALLBACK}]
            ]
        },
    )


async def _reply(
    container: AppContainer,
    chat_id: int,
    text: str,
    reply_markup: dict | None = None,
) -> None:
    await container.telegram_client.send_message(
        chat_id=chat_id, text=text, reply_markup=reply_markup
    )


def _photo_file_id(message: TelegramMessage) -> str | None:
    """Return the file id of an uploaded photo or image document."""
    largest = message.largest_photo()
    if largest is not None:
        return largest.file_id
    if message.document is not None and message.document.is_image:
        return message.document.file_id
    return None
