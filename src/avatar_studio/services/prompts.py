"""Chat dialogue that assembles a generation prompt step by step."""

import logging
from dataclasses import dataclass
from enum import Enum

from avatar_studio.domain.prompt_flow import PromptEvent, compose_prompt
from avatar_studio.domain.prompts import (
    CATEGORY_LABELS,
    CATEGORY_OPTIONS,
    STYLE_LABELS,
    PhotoStyle,
    PromptCategory,
    SubjectGender,
    find_option,
    option_label,
)
from avatar_studio.domain.sessions import PromptState, Session, TrainingState
from avatar_studio.errors import SessionValidationError
from avatar_studio.services.moderation import ModerationService
from avatar_studio.services.sessions import SessionRegistry
from avatar_studio.services.translation import TranslationService

_logger = logging.getLogger(__name__)

CALLBACK_PREFIX = "p:"
GENERATE_CALLBACK = "p:generate"

FLAGGED_MESSAGE = (
    "That description breaks the content rules, so I've reset your session. "
    "Send /generate to start again."
)

_TEXT_EVENTS: dict[PromptState, PromptEvent] = {
    PromptState.STYLE_SELECTED: PromptEvent.ENTER_LOCATION,
    PromptState.LOCATION_SELECTED: PromptEvent.ENTER_CLOTHING,
    PromptState.CLOTHING_SELECTED: PromptEvent.ENTER_DETAILS,
    PromptState.EDITING_LOCATION: PromptEvent.ENTER_LOCATION,
    PromptState.EDITING_CLOTHING: PromptEvent.ENTER_CLOTHING,
    PromptState.EDITING_DETAILS: PromptEvent.ENTER_DETAILS,
}

_EDIT_EVENTS = {
    "location": PromptEvent.EDIT_LOCATION,
    "clothing": PromptEvent.EDIT_CLOTHING,
    "details": PromptEvent.EDIT_DETAILS,
}

_GENDER_LABELS = {SubjectGender.FEMALE: "Woman", SubjectGender.MALE: "Man"}


@dataclass
class BotReply:
    """Represents the next user-facing message."""

    text: str
    reply_markup: dict | None = None


@dataclass
class PromptService:
    """Map chat input onto prompt events and render the next question."""

    registry: SessionRegistry
    moderation: ModerationService
    translation: TranslationService

    async def start(self, session_id: int) -> BotReply:
        """Begin a fresh prompt for a ready session."""
        session = await self.registry.apply_prompt_event(session_id, PromptEvent.CANCEL)
        return await self._reply_for(session_id, session)

    async def cancel(self, session_id: int) -> BotReply:
        """Drop the prompt being assembled."""
        await self.registry.apply_prompt_event(session_id, PromptEvent.CANCEL)
        return BotReply("Prompt cleared. Send /generate to describe a new photo.")

    async def handle_text(self, session_id: int, text: str) -> BotReply | None:
        """Apply free text if the prompt flow is waiting for it."""
        session = await self.registry.get(session_id)
        if session.training_state is not TrainingState.READY:
            return None
        event = _TEXT_EVENTS.get(session.prompt_state)
        if event is None:
            return None
        if not await self.moderation.is_allowed(session_id, text):
            await self.registry.reset(session_id)
            return BotReply(FLAGGED_MESSAGE)
        session = await self.registry.apply_prompt_event(session_id, event, text)
        return await self._reply_for(session_id, session)

    async def handle_action(self, session_id: int, data: str) -> BotReply | None:
        """Apply a keyboard action; None when the data isn't a prompt action."""
        if not data.startswith(CALLBACK_PREFIX) or data == GENERATE_CALLBACK:
            return None
        event, value = _parse_action(data[len(CALLBACK_PREFIX) :])
        if event is PromptEvent.PICK_OPTION:
            current = await self.registry.get(session_id)
            category = current.prompt.active_category
            value = find_option(category, str(value)) if category else None
            if value is None:
                raise SessionValidationError("Please pick one of the offered options.")
        session = await self.registry.apply_prompt_event(session_id, event, value)
        if event is PromptEvent.CANCEL:
            return BotReply("Prompt cleared. Send /generate to describe a new photo.")
        return await self._reply_for(session_id, session)

    async def _reply_for(self, session_id: int, session: Session) -> BotReply:
        draft = session.prompt
        state = session.prompt_state
        if state is PromptState.IDLE:
            return BotReply(
                "Pick a style for your photo. You can also set who is in it.",
                _style_keyboard(session),
            )
        if state is PromptState.STYLE_SELECTED:
            style = STYLE_LABELS[draft.style] if draft.style else "Custom"
            return BotReply(
                f"Style: {style}. Where should the photo be taken? "
                "Reply with a place, e.g. a cafe in Paris."
            )
        if state in (PromptState.LOCATION_SELECTED, PromptState.EDITING_CLOTHING):
            return BotReply("What should you be wearing? Reply with a short description.")
        if state is PromptState.EDITING_LOCATION:
            return BotReply("Where should the photo be taken? Reply with a place.")
        if state in (PromptState.CLOTHING_SELECTED, PromptState.EDITING_DETAILS):
            return BotReply(
                "Anything else to add? Reply with details or tap Skip.",
                _inline_keyboard([("Skip", "p:skip")]),
            )
        if state is PromptState.SELECTING_ADDITIONAL_PARAMS:
            return BotReply(
                "Fine-tune the shot or tap Done.", _categories_keyboard(session)
            )
        if state is PromptState.SELECTING_ADDITIONAL_CATEGORIES:
            category = draft.active_category
            if category is None:
                return BotReply(
                    "Fine-tune the shot or tap Done.", _categories_keyboard(session)
                )
            return BotReply(
                f"{CATEGORY_LABELS[category]}:", _options_keyboard(category)
            )
        return await self._summary(session_id, session)

    async def _summary(self, session_id: int, session: Session) -> BotReply:
        draft = session.prompt
        description = compose_prompt(draft)
        if draft.translated_prompt is None:
            translated = await self.translation.to_english(description)
            await self.registry.set_translated_prompt(session_id, translated)
        lines = ["Here's your photo:"]
        if draft.style is not None:
            lines.append(f"Style: {STYLE_LABELS[draft.style]}")
        if draft.gender is not None:
            lines.append(f"Subject: {_GENDER_LABELS[draft.gender]}")
        lines.append(f"Location: {draft.location}")
        lines.append(f"Clothing: {draft.clothing}")
        if draft.additional_details:
            lines.append(f"Details: {draft.additional_details}")
        for category in PromptCategory:
            option = draft.choices.get(category)
            if option is not None:
                lines.append(f"{CATEGORY_LABELS[category]}: {option_label(option)}")
        return BotReply(
            "\n".join(lines),
            _inline_keyboard(
                [
                    ("Generate", GENERATE_CALLBACK),
                    ("Edit location", "p:edit:location"),
                    ("Edit clothing", "p:edit:clothing"),
                    ("Edit details", "p:edit:details"),
                    ("Cancel", "p:cancel"),
                ]
            ),
        )


def _parse_action(action: str) -> tuple[PromptEvent, object]:
    kind, _, value = action.partition(":")
    if kind == "style":
        return PromptEvent.CHOOSE_STYLE, _member(PhotoStyle, value)
    if kind == "gender":
        return PromptEvent.SET_GENDER, _member(SubjectGender, value)
    if kind == "cat":
        return PromptEvent.OPEN_CATEGORY, _member(PromptCategory, value)
    if kind == "opt":
        return PromptEvent.PICK_OPTION, value
    if kind == "edit" and value in _EDIT_EVENTS:
        return _EDIT_EVENTS[value], None
    if kind == "skip":
        return PromptEvent.SKIP_DETAILS, None
    if kind == "finish":
        return PromptEvent.FINISH, None
    if kind == "cancel":
        return PromptEvent.CANCEL, None
    raise SessionValidationError("Please pick one of the offered options.")


def _member(enum_type: type[Enum], name: str) -> Enum:
    member = enum_type.__members__.get(name)
    if member is None:
        raise SessionValidationError("Please pick one of the offered options.")
    return member


def _inline_keyboard(buttons: list[tuple[str, str]]) -> dict:
    """Build a Telegram inline keyboard payload."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": callback}] for label, callback in buttons
        ]
    }


def _style_keyboard(session: Session) -> dict:
    rows: list[list[dict[str, str]]] = [
        [
            {
                "text": STYLE_LABELS[style],
                "callback_data": f"p:style:{style.name}",
            }
        ]
        for style in PhotoStyle
    ]
    rows.append(
        [
            {
                "text": ("✓ " if session.prompt.gender is gender else "") + label,
                "callback_data": f"p:gender:{gender.name}",
            }
            for gender, label in _GENDER_LABELS.items()
        ]
    )
    return {"inline_keyboard": rows}


def _categories_keyboard(session: Session) -> dict:
    buttons = []
    for category in PromptCategory:
        label = CATEGORY_LABELS[category]
        option = session.prompt.choices.get(category)
        if option is not None:
            label = f"{label}: {option_label(option)}"
        buttons.append((label, f"p:cat:{category.name}"))
    buttons.append(("Done", "p:finish"))
    return _inline_keyboard(buttons)


def _options_keyboard(category: PromptCategory) -> dict:
    return _inline_keyboard(
        [
            (option_label(option), f"p:opt:{option.name}")
            for option in CATEGORY_OPTIONS[category]
        ]
    )
