"""Prompt assembly state machine and prompt rendering."""

from enum import Enum

from avatar_studio.domain.prompts import (
    BASE_NEGATIVE_PROMPT,
    CATEGORY_OPTIONS,
    STYLE_FRAGMENTS,
    STYLE_NEGATIVES,
    PhotoStyle,
    PromptCategory,
    SubjectGender,
)
from avatar_studio.domain.sessions import PromptDraft, PromptState, Session
from avatar_studio.errors import SessionValidationError


class PromptEvent(Enum):
    """User actions that move the prompt flow forward."""

    CHOOSE_STYLE = "choose_style"
    SET_GENDER = "set_gender"
    ENTER_LOCATION = "enter_location"
    ENTER_CLOTHING = "enter_clothing"
    ENTER_DETAILS = "enter_details"
    SKIP_DETAILS = "skip_details"
    OPEN_CATEGORY = "open_category"
    PICK_OPTION = "pick_option"
    FINISH = "finish"
    EDIT_LOCATION = "edit_location"
    EDIT_CLOTHING = "edit_clothing"
    EDIT_DETAILS = "edit_details"
    CANCEL = "cancel"


_S = PromptState
_E = PromptEvent

PROMPT_TRANSITIONS: dict[tuple[PromptState, PromptEvent], PromptState] = {
    (_S.IDLE, _E.CHOOSE_STYLE): _S.STYLE_SELECTED,
    (_S.IDLE, _E.SET_GENDER): _S.IDLE,
    (_S.STYLE_SELECTED, _E.SET_GENDER): _S.STYLE_SELECTED,
    (_S.STYLE_SELECTED, _E.ENTER_LOCATION): _S.LOCATION_SELECTED,
    (_S.LOCATION_SELECTED, _E.ENTER_CLOTHING): _S.CLOTHING_SELECTED,
    (_S.CLOTHING_SELECTED, _E.ENTER_DETAILS): _S.SELECTING_ADDITIONAL_PARAMS,
    (_S.CLOTHING_SELECTED, _E.SKIP_DETAILS): _S.SELECTING_ADDITIONAL_PARAMS,
    (
        _S.SELECTING_ADDITIONAL_PARAMS,
        _E.OPEN_CATEGORY,
    ): _S.SELECTING_ADDITIONAL_CATEGORIES,
    (
        _S.SELECTING_ADDITIONAL_CATEGORIES,
        _E.PICK_OPTION,
    ): _S.SELECTING_ADDITIONAL_PARAMS,
    (_S.SELECTING_ADDITIONAL_PARAMS, _E.FINISH): _S.READY_TO_GENERATE,
    (_S.READY_TO_GENERATE, _E.EDIT_LOCATION): _S.EDITING_LOCATION,
    (_S.READY_TO_GENERATE, _E.EDIT_CLOTHING): _S.EDITING_CLOTHING,
    (_S.READY_TO_GENERATE, _E.EDIT_DETAILS): _S.EDITING_DETAILS,
    (_S.EDITING_LOCATION, _E.ENTER_LOCATION): _S.READY_TO_GENERATE,
    (_S.EDITING_CLOTHING, _E.ENTER_CLOTHING): _S.READY_TO_GENERATE,
    (_S.EDITING_DETAILS, _E.ENTER_DETAILS): _S.READY_TO_GENERATE,
    (_S.EDITING_DETAILS, _E.SKIP_DETAILS): _S.READY_TO_GENERATE,
}

# Events that change the described scene and so invalidate a translation.
_FRAGMENT_EVENTS = {
    _E.CHOOSE_STYLE,
    _E.SET_GENDER,
    _E.ENTER_LOCATION,
    _E.ENTER_CLOTHING,
    _E.ENTER_DETAILS,
    _E.SKIP_DETAILS,
    _E.PICK_OPTION,
}

_MAX_FRAGMENT_LENGTH = 300


def advance_prompt(
    session: Session, event: PromptEvent, value: object = None
) -> PromptState:
    """Apply one event to the session's prompt flow in place."""
    if event is PromptEvent.CANCEL:
        session.prompt = PromptDraft()
        session.prompt_state = PromptState.IDLE
        return session.prompt_state

    target = PROMPT_TRANSITIONS.get((session.prompt_state, event))
    if target is None:
        raise SessionValidationError(
            "That step isn't available right now. Send /generate to start over."
        )

    draft = session.prompt
    if event is PromptEvent.CHOOSE_STYLE:
        if not isinstance(value, PhotoStyle):
            raise SessionValidationError("Please pick one of the offered styles.")
        session.prompt = PromptDraft(style=value, gender=draft.gender)
        draft = session.prompt
    elif event is PromptEvent.SET_GENDER:
        if not isinstance(value, SubjectGender):
            raise SessionValidationError("Please pick one of the offered options.")
        draft.gender = value
    elif event is PromptEvent.ENTER_LOCATION:
        draft.location = _require_text(value)
    elif event is PromptEvent.ENTER_CLOTHING:
        draft.clothing = _require_text(value)
    elif event is PromptEvent.ENTER_DETAILS:
        draft.additional_details = _require_text(value)
    elif event is PromptEvent.SKIP_DETAILS:
        draft.additional_details = None
    elif event is PromptEvent.OPEN_CATEGORY:
        if not isinstance(value, PromptCategory):
            raise SessionValidationError("Please pick one of the offered parameters.")
        draft.selected_categories.add(value)
        draft.active_category = value
    elif event is PromptEvent.PICK_OPTION:
        category = draft.active_category
        if category is None or not isinstance(value, CATEGORY_OPTIONS[category]):
            raise SessionValidationError("Please pick one of the offered options.")
        draft.choices[category] = value
        draft.active_category = None

    if event in _FRAGMENT_EVENTS:
        draft.translated_prompt = None
    session.prompt_state = target
    return target


def compose_prompt(draft: PromptDraft) -> str:
    """Render the user-described scene as a comma separated description."""
    parts: list[str] = []
    if draft.clothing:
        parts.append(f"wearing {draft.clothing}")
    if draft.location:
        parts.append(f"in {draft.location}")
    if draft.additional_details:
        parts.append(draft.additional_details)
    for category in PromptCategory:
        option = draft.choices.get(category)
        if option is not None:
            parts.append(str(option.value))
    return ", ".join(parts)


def build_generation_prompt(draft: PromptDraft, trigger_word: str) -> tuple[str, str]:
    """Return the enhanced prompt and negative prompt for a generation job."""
    subject = trigger_word
    if draft.gender is not None:
        subject = f"{trigger_word} {draft.gender.value}"
    parts = [f"photo of {subject}"]
    if draft.style is not None:
        parts.append(STYLE_FRAGMENTS[draft.style])
    description = draft.translated_prompt or compose_prompt(draft)
    if description:
        parts.append(description)
    negative = BASE_NEGATIVE_PROMPT
    if draft.style is not None:
        negative = f"{negative}, {STYLE_NEGATIVES[draft.style]}"
    return ", ".join(parts), negative


def _require_text(value: object) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise SessionValidationError("Please reply with a short text description.")
    if len(text) > _MAX_FRAGMENT_LENGTH:
        raise SessionValidationError(
            f"That's a bit long. Keep it under {_MAX_FRAGMENT_LENGTH} characters."
        )
    return text
