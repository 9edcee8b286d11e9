"""Tests for the prompt assembly state machine."""

import pytest

from avatar_studio.domain.prompt_flow import (
    PROMPT_TRANSITIONS,
    PromptEvent,
    advance_prompt,
    build_generation_prompt,
    compose_prompt,
)
from avatar_studio.domain.prompts import (
    BASE_NEGATIVE_PROMPT,
    STYLE_FRAGMENTS,
    Lighting,
    PhotoStyle,
    PromptCategory,
    Pose,
    SubjectGender,
    find_option,
)
from avatar_studio.domain.sessions import PromptState, Session
from avatar_studio.errors import SessionValidationError


def _ready_to_generate() -> Session:
    session = Session()
    advance_prompt(session, PromptEvent.CHOOSE_STYLE, PhotoStyle.CINEMATIC)
    advance_prompt(session, PromptEvent.ENTER_LOCATION, "a night market")
    advance_prompt(session, PromptEvent.ENTER_CLOTHING, "a leather jacket")
    advance_prompt(session, PromptEvent.ENTER_DETAILS, "holding an umbrella")
    advance_prompt(session, PromptEvent.OPEN_CATEGORY, PromptCategory.LIGHTING)
    advance_prompt(session, PromptEvent.PICK_OPTION, Lighting.NEON)
    advance_prompt(session, PromptEvent.FINISH)
    return session


def test_happy_path_reaches_ready_to_generate() -> None:
    session = _ready_to_generate()

    assert session.prompt_state is PromptState.READY_TO_GENERATE
    assert session.prompt.style is PhotoStyle.CINEMATIC
    assert session.prompt.choices == {PromptCategory.LIGHTING: Lighting.NEON}
    assert session.prompt.selected_categories == {PromptCategory.LIGHTING}
    assert session.prompt.active_category is None


def test_invalid_event_is_rejected_without_changes() -> None:
    session = Session()

    with pytest.raises(SessionValidationError):
        advance_prompt(session, PromptEvent.ENTER_CLOTHING, "a suit")

    assert session.prompt_state is PromptState.IDLE
    assert session.prompt.clothing is None


def test_every_editing_state_returns_to_ready() -> None:
    edits = {
        PromptEvent.EDIT_LOCATION: (PromptEvent.ENTER_LOCATION, "a beach"),
        PromptEvent.EDIT_CLOTHING: (PromptEvent.ENTER_CLOTHING, "a swimsuit"),
        PromptEvent.EDIT_DETAILS: (PromptEvent.ENTER_DETAILS, "sunset"),
    }
    for edit_event, (enter_event, text) in edits.items():
        session = _ready_to_generate()
        session.prompt.translated_prompt = "cached"

        advance_prompt(session, edit_event)
        advance_prompt(session, enter_event, text)

        assert session.prompt_state is PromptState.READY_TO_GENERATE
        assert session.prompt.translated_prompt is None


def test_cancel_resets_from_any_state() -> None:
    for state in PromptState:
        session = Session(prompt_state=state)
        session.prompt.location = "somewhere"

        advance_prompt(session, PromptEvent.CANCEL)

        assert session.prompt_state is PromptState.IDLE
        assert session.prompt.location is None


def test_every_transition_targets_a_known_state() -> None:
    reachable = {target for target in PROMPT_TRANSITIONS.values()}

    assert PromptState.READY_TO_GENERATE in reachable
    assert all(isinstance(target, PromptState) for target in reachable)
    assert (PromptState.READY_TO_GENERATE, PromptEvent.FINISH) not in (
        PROMPT_TRANSITIONS
    )


def test_text_fragments_are_validated() -> None:
    session = Session()
    advance_prompt(session, PromptEvent.CHOOSE_STYLE, PhotoStyle.PORTRAIT)

    with pytest.raises(SessionValidationError, match="short text"):
        advance_prompt(session, PromptEvent.ENTER_LOCATION, "   ")
    with pytest.raises(SessionValidationError, match="under 300"):
        advance_prompt(session, PromptEvent.ENTER_LOCATION, "x" * 301)

    assert session.prompt_state is PromptState.STYLE_SELECTED


def test_option_must_match_open_category() -> None:
    session = Session()
    advance_prompt(session, PromptEvent.CHOOSE_STYLE, PhotoStyle.PORTRAIT)
    advance_prompt(session, PromptEvent.ENTER_LOCATION, "a park")
    advance_prompt(session, PromptEvent.ENTER_CLOTHING, "a dress")
    advance_prompt(session, PromptEvent.SKIP_DETAILS)
    advance_prompt(session, PromptEvent.OPEN_CATEGORY, PromptCategory.LIGHTING)

    with pytest.raises(SessionValidationError):
        advance_prompt(session, PromptEvent.PICK_OPTION, Pose.SITTING)


def test_gender_survives_style_change() -> None:
    session = Session()
    advance_prompt(session, PromptEvent.SET_GENDER, SubjectGender.FEMALE)
    advance_prompt(session, PromptEvent.CHOOSE_STYLE, PhotoStyle.FASHION)

    assert session.prompt.gender is SubjectGender.FEMALE
    assert session.prompt_state is PromptState.STYLE_SELECTED


def test_compose_prompt_orders_fragments() -> None:
    session = _ready_to_generate()

    assert compose_prompt(session.prompt) == (
        "wearing a leather jacket, in a night market, holding an umbrella, "
        "neon city lights"
    )


def test_build_generation_prompt_prefers_translation() -> None:
    session = _ready_to_generate()
    session.prompt.gender = SubjectGender.MALE
    session.prompt.translated_prompt = "translated description"

    prompt, negative = build_generation_prompt(session.prompt, "user42")

    assert prompt == (
        f"photo of user42 man, {STYLE_FRAGMENTS[PhotoStyle.CINEMATIC]}, "
        "translated description"
    )
    assert negative.startswith(BASE_NEGATIVE_PROMPT)
    assert "flat lighting" in negative


def test_find_option_by_name() -> None:
    assert find_option(PromptCategory.LIGHTING, "NEON") is Lighting.NEON
    assert find_option(PromptCategory.LIGHTING, "SITTING") is None
