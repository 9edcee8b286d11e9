"""Prompt vocabulary: styles, subject and categorical shot parameters."""

from enum import Enum


class PhotoStyle(Enum):
    """Visual style presets offered at the start of prompt assembly."""

    PORTRAIT = "portrait"
    CINEMATIC = "cinematic"
    FASHION = "fashion"
    BUSINESS = "business"
    STREET = "street"
    NOIR = "noir"


class SubjectGender(Enum):
    """Optional subject modifier injected next to the trigger word."""

    FEMALE = "woman"
    MALE = "man"


class PromptCategory(Enum):
    """Additional shot parameters a user may pick one option for."""

    CAMERA_ANGLE = "camera_angle"
    SHOT_SIZE = "shot_size"
    LIGHTING = "lighting"
    POSE = "pose"
    EXPRESSION = "expression"
    FOCUS = "focus"


class CameraAngle(Enum):
    EYE_LEVEL = "eye-level camera angle"
    LOW_ANGLE = "low angle shot"
    HIGH_ANGLE = "high angle shot"
    DUTCH_ANGLE = "dutch angle"


class ShotSize(Enum):
    CLOSE_UP = "close-up portrait"
    MEDIUM = "medium shot, waist up"
    FULL_BODY = "full body shot"
    WIDE = "wide shot with environment"


class Lighting(Enum):
    DAYLIGHT = "soft natural daylight"
    GOLDEN_HOUR = "warm golden hour light"
    STUDIO = "clean studio lighting"
    NEON = "neon city lights"
    LOW_KEY = "dramatic low-key lighting"


class Pose(Enum):
    STANDING = "standing confidently"
    SITTING = "sitting relaxed"
    WALKING = "walking towards the camera"
    LEANING = "leaning against a wall"


class Expression(Enum):
    SMILE = "gentle smile"
    SERIOUS = "serious expression"
    LAUGHING = "laughing naturally"
    PENSIVE = "pensive look"


class Focus(Enum):
    SHALLOW = "shallow depth of field, creamy bokeh"
    DEEP = "deep focus, everything sharp"
    FACE = "sharp focus on the eyes"


CATEGORY_OPTIONS: dict[PromptCategory, type[Enum]] = {
    PromptCategory.CAMERA_ANGLE: CameraAngle,
    PromptCategory.SHOT_SIZE: ShotSize,
    PromptCategory.LIGHTING: Lighting,
    PromptCategory.POSE: Pose,
    PromptCategory.EXPRESSION: Expression,
    PromptCategory.FOCUS: Focus,
}

CATEGORY_LABELS: dict[PromptCategory, str] = {
    PromptCategory.CAMERA_ANGLE: "Camera angle",
    PromptCategory.SHOT_SIZE: "Shot size",
    PromptCategory.LIGHTING: "Lighting",
    PromptCategory.POSE: "Pose",
    PromptCategory.EXPRESSION: "Expression",
    PromptCategory.FOCUS: "Focus",
}

STYLE_LABELS: dict[PhotoStyle, str] = {
    PhotoStyle.PORTRAIT: "Portrait",
    PhotoStyle.CINEMATIC: "Cinematic",
    PhotoStyle.FASHION: "Fashion",
    PhotoStyle.BUSINESS: "Business",
    PhotoStyle.STREET: "Street",
    PhotoStyle.NOIR: "Film noir",
}

STYLE_FRAGMENTS: dict[PhotoStyle, str] = {
    PhotoStyle.PORTRAIT: "professional portrait photo, 85mm lens, natural skin texture",
    PhotoStyle.CINEMATIC: "cinematic film still, anamorphic lens, subtle film grain",
    PhotoStyle.FASHION: "high fashion editorial photo, magazine cover quality",
    PhotoStyle.BUSINESS: "corporate headshot, clean composition, confident look",
    PhotoStyle.STREET: "candid street photography, urban background, documentary feel",
    PhotoStyle.NOIR: "black and white film noir photo, high contrast, venetian blind shadows",
}

STYLE_NEGATIVES: dict[PhotoStyle, str] = {
    PhotoStyle.PORTRAIT: "harsh shadows, wide angle distortion",
    PhotoStyle.CINEMATIC: "flat lighting, oversaturated colors",
    PhotoStyle.FASHION: "amateur snapshot, messy background",
    PhotoStyle.BUSINESS: "casual clothes, cluttered background",
    PhotoStyle.STREET: "studio backdrop, posed stiffly",
    PhotoStyle.NOIR: "color, pastel tones",
}

BASE_NEGATIVE_PROMPT = (
    "blurry, low quality, deformed face, extra fingers, extra limbs, "
    "plastic skin, watermark, text"
)


def option_label(option: Enum) -> str:
    """Human-readable button label for a categorical option."""
    return option.name.replace("_", " ").capitalize()


def find_option(category: PromptCategory, name: str) -> Enum | None:
    """Return the option of ``category`` with the given enum name, if any."""
    options = CATEGORY_OPTIONS[category]
    return options.__members__.get(name)
