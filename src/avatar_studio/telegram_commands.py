"""Telegram bot command configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands (single source of truth)."""

    START = TelegramCommand("start", "How it works")
    TRAIN = TelegramCommand("train", "Train your model on the uploaded photos")
    GENERATE = TelegramCommand("generate", "Describe and generate a new photo")
    MODEL = TelegramCommand("model", "Show or delete your trained model")
    CANCEL = TelegramCommand("cancel", "Cancel the current prompt")
    HELP = TelegramCommand("help", "Quick guide and tips")


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


def parse_command(text: str) -> BotCommand | None:
    """Match ``/name`` or ``/name@bot`` against the known commands."""
    words = text.split(maxsplit=1)
    if not words or not words[0].startswith("/"):
        return None
    name = words[0][1:].split("@", maxsplit=1)[0].lower()
    for entry in BotCommand:
        if entry.value.command == name:
            return entry
    return None


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}
