"""Channel subscription gate consulted before training and generation."""

import logging
from dataclasses import dataclass, field

from avatar_studio.adapters.telegram_client import TelegramClient

_logger = logging.getLogger(__name__)

_MEMBER_STATUSES = frozenset({"creator", "administrator", "member", "restricted"})


@dataclass
class SubscriptionGate:
    """Require membership in every configured channel."""

    telegram_client: TelegramClient
    required_channels: list[str] = field(default_factory=list)

    async def check_access(self, user_id: int) -> tuple[bool, list[str]]:
        """Return whether the user may proceed and the channels still missing.

        A channel whose membership can't be checked counts as joined.
        """
        missing: list[str] = []
        for channel in self.required_channels:
            try:
                status = await self.telegram_client.get_chat_member_status(
                    channel, user_id
                )
            except Exception:
                _logger.warning(
                    "Membership check failed for channel %s", channel, exc_info=True
                )
                continue
            if status not in _MEMBER_STATUSES:
                missing.append(channel)
        return not missing, missing


def subscription_message(channels: list[str]) -> str:
    """User-facing text asking to join the missing channels."""
    listed = "\n".join(channels)
    return f"To use the bot, please subscribe to:\n{listed}\nThen try again."
