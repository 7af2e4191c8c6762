"""Notification collaborators for notify actions."""

from abc import ABC, abstractmethod
from typing import Optional

import structlog
from telegram import Bot
from telegram.error import TelegramError

from ..core.config import TelegramConfig

logger = structlog.get_logger()


class Notifier(ABC):
    """Best-effort user notification channel."""

    @property
    def available(self) -> bool:
        """Whether the channel is usable (configured and permitted)."""
        return True

    @abstractmethod
    async def notify(self, title: str, message: str) -> bool:
        """Deliver a notification. Returns False when it was not shown."""


class LogNotifier(Notifier):
    """Fallback channel: the notification goes to the structured log."""

    async def notify(self, title: str, message: str) -> bool:
        logger.info("notification", title=title, message=message)
        return True


class TelegramNotifier(Notifier):
    """Sends notifications to a single Telegram chat."""

    def __init__(self, config: TelegramConfig, bot: Optional[Bot] = None):
        self.config = config
        self._bot = bot
        if self._bot is None and config.bot_token:
            self._bot = Bot(token=config.bot_token)

    @property
    def available(self) -> bool:
        return bool(self.config.enabled and self._bot and self.config.chat_id)

    async def notify(self, title: str, message: str) -> bool:
        if not self.available:
            return False
        try:
            await self._bot.send_message(
                chat_id=self.config.chat_id,
                text=f"{title}\n\n{message}",
            )
            return True
        except TelegramError as e:
            logger.warning("telegram_notify_failed", error=str(e))
            return False


def create_notifier(config: TelegramConfig) -> Notifier:
    """Pick a notification channel from configuration."""
    if config.enabled:
        return TelegramNotifier(config)
    return LogNotifier()
