"""
Supermarket Monitor — Telegram Notification Delivery

Sends price alerts and the daily batch summary to one Telegram chat via the
Bot API. Delivery is best effort: failures are logged and reported as
False, never raised into the daily job.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog
import telegram.error
from telegram import Bot

from src.config import settings

logger = structlog.get_logger(__name__)


def format_price_alert(
    product: str,
    price: Decimal,
    currency: str,
    product_url: str,
    reasons: list[str],
) -> str:
    """Plain-text alert body for one watched product."""
    return (
        f"{product}\n"
        f"Price: {price:.2f} {currency}\n"
        f"Why: {', '.join(reasons)}\n"
        f"{product_url}"
    )


def format_batch_summary(captured: int) -> str:
    return f"Captured {captured} items"


class TelegramNotifier:
    """
    Delivers Supermarket Monitor alerts to a Telegram chat.

    Use as an async context manager to ensure the underlying Bot session
    is cleanly opened and closed:

        async with TelegramNotifier() as notifier:
            await notifier.send("Captured 3 items")

    When the bot token or chat id is absent, send() logs once at
    construction and returns False.
    """

    def __init__(self, bot_token: str | None = None, chat_id: str | None = None) -> None:
        token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.TELEGRAM_CHAT_ID
        self._enabled = bool(token) and bool(self.chat_id)
        self._bot: Bot | None = Bot(token=token) if self._enabled else None

        if not self._enabled:
            logger.warning(
                "telegram_notifier_disabled",
                reason="TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID is empty",
                source="telegram",
                timestamp=datetime.now(timezone.utc).isoformat(),
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def __aenter__(self) -> TelegramNotifier:
        if self._bot is not None:
            await self._bot.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._bot is not None:
            await self._bot.__aexit__(exc_type, exc_val, exc_tb)

    async def send(self, message: str) -> bool:
        """
        Send one plain-text message to the configured chat.

        Returns:
            True if the message was delivered, False otherwise.
        """
        if not self._enabled:
            return False

        try:
            await self._bot.send_message(  # type: ignore[union-attr]
                chat_id=self.chat_id,
                text=message,
                disable_web_page_preview=True,
            )
            logger.info(
                "telegram_message_sent",
                chat_id=self.chat_id,
                length=len(message),
                source="telegram",
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            return True

        except telegram.error.TelegramError as exc:
            logger.error(
                "telegram_send_failed",
                chat_id=self.chat_id,
                error=str(exc),
                source="telegram",
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
            return False
