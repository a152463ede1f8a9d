"""Notification sink: deliver a chat message to a user."""
import logging
from typing import Protocol

import httpx

from crypto_alerts.errors import NotificationError, RecipientBlockedError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Send-message capability keyed by user id."""

    async def send_message(self, user_id: int, text: str) -> None:
        """Deliver ``text`` to ``user_id``. Raises NotificationError on failure."""
        ...


class TelegramNotifier:
    """Sends Markdown messages through the Telegram Bot API."""

    API_URL = "https://api.telegram.org"

    def __init__(
        self,
        token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._token = token
        self._client = client or httpx.AsyncClient(base_url=self.API_URL, timeout=timeout)

    async def send_message(self, user_id: int, text: str) -> None:
        try:
            response = await self._client.post(
                f"/bot{self._token}/sendMessage",
                json={"chat_id": user_id, "text": text, "parse_mode": "Markdown"},
            )
        except httpx.HTTPError as exc:
            raise NotificationError(f"sendMessage to {user_id} failed: {exc}") from exc

        if response.status_code == 403 or "bot was blocked" in response.text.lower():
            raise RecipientBlockedError(f"User {user_id} blocked the bot")
        if response.is_error:
            raise NotificationError(
                f"sendMessage to {user_id} failed: HTTP {response.status_code}"
            )

    async def close(self) -> None:
        await self._client.aclose()


class LoggingNotifier:
    """Logs messages instead of sending them (no bot token configured)."""

    async def send_message(self, user_id: int, text: str) -> None:
        logger.info("Notification for user %s: %s", user_id, text)

    async def close(self) -> None:
        """Nothing to release."""


def create_notifier(token: str | None, timeout: float = 10.0) -> TelegramNotifier | LoggingNotifier:
    """Telegram notifier when a bot token is configured, otherwise a logging one."""
    if token:
        return TelegramNotifier(token, timeout=timeout)
    logger.warning("TELEGRAM_BOT_TOKEN not set; notifications will only be logged")
    return LoggingNotifier()
