"""Domain exceptions and their mapping to HTTP responses."""
from dataclasses import dataclass

from fastapi import HTTPException


class AlertsError(Exception):
    """Base class for errors raised by the alerts core."""


class InvalidAlertError(AlertsError, ValueError):
    """Alert input (symbol, condition, price) is not acceptable."""


class AlertLimitExceededError(AlertsError):
    """Creating the alert(s) would exceed the user's alert limit."""

    def __init__(self, user_id: int, current: int, limit: int) -> None:
        super().__init__(
            f"User {user_id} has {current} alerts; limit is {limit}"
        )
        self.user_id = user_id
        self.current = current
        self.limit = limit


class PersistenceError(AlertsError):
    """A read or write against the alert store failed."""


class UpstreamError(AlertsError):
    """The market-data API could not be reached after all retries."""


class NotificationError(AlertsError):
    """A notification could not be delivered."""


class RecipientBlockedError(NotificationError):
    """The recipient blocked the bot; further sends will fail too."""


@dataclass(frozen=True)
class AlertErrorMapper:
    """Maps alerts-core exceptions to HTTP (status_code, detail).

    Routers use one instance so error responses stay consistent across
    endpoints.
    """

    resource_name: str = "Alert"
    api_name: str = "Market data API"

    def to_http(
        self,
        exc: Exception,
        alert_id: str | None = None,
    ) -> tuple[int, str]:
        """Map an exception to (status_code, detail) for HTTP responses.

        Args:
            exc: The exception raised by a service.
            alert_id: Optional alert id to include in not-found details.

        Returns:
            (status_code, detail) suitable for HTTPException.
        """
        if isinstance(exc, InvalidAlertError):
            return (400, str(exc) or f"Invalid {self.resource_name.lower()}")
        if isinstance(exc, AlertLimitExceededError):
            return (409, str(exc))
        if isinstance(exc, LookupError):
            detail = (
                f"{self.resource_name} not found"
                if alert_id is None
                else f"{self.resource_name} '{alert_id}' not found"
            )
            return (404, detail)
        if isinstance(exc, PersistenceError):
            return (503, "Alert store unavailable")
        if isinstance(exc, UpstreamError):
            return (502, f"{self.api_name} error")
        return (500, "Internal server error")

    def raise_http(self, exc: Exception, alert_id: str | None = None) -> None:
        """Map exception to HTTP and raise HTTPException. Never returns."""
        status_code, detail = self.to_http(exc, alert_id=alert_id)
        raise HTTPException(status_code=status_code, detail=detail) from exc

    def not_found(self, alert_id: str | None = None) -> None:
        """Raise a 404 for a vanished alert. Never returns."""
        self.raise_http(LookupError(alert_id), alert_id=alert_id)
