"""Service layer: prices, alert storage, matching, rendering and the user-facing API."""
from crypto_alerts.services.alert_store import AlertsOrder, AlertStore
from crypto_alerts.services.alerts_service import AlertsService
from crypto_alerts.services.last_views import LastViewedPriceStore
from crypto_alerts.services.matcher import AlertMatcher, TickReport
from crypto_alerts.services.notifier import (LoggingNotifier, Notifier,
                                             TelegramNotifier, create_notifier)
from crypto_alerts.services.prices import PriceService
from crypto_alerts.services.reconcile import ViewHub, ViewReconciler
from crypto_alerts.services.renderer import AlertListRenderer

__all__ = [
    "AlertListRenderer",
    "AlertMatcher",
    "AlertStore",
    "AlertsOrder",
    "AlertsService",
    "LastViewedPriceStore",
    "LoggingNotifier",
    "Notifier",
    "PriceService",
    "TelegramNotifier",
    "TickReport",
    "ViewHub",
    "ViewReconciler",
    "create_notifier",
]
