"""Database package: models and session management."""
from crypto_alerts.db.models import (Alert, AlertArchive, AlertKind,
                                     AlertsOrder, ArchiveReason, Condition,
                                     LastAlertView, UserPreferences, as_utc,
                                     utcnow)
from crypto_alerts.db.sessions import create_db_engine, get_session, init_db

__all__ = [
    "Alert",
    "AlertArchive",
    "AlertKind",
    "AlertsOrder",
    "ArchiveReason",
    "Condition",
    "LastAlertView",
    "UserPreferences",
    "as_utc",
    "create_db_engine",
    "get_session",
    "init_db",
    "utcnow",
]
