"""API routers.

Includes routes for:
- /alerts - create, delete and list price alerts (paged views, delete menu, archive)
- /alerts/{user_id}/updates - WebSocket stream of reconciled views
"""
from crypto_alerts.routers.alerts import router as alerts_router

__all__ = ["alerts_router"]
