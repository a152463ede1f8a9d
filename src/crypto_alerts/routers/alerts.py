"""Price alert routes: create, delete, paginated listings and live view updates."""
import asyncio
import logging

from dependency_injector.wiring import inject
from fastapi import (APIRouter, HTTPException, Query, WebSocket,
                     WebSocketDisconnect)

from crypto_alerts.container import AlertsServiceDep, ViewHubWs
from crypto_alerts.errors import AlertErrorMapper, AlertsError
from crypto_alerts.schemas import (AlertOut, AlertsOrderSetting,
                                   AlertsPageView, ArchivePageView,
                                   CreateAlertRequest,
                                   CreatePairedAlertRequest, DeleteMenuView,
                                   DeleteOutcome)
from crypto_alerts.services.pagination import ALL, PageToken

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/alerts", tags=["alerts"])
error_mapper = AlertErrorMapper()


def _page_token(raw: str | None) -> PageToken:
    """Parse a ``page`` query value: a page index or ``all``."""
    if raw is None or raw == ALL:
        return None
    try:
        page = int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid page token '{raw}'") from exc
    if page < 0:
        raise HTTPException(status_code=400, detail="Page must be >= 0")
    return page


@router.post("", response_model=AlertOut, status_code=201)
@inject
async def create_alert(body: CreateAlertRequest, service: AlertsServiceDep) -> AlertOut:
    """Create a standalone price alert.

    Returns:
        The stored alert (symbol normalized, e.g. ``btc`` -> ``BTC-USDT``).
    """
    try:
        alert = service.create_alert(body.user_id, body.symbol, body.condition, body.price)
    except AlertsError as e:
        error_mapper.raise_http(e)
    return AlertOut.model_validate(alert)


@router.post("/paired", response_model=list[AlertOut], status_code=201)
@inject
async def create_paired_alert(
    body: CreatePairedAlertRequest, service: AlertsServiceDep
) -> list[AlertOut]:
    """Create an alert and its stop-loss together; both or neither are stored."""
    try:
        created = service.create_paired_alert(
            body.user_id, body.symbol, body.condition, body.price, body.stop_loss_price
        )
    except AlertsError as e:
        error_mapper.raise_http(e)
    return [AlertOut.model_validate(a) for a in created]


@router.delete("/{alert_id}", response_model=AlertOut)
@inject
async def delete_alert(
    alert_id: str,
    service: AlertsServiceDep,
    user_id: int | None = Query(default=None, description="Only delete if owned by this user"),
) -> AlertOut:
    """Archive and remove an alert. 404 if it no longer exists."""
    try:
        deleted = service.delete_alert(alert_id, user_id=user_id)
    except AlertsError as e:
        error_mapper.raise_http(e, alert_id=alert_id)
    if deleted is None:
        error_mapper.not_found(alert_id)
    return AlertOut.model_validate(deleted)


@router.get("/{user_id}", response_model=AlertsPageView)
@inject
async def get_alerts_page(
    user_id: int,
    service: AlertsServiceDep,
    page: int = Query(default=0, ge=0, description="0-based page index"),
    fast: bool = Query(default=True, description="Render from cached prices, reconcile later"),
) -> AlertsPageView:
    """Render one page of the user's alerts.

    With ``fast=true`` the response is built from cached prices and a
    corrected view may follow on ``/alerts/{user_id}/updates``.
    """
    try:
        return await service.render_alerts_page(user_id, page, fast=fast)
    except AlertsError as e:
        error_mapper.raise_http(e)


@router.get("/{user_id}/delete-menu", response_model=DeleteMenuView)
@inject
async def get_delete_menu(
    user_id: int,
    service: AlertsServiceDep,
    page: str | None = Query(default=None, description="Page index or 'all'"),
    fast: bool = Query(default=True),
) -> DeleteMenuView:
    """Render the delete-action keyboard for one page or all alerts."""
    token = _page_token(page)
    try:
        return await service.render_delete_menu(user_id, token, fast=fast)
    except AlertsError as e:
        error_mapper.raise_http(e)


@router.post("/{user_id}/menu-delete/{alert_id}", response_model=DeleteOutcome)
@inject
async def delete_from_menu(
    user_id: int,
    alert_id: str,
    service: AlertsServiceDep,
    page: str | None = Query(default=None, description="Page the menu was opened on, or 'all'"),
) -> DeleteOutcome:
    """Delete from the menu; the returned menu is clamped to the remaining pages."""
    token = _page_token(page)
    try:
        return await service.delete_from_menu(user_id, alert_id, token)
    except AlertsError as e:
        error_mapper.raise_http(e, alert_id=alert_id)


@router.get("/{user_id}/order", response_model=AlertsOrderSetting)
@inject
async def get_alerts_order(user_id: int, service: AlertsServiceDep) -> AlertsOrderSetting:
    try:
        return AlertsOrderSetting(order=service.get_alerts_order(user_id))
    except AlertsError as e:
        error_mapper.raise_http(e)


@router.put("/{user_id}/order", response_model=AlertsOrderSetting)
@inject
async def set_alerts_order(
    user_id: int, body: AlertsOrderSetting, service: AlertsServiceDep
) -> AlertsOrderSetting:
    """Choose whether new alerts are listed at the top or the bottom."""
    try:
        return AlertsOrderSetting(order=service.set_alerts_order(user_id, body.order))
    except AlertsError as e:
        error_mapper.raise_http(e)


@router.get("/{user_id}/archive", response_model=ArchivePageView)
@inject
async def get_archive_page(
    user_id: int,
    service: AlertsServiceDep,
    days: int = Query(default=30, ge=1, le=365, description="Look-back window in days"),
    symbol: str | None = Query(default=None, description="Filter, e.g. BTC or BTC-USDT"),
    page: int = Query(default=0, ge=0),
) -> ArchivePageView:
    """List alerts that fired or were deleted in the last ``days`` days."""
    try:
        return service.render_archive_page(user_id, days=days, symbol=symbol, page=page)
    except AlertsError as e:
        error_mapper.raise_http(e)


@router.websocket("/{user_id}/updates")
async def stream_view_updates(websocket: WebSocket, user_id: int, hub: ViewHubWs) -> None:
    """Stream reconciled views for a user over WebSocket.

    Each message is a ViewUpdate JSON replacing the view of the same kind
    that was last returned to this user.
    """
    queue = hub.subscribe(user_id)
    closed: asyncio.Task | None = None
    try:
        await websocket.accept()
        closed = asyncio.create_task(_wait_closed(websocket))
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, closed}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            await websocket.send_json(getter.result().model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("View updates client for user %s disconnected", user_id)
    finally:
        if closed is not None:
            closed.cancel()
        hub.unsubscribe(user_id, queue)


async def _wait_closed(websocket: WebSocket) -> None:
    """Return once the client has closed the socket."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
