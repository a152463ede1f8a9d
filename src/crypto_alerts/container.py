"""DI container. Wire via init_container(); endpoints use Depends(Provide[Container.*])."""
from typing import Annotated

from dependency_injector import containers, providers
from dependency_injector.wiring import Provide
from fastapi import Depends, WebSocket

from crypto_alerts.config import Settings
from crypto_alerts.db import create_db_engine
from crypto_alerts.providers import (KucoinClient, SingleSymbolResolver,
                                     TickerSnapshot)
from crypto_alerts.services import (AlertListRenderer, AlertMatcher,
                                    AlertsService, AlertStore,
                                    LastViewedPriceStore, PriceService,
                                    ViewHub, ViewReconciler, create_notifier)


class Container(containers.DeclarativeContainer):
    wiring_config = containers.WiringConfiguration(
        modules=["crypto_alerts.routers.alerts"]
    )

    settings = providers.Singleton(Settings.from_env)

    engine = providers.Singleton(
        create_db_engine,
        settings.provided.database_url,
        echo=settings.provided.sql_echo,
    )

    kucoin_client = providers.Singleton(
        KucoinClient,
        base_url=settings.provided.kucoin_base_url,
        timeout=settings.provided.http_timeout,
        retries=settings.provided.http_retries,
    )
    snapshot = providers.Singleton(
        TickerSnapshot, kucoin_client, ttl=settings.provided.tickers_ttl
    )
    resolver = providers.Singleton(
        SingleSymbolResolver, kucoin_client, ttl=settings.provided.level1_ttl
    )
    price_service = providers.Singleton(
        PriceService,
        snapshot,
        resolver,
        batch_size=settings.provided.matcher_batch_size,
        refresh_interval=settings.provided.tickers_refresh_interval,
    )

    alert_store = providers.Singleton(
        AlertStore,
        engine,
        cache_ttl=settings.provided.cache_ttl,
        max_alerts_per_user=settings.provided.max_alerts_per_user,
    )
    last_views = providers.Singleton(
        LastViewedPriceStore, engine, cache_ttl=settings.provided.cache_ttl
    )

    notifier = providers.Singleton(
        create_notifier,
        settings.provided.telegram_bot_token,
        timeout=settings.provided.http_timeout,
    )

    view_hub = providers.Singleton(ViewHub)
    reconciler = providers.Singleton(ViewReconciler, view_hub.provided.publish)
    renderer = providers.Singleton(
        AlertListRenderer,
        alert_store,
        price_service,
        last_views,
        reconciler,
        page_size=settings.provided.page_size,
    )

    matcher = providers.Singleton(
        AlertMatcher,
        alert_store,
        price_service,
        notifier,
        interval=settings.provided.matcher_interval,
    )
    alerts_service = providers.Singleton(AlertsService, alert_store, renderer)


# Type aliases for route injection (avoid repeating Annotated[...] in every route)
AlertsServiceDep = Annotated[AlertsService, Depends(Provide[Container.alerts_service])]


def init_container() -> Container:
    """Create container and wire to router modules."""
    container = Container()
    container.wire()
    return container


def get_view_hub_ws(websocket: WebSocket) -> ViewHub:
    """View hub for websocket routes (resolved from the app's container)."""
    return websocket.scope["app"].state.container.view_hub()


ViewHubWs = Annotated[ViewHub, Depends(get_view_hub_ws)]
