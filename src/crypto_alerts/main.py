"""Main module for the crypto price alerts service."""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from crypto_alerts.container import Container, init_container
from crypto_alerts.db import init_db
from crypto_alerts.routers import alerts_router

logger = logging.getLogger(__name__)


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app around ``container`` (a fresh, wired one by default)."""
    container = container or init_container()

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Create tables and start background loops; stop them and close clients on shutdown."""
        init_db(container.engine())
        prices = container.price_service()
        matcher = container.matcher()
        prices.start()
        matcher.start()
        logger.info("Alerts service started")

        yield

        await matcher.stop()
        await prices.stop()
        await container.reconciler().drain()
        for resource in (container.kucoin_client(), container.notifier()):
            try:
                await resource.close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Error closing %s: %s", type(resource).__name__, exc)

    fastapi_app = FastAPI(
        title="Crypto Price Alerts",
        description="Price alerts over a cached exchange ticker feed",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.container = container
    fastapi_app.include_router(alerts_router)

    @fastapi_app.get("/")
    def health():
        """Return health check status."""
        return {"status": "ok"}

    return fastapi_app


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run():
    """Run the server (uvicorn). Use for `crypto-alerts`."""
    _configure_logging()
    uvicorn.run(create_app(), host="127.0.0.1", port=8001)


def run_dev():
    """Run the development server with auto-reload."""
    _configure_logging()
    uvicorn.run("crypto_alerts.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
