"""
Sleepmates Garmin link service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_error_handlers
from api.middleware import register_middleware
from auth.identity import BackendIdentity
from config.settings import Settings, get_settings
from connectors.encryption import TokenCipher
from connectors.flow import LinkFlow
from connectors.garmin import GarminConnector
from connectors.pending import purge_expired
from connectors.routes import router as garmin_router
from database.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("httpcore", "httpx", "asyncio", "sqlalchemy.engine"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def create_app(settings: Optional[Settings] = None, *, link_flow: Optional[LinkFlow] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.garmin_configured():
            logger.warning("Garmin connector not configured (missing client id/secret)")
        if not settings.backend_configured():
            logger.warning("Managed backend not configured; authenticated routes will fail")

        # Clean up pending authorizations left by previous instances
        async with app.state.session_factory() as session:
            purged = await purge_expired(session)
            await session.commit()
        if purged:
            logger.info("Purged %d stale pending authorizations", purged)

        logger.info("Application ready to accept requests.")
        yield
        await engine.dispose()

    app = FastAPI(
        title="Sleepmates Garmin Link Service",
        version="1.0.0",
        description="Garmin OAuth2 + PKCE account linking.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = build_session_factory(engine)
    app.state.identity = BackendIdentity(settings)
    app.state.link_flow = link_flow or LinkFlow(
        settings,
        GarminConnector(settings),
        app.state.identity,
        TokenCipher.from_settings(settings),
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_error_handlers(app)

    app.include_router(garmin_router, prefix="/api/v1/garmin")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    # Or: uvicorn --factory main:create_app
    _settings = get_settings()
    uvicorn.run(
        create_app(_settings),
        host=_settings.host,
        port=_settings.port,
        log_level="debug" if _settings.debug else "info",
    )
