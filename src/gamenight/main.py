"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from gamenight.api.interactions import router as interactions_router
from gamenight.config import Settings
from gamenight.core.resolver import IdentityResolver
from gamenight.db.engine import create_engine, create_tables
from gamenight.discord.transport import DiscordTransport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create engine/tables and the outbound HTTP clients."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    await create_tables(engine)
    app.state.engine = engine

    transport = DiscordTransport.from_settings(settings)
    resolver = IdentityResolver(
        httpx.AsyncClient(timeout=httpx.Timeout(5.0, connect=2.0), follow_redirects=True),
        settings.steam_api_base,
    )
    app.state.transport = transport
    app.state.resolver = resolver

    if not settings.gamenight_verify_signatures:
        logger.warning("interaction_signature_check_disabled env=%s", settings.gamenight_env)
    logger.info("gamenight_started env=%s", settings.gamenight_env)

    yield

    await resolver.aclose()
    await transport.aclose()
    await engine.dispose()
    logger.info("gamenight_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the Gamenight FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.gamenight_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Gamenight",
        version="0.1.0",
        description="Discord interactions bot for suggesting games and scheduling play sessions",
        docs_url="/docs" if settings.gamenight_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(interactions_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.gamenight_env}

    return app


app = create_app()
