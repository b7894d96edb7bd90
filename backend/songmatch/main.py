from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, recommend, tracks
from .cache.redis import create_redis
from .catalog.sql import SqlCatalog
from .core.config import Settings, get_settings
from .core.logging import setup_logging
from .db.session import create_engine, create_session_factory, init_db
from .spotify.client import SpotifyClient

logger = logging.getLogger("songmatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    engine = create_engine(settings)
    await init_db(engine)
    app.state.catalog = SqlCatalog(create_session_factory(engine))
    app.state.redis = create_redis(settings) if settings.recommendation_cache_ttl > 0 else None
    app.state.spotify = None
    if settings.spotify_configured:
        app.state.spotify = SpotifyClient(
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            timeout=settings.http_timeout_seconds,
            retries=settings.http_retries,
        )
    else:
        logger.info("Spotify credentials not configured; responses will not be enriched")
    try:
        yield
    finally:
        if app.state.spotify is not None:
            await app.state.spotify.close()
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, environment=settings.environment)
    app = FastAPI(
        title="SongMatch Recommendation Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.include_router(health.router)
    app.include_router(recommend.router)
    app.include_router(tracks.router)
    return app


app = create_app()
