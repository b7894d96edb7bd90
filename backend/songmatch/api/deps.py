from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from redis.asyncio import Redis

from ..catalog.source import CatalogSource
from ..core.config import Settings
from ..core.security import app_settings
from ..services.recommendations import RecommendationEngine
from ..spotify.client import SpotifyClient


async def get_settings_dep(request: Request) -> Settings:
    return app_settings(request)


async def get_catalog(request: Request) -> CatalogSource:
    return request.app.state.catalog


async def get_engine(catalog: CatalogSource = Depends(get_catalog)) -> RecommendationEngine:
    return RecommendationEngine(catalog)


async def get_redis_dep(request: Request) -> Optional[Redis]:
    return getattr(request.app.state, "redis", None)


async def get_spotify_client(request: Request) -> Optional[SpotifyClient]:
    return getattr(request.app.state, "spotify", None)
