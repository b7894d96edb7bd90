from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.asyncio import Redis

from ...cache.redis import cache_get_json, cache_set_json, recommendation_cache_key
from ...catalog.source import CatalogEmptyError, CatalogError, CatalogSource
from ...catalog.types import Track
from ...core.config import Settings
from ...core.security import verify_service_token
from ...schemas.recommend import LikedRecommendRequest, RecommendRequest, RecommendResponse, TrackOut
from ...services.enrichment import fetch_metadata
from ...services.profile import build_reference
from ...services.recommendations import RecommendationEngine, RecommendationResult, normalize_limit
from ...services.strategies import FilterMode
from ...spotify.client import SpotifyClient
from ..deps import get_catalog, get_engine, get_redis_dep, get_settings_dep, get_spotify_client

logger = logging.getLogger("api.recommend")

router = APIRouter(prefix="/v1", tags=["recommendations"], dependencies=[Depends(verify_service_token)])


def _clamp_limit(value: object, settings: Settings) -> int:
    limit = normalize_limit(value, settings.recommendation_default_limit)
    return min(limit, settings.recommendation_max_limit)


async def _run(
    engine: RecommendationEngine,
    reference: Track,
    mode: object,
    limit: int,
    settings: Settings,
    *,
    exclude: Optional[Set[str]] = None,
) -> RecommendationResult:
    try:
        return await asyncio.wait_for(
            engine.recommend_detailed(reference, mode, limit, exclude=exclude),
            timeout=settings.recommendation_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.error("Recommendation for %s timed out after %ss", reference.track_id, settings.recommendation_timeout_seconds)
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="recommendation timed out") from exc
    except CatalogEmptyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="no data available") from exc
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


async def _respond(
    result: RecommendationResult,
    reference: Track,
    spotify: Optional[SpotifyClient],
    settings: Settings,
) -> RecommendResponse:
    metadata = await fetch_metadata(spotify, [reference, *result.tracks], timeout=settings.http_timeout_seconds)
    return RecommendResponse(
        mode=result.mode.value,
        limit=result.limit,
        fallback=result.fallback,
        reference=TrackOut.from_track(reference, metadata.get(reference.track_id)),
        recommendations=[TrackOut.from_track(track, metadata.get(track.track_id)) for track in result.tracks],
    )


@router.post("/recommendations", response_model=RecommendResponse)
async def create_recommendations(
    payload: RecommendRequest,
    *,
    engine: RecommendationEngine = Depends(get_engine),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> RecommendResponse:
    reference = payload.reference.to_reference()
    result = await _run(engine, reference, payload.mode, _clamp_limit(payload.limit, settings), settings)
    return await _respond(result, reference, spotify_client, settings)


@router.get("/tracks/{track_id}/recommendations", response_model=RecommendResponse)
async def recommendations_for_track(
    track_id: str,
    mode: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    *,
    catalog: CatalogSource = Depends(get_catalog),
    engine: RecommendationEngine = Depends(get_engine),
    redis: Optional[Redis] = Depends(get_redis_dep),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> RecommendResponse:
    filter_mode = FilterMode.parse(mode)
    size = _clamp_limit(limit, settings)
    cache_key = recommendation_cache_key(track_id, filter_mode.value, size)
    cached = await cache_get_json(redis, cache_key)
    if cached is not None:
        return RecommendResponse.model_validate(cached)

    try:
        reference = await catalog.get_track(track_id)
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if reference is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"track {track_id} not found")

    result = await _run(engine, reference, filter_mode, size, settings)
    response = await _respond(result, reference, spotify_client, settings)
    await cache_set_json(redis, cache_key, response.model_dump(mode="json"), ttl=settings.recommendation_cache_ttl)
    return response


@router.post("/recommendations/liked", response_model=RecommendResponse)
async def recommendations_for_liked(
    payload: LikedRecommendRequest,
    *,
    catalog: CatalogSource = Depends(get_catalog),
    engine: RecommendationEngine = Depends(get_engine),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> RecommendResponse:
    track_ids = payload.track_ids[: settings.liked_tracks_max]
    try:
        liked = await catalog.get_tracks(track_ids)
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if not liked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="none of the liked tracks exist")

    reference = build_reference(liked)
    logger.info("Built reference from %s of %s liked tracks", len(liked), len(track_ids))
    result = await _run(
        engine,
        reference,
        payload.mode,
        _clamp_limit(payload.limit, settings),
        settings,
        exclude={track.track_id for track in liked},
    )
    return await _respond(result, reference, spotify_client, settings)
