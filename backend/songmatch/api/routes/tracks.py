from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...catalog.source import CatalogEmptyError, CatalogError, CatalogSource
from ...core.config import Settings
from ...core.security import verify_service_token
from ...schemas.recommend import SearchResponse, TrackOut
from ...services.enrichment import fetch_metadata
from ...services.recommendations import normalize_limit, random_fallback
from ...spotify.client import SpotifyClient
from ..deps import get_catalog, get_settings_dep, get_spotify_client

logger = logging.getLogger("api.tracks")

FEED_DEFAULT_LIMIT = 10
SEARCH_DEFAULT_LIMIT = 20

router = APIRouter(prefix="/v1/tracks", tags=["tracks"], dependencies=[Depends(verify_service_token)])


def _offset(value: Optional[str]) -> int:
    try:
        return max(int(value), 0) if value is not None else 0
    except ValueError:
        return 0


@router.get("", response_model=List[TrackOut])
async def random_feed(
    limit: Optional[str] = Query(None),
    *,
    catalog: CatalogSource = Depends(get_catalog),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> List[TrackOut]:
    size = min(normalize_limit(limit, FEED_DEFAULT_LIMIT), settings.recommendation_max_limit)
    try:
        tracks = await catalog.sample_random(size)
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    metadata = await fetch_metadata(spotify_client, tracks, timeout=settings.http_timeout_seconds)
    return [TrackOut.from_track(track, metadata.get(track.track_id)) for track in tracks]


@router.get("/search", response_model=SearchResponse)
async def search_tracks(
    q: str = Query(""),
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    *,
    catalog: CatalogSource = Depends(get_catalog),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> SearchResponse:
    size = min(normalize_limit(limit, SEARCH_DEFAULT_LIMIT), settings.recommendation_max_limit)
    try:
        page = await catalog.search(q, size, _offset(offset))
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    logger.info("Search %r matched %s tracks", q, page.total)
    metadata = await fetch_metadata(spotify_client, page.tracks, timeout=settings.http_timeout_seconds)
    return SearchResponse(
        tracks=[TrackOut.from_track(track, metadata.get(track.track_id)) for track in page.tracks],
        total=page.total,
        offset=page.offset,
        limit=page.limit,
        has_more=page.has_more,
    )


@router.get("/random", response_model=TrackOut)
async def random_track(
    catalog: CatalogSource = Depends(get_catalog),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> TrackOut:
    try:
        track = await random_fallback(catalog)
    except CatalogEmptyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="no data available") from exc
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    metadata = await fetch_metadata(spotify_client, [track], timeout=settings.http_timeout_seconds)
    return TrackOut.from_track(track, metadata.get(track.track_id))


@router.get("/{track_id}", response_model=TrackOut)
async def get_track(
    track_id: str,
    catalog: CatalogSource = Depends(get_catalog),
    spotify_client: Optional[SpotifyClient] = Depends(get_spotify_client),
    settings: Settings = Depends(get_settings_dep),
) -> TrackOut:
    try:
        track = await catalog.get_track(track_id)
    except CatalogError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if track is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"track {track_id} not found")
    metadata = await fetch_metadata(spotify_client, [track], timeout=settings.http_timeout_seconds)
    return TrackOut.from_track(track, metadata.get(track.track_id))
