from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Sequence

from ..catalog.types import Track
from ..spotify.client import SpotifyClient, SpotifyClientError, TrackMetadata

logger = logging.getLogger("enrichment")


async def fetch_metadata(
    spotify: Optional[SpotifyClient],
    tracks: Sequence[Track],
    *,
    timeout: Optional[float] = None,
) -> Dict[str, TrackMetadata]:
    """Artwork and links for ``tracks``; empty when Spotify is off, failing or too slow."""
    if spotify is None or not tracks:
        return {}
    try:
        return await asyncio.wait_for(spotify.enrich(track.track_id for track in tracks), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Metadata enrichment for %s tracks timed out after %ss", len(tracks), timeout)
        return {}
    except SpotifyClientError as exc:
        logger.warning("Metadata enrichment failed for %s tracks: %s", len(tracks), exc)
        return {}
