from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Any, List, Optional, Sequence, Set

from ..catalog.source import CatalogEmptyError, CatalogSource
from ..catalog.types import Track
from .ranking import rank, unique_by_id
from .strategies import FilterMode, select_strategy

DEFAULT_LIMIT = 5

logger = logging.getLogger("recommendations")


def normalize_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    if isinstance(value, bool):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    return limit if limit > 0 else default


async def random_fallback(catalog: CatalogSource, *, exclude: Optional[AbstractSet[str]] = None) -> Track:
    """One random catalog track whose id is not in ``exclude``."""
    skip = exclude or frozenset()
    # Any len(skip) + 1 distinct tracks include at least one outside `skip`.
    sample = await catalog.sample_random(len(skip) + 1)
    for track in sample:
        if track.track_id not in skip:
            return track
    raise CatalogEmptyError("no data available")


@dataclass(slots=True)
class RecommendationResult:
    mode: FilterMode
    limit: int
    tracks: List[Track] = field(default_factory=list)
    fallback: bool = False


class RecommendationEngine:
    """Recommend catalog tracks for a single reference track.

    The catalog is owned by the caller; the engine keeps no state between
    calls. Catalog failures propagate as they are raised.
    """

    def __init__(self, catalog: CatalogSource) -> None:
        self.catalog = catalog

    async def recommend_detailed(
        self,
        reference: Track,
        mode: Any = None,
        limit: Any = None,
        *,
        exclude: Optional[Set[str]] = None,
    ) -> RecommendationResult:
        filter_mode = FilterMode.parse(mode)
        size = normalize_limit(limit)
        result = RecommendationResult(mode=filter_mode, limit=size)

        if not reference.has_audio_features:
            logger.warning("Reference %s has no audio features, using a random track", reference.track_id)
            result.tracks = [await random_fallback(self.catalog, exclude=exclude)]
            result.fallback = True
            return result

        logger.info("Recommending for %s (mode=%s, limit=%s)", reference.track_id, filter_mode.value, size)
        strategy = select_strategy(filter_mode)
        skip = {reference.track_id, *(exclude or ())}
        tracks = await strategy(self.catalog, reference, size, exclude=frozenset(exclude or ()))
        tracks = rank(unique_by_id(tracks, exclude=skip), limit=size)

        if not tracks:
            logger.info("No %s recommendations for %s, using a random track", filter_mode.value, reference.track_id)
            result.tracks = [await random_fallback(self.catalog, exclude=exclude)]
            result.fallback = True
            return result

        logger.info("Returning %s %s recommendations for %s", len(tracks), filter_mode.value, reference.track_id)
        result.tracks = tracks
        return result

    async def recommend(self, reference: Track, mode: Any = None, limit: Any = None) -> Sequence[Track] | Track:
        """Recommendations for ``reference``, or one random ``Track`` when there are none."""
        result = await self.recommend_detailed(reference, mode, limit)
        if result.fallback:
            return result.tracks[0]
        return result.tracks
