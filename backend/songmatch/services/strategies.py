from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AbstractSet, Any, Awaitable, Callable, Dict, List, Set

from ..catalog.source import CatalogSource
from ..catalog.types import Track
from .escalation import ThresholdEscalator, first_sufficient
from .ranking import rank, unique_by_id
from .similarity import compare

logger = logging.getLogger("recommendations")

TOP_ESCALATION = ThresholdEscalator((0.15, 0.20))
TOP_SCORE_CUTOFF = 0.20
TOP_CANDIDATE_FACTOR = 5
TOP_SHORTLIST_FACTOR = 2

GENRE_ESCALATION = ThresholdEscalator((0.20, 0.30))

ARTIST_CANDIDATE_FACTOR = 2

ENERGY_ESCALATION = ThresholdEscalator((0.20,))
ENERGY_CANDIDATE_FACTOR = 3
ENERGY_FLOORS = (0.6, 0.5)

TEMPO_RANGE_BPM = 10.0
TEMPO_CANDIDATE_FACTOR = 2


class FilterMode(str, Enum):
    TOP = "top"
    GENRE = "genre"
    ARTIST = "artist"
    ENERGY = "energy"
    TEMPO = "tempo"

    @classmethod
    def parse(cls, value: Any) -> FilterMode:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.TOP


# Strategies take (catalog, reference, limit) and an optional keyword-only
# ``exclude`` set of track ids that must not be returned.
Strategy = Callable[..., Awaitable[List[Track]]]

NO_EXCLUSIONS: AbstractSet[str] = frozenset()


def _popularity(track: Track) -> int:
    return track.popularity


def _energy(track: Track) -> float:
    return track.audio_features.energy if track.audio_features else 0.0


def _skipped(reference: Track, exclude: AbstractSet[str]) -> Set[str]:
    return {reference.track_id, *exclude}


async def recommend_top(
    catalog: CatalogSource,
    reference: Track,
    limit: int,
    *,
    exclude: AbstractSet[str] = NO_EXCLUSIONS,
) -> List[Track]:
    """Closest tracks by score, then the most popular of that shortlist."""
    skip = _skipped(reference, exclude)

    async def query(threshold: float, count: int) -> List[Track]:
        found = await catalog.scored_similar(reference, threshold, count + len(exclude))
        return unique_by_id(found, exclude=skip)

    candidates = await TOP_ESCALATION.run(query, count=limit * TOP_CANDIDATE_FACTOR, minimum=limit)
    scored = [(compare(reference, track), track) for track in candidates if track.has_audio_features]
    kept = [item for item in scored if item[0] < TOP_SCORE_CUTOFF]
    shortlist = rank(kept, limit=limit * TOP_SHORTLIST_FACTOR, key=lambda item: item[0])
    logger.debug("top: %s candidates, %s under cutoff, %s shortlisted", len(scored), len(kept), len(shortlist))
    return rank((track for _, track in shortlist), limit=limit, key=_popularity, descending=True)


async def recommend_genre(
    catalog: CatalogSource,
    reference: Track,
    limit: int,
    *,
    exclude: AbstractSet[str] = NO_EXCLUSIONS,
) -> List[Track]:
    genre_id = reference.genre_id
    if genre_id is None:
        logger.info("genre: reference %s has no genre", reference.track_id)
        return []
    skip = _skipped(reference, exclude)

    async def query(threshold: float, count: int) -> List[Track]:
        found = await catalog.scored_similar(reference, threshold, count + len(exclude), genre_id=genre_id)
        return unique_by_id(found, exclude=skip)

    similar = await GENRE_ESCALATION.run(query, count=limit, minimum=limit)
    if len(similar) >= limit:
        return rank(similar, limit=limit)

    logger.info("genre: only %s similar tracks in genre %s, using most popular", len(similar), genre_id)
    # Extra rows so dropping the reference and excluded ids still leaves `limit`.
    popular = await catalog.by_genre(genre_id, limit + 1 + len(exclude), sort_by_popularity=True)
    return rank(unique_by_id(popular, exclude=skip), limit=limit)


async def recommend_artist(
    catalog: CatalogSource,
    reference: Track,
    limit: int,
    *,
    exclude: AbstractSet[str] = NO_EXCLUSIONS,
) -> List[Track]:
    if not reference.artist_ids:
        logger.info("artist: reference %s has no artists", reference.track_id)
        return []
    per_artist = await asyncio.gather(
        *(
            catalog.by_artist(artist_id, limit * ARTIST_CANDIDATE_FACTOR + len(exclude), sort_by_popularity=True)
            for artist_id in reference.artist_ids
        )
    )
    merged = unique_by_id(
        (track for tracks in per_artist for track in tracks),
        exclude=_skipped(reference, exclude),
    )
    return rank(merged, limit=limit, key=_popularity, descending=True)


async def recommend_energy(
    catalog: CatalogSource,
    reference: Track,
    limit: int,
    *,
    exclude: AbstractSet[str] = NO_EXCLUSIONS,
) -> List[Track]:
    skip = _skipped(reference, exclude)

    async def query(threshold: float, count: int) -> List[Track]:
        found = await catalog.scored_similar(reference, threshold, count + len(exclude))
        return unique_by_id(found, exclude=skip)

    similar = await ENERGY_ESCALATION.run(query, count=limit * ENERGY_CANDIDATE_FACTOR, minimum=limit)

    def above(floor: float) -> List[Track]:
        energetic = [track for track in similar if track.has_audio_features and _energy(track) >= floor]
        return rank(energetic, limit=limit, key=_energy, descending=True)

    return first_sufficient(ENERGY_FLOORS, above, limit)


async def recommend_tempo(
    catalog: CatalogSource,
    reference: Track,
    limit: int,
    *,
    exclude: AbstractSet[str] = NO_EXCLUSIONS,
) -> List[Track]:
    if reference.audio_features is None:
        return []
    target = reference.audio_features.tempo
    window = await catalog.by_tempo_window(target, TEMPO_RANGE_BPM, limit * TEMPO_CANDIDATE_FACTOR + len(exclude))
    nearby = [
        track
        for track in unique_by_id(window, exclude=_skipped(reference, exclude))
        if track.audio_features is not None
    ]
    return rank(nearby, limit=limit, key=lambda track: abs(track.audio_features.tempo - target))


STRATEGIES: Dict[FilterMode, Strategy] = {
    FilterMode.TOP: recommend_top,
    FilterMode.GENRE: recommend_genre,
    FilterMode.ARTIST: recommend_artist,
    FilterMode.ENERGY: recommend_energy,
    FilterMode.TEMPO: recommend_tempo,
}


def select_strategy(mode: FilterMode) -> Strategy:
    return STRATEGIES[mode]
