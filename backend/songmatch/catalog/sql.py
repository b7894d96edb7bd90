from __future__ import annotations

import heapq
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import models
from ..services.similarity import compare
from .source import CatalogError
from .types import Track, TrackPage

logger = logging.getLogger("catalog")

# Rows read past the requested page so `total` can report that more exist.
SEARCH_LOOKAHEAD = 20


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqlCatalog:
    """Catalog backed by the relational track tables.

    A session is opened per call, so calls may run concurrently on a shared
    instance. Similarity scoring happens in-process over the candidate rows.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Catalog query failed: %s", exc)
            raise CatalogError(f"catalog query failed: {exc}") from exc

    async def _fetch(self, stmt: Select) -> List[Track]:
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [row.to_value() for row in rows]

    async def sample_random(self, n: int) -> List[Track]:
        if n <= 0:
            return []
        stmt = select(models.Track).order_by(func.random()).limit(n)
        return await self._fetch(stmt)

    async def by_genre(self, genre_id: int, n: int, *, sort_by_popularity: bool = True) -> List[Track]:
        stmt = select(models.Track).where(models.Track.genre_id == genre_id)
        stmt = stmt.order_by(*self._ordering(sort_by_popularity)).limit(n)
        return await self._fetch(stmt)

    async def by_artist(self, artist_id: int, n: int, *, sort_by_popularity: bool = True) -> List[Track]:
        stmt = (
            select(models.Track)
            .join(models.TrackArtist, models.TrackArtist.track_id == models.Track.id)
            .where(models.TrackArtist.artist_id == artist_id)
        )
        stmt = stmt.order_by(*self._ordering(sort_by_popularity)).limit(n)
        return await self._fetch(stmt)

    async def by_tempo_window(self, target_tempo: float, range_bpm: float, n: int) -> List[Track]:
        stmt = (
            select(models.Track)
            .join(models.TrackAudioFeatures, models.TrackAudioFeatures.track_id == models.Track.id)
            .where(
                models.TrackAudioFeatures.tempo >= target_tempo - range_bpm,
                models.TrackAudioFeatures.tempo <= target_tempo + range_bpm,
            )
            .order_by(models.Track.id)
            .limit(n)
        )
        return await self._fetch(stmt)

    async def scored_similar(
        self,
        reference: Track,
        threshold: float,
        n: int,
        *,
        genre_id: Optional[int] = None,
    ) -> List[Track]:
        if reference.audio_features is None:
            raise ValueError("reference track has no audio features")
        stmt = (
            select(models.Track)
            .join(models.TrackAudioFeatures, models.TrackAudioFeatures.track_id == models.Track.id)
            .where(models.Track.id != reference.track_id)
        )
        if genre_id is not None:
            stmt = stmt.where(models.Track.genre_id == genre_id)

        scored: List[Tuple[float, str, Track]] = []
        for candidate in await self._fetch(stmt):
            score = compare(reference, candidate)
            if score < threshold:
                scored.append((score, candidate.track_id, candidate))
        best = heapq.nsmallest(n, scored, key=lambda item: (item[0], item[1]))
        logger.debug("scored_similar: %s under %.2f, returning %s", len(scored), threshold, len(best))
        return [track for _, _, track in best]

    async def search(self, query: str, limit: int, offset: int = 0) -> TrackPage:
        """Case-insensitive substring search on track and artist names.

        Name matches come first, then tracks by matching artists, each in
        popularity order and de-duplicated. Each match list is read up to
        `offset + limit + SEARCH_LOOKAHEAD` rows, so `total` is exact for
        small result sets and a lower bound for very broad queries.
        """
        text = query.strip()
        offset = max(offset, 0)
        if not text or limit <= 0:
            return TrackPage(tracks=(), total=0, offset=offset, limit=max(limit, 0))

        pattern = _like_pattern(text)
        window = offset + limit + SEARCH_LOOKAHEAD
        by_name = (
            select(models.Track.id, models.Track.popularity)
            .where(models.Track.name.ilike(pattern, escape="\\"))
            .order_by(*self._ordering(True))
            .limit(window)
        )
        by_artist = (
            select(models.Track.id, models.Track.popularity)
            .join(models.TrackArtist, models.TrackArtist.track_id == models.Track.id)
            .join(models.Artist, models.Artist.id == models.TrackArtist.artist_id)
            .where(models.Artist.name.ilike(pattern, escape="\\"))
            .distinct()
            .order_by(*self._ordering(True))
            .limit(window)
        )
        async with self._session() as session:
            name_ids = (await session.scalars(by_name)).all()
            artist_ids = (await session.scalars(by_artist)).all()

        matches = list(dict.fromkeys([*name_ids, *artist_ids]))
        page = await self.get_tracks(matches[offset : offset + limit])
        logger.debug("search %r: %s matches, returning %s", text, len(matches), len(page))
        return TrackPage(tracks=tuple(page), total=len(matches), offset=offset, limit=limit)

    async def get_track(self, track_id: str) -> Optional[Track]:
        async with self._session() as session:
            row = await session.get(models.Track, track_id)
            return row.to_value() if row is not None else None

    async def get_tracks(self, track_ids: Iterable[str]) -> List[Track]:
        ids = list(dict.fromkeys(track_id for track_id in track_ids if track_id))
        if not ids:
            return []
        found = {
            track.track_id: track
            for track in await self._fetch(select(models.Track).where(models.Track.id.in_(ids)))
        }
        return [found[track_id] for track_id in ids if track_id in found]

    async def count(self) -> int:
        async with self._session() as session:
            return int(await session.scalar(select(func.count()).select_from(models.Track)) or 0)

    @staticmethod
    def _ordering(sort_by_popularity: bool) -> tuple:
        if sort_by_popularity:
            return (models.Track.popularity.desc(), models.Track.id)
        return (models.Track.name, models.Track.id)
