from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, runtime_checkable

from .types import Track, TrackPage


class CatalogError(Exception):
    pass


class CatalogEmptyError(CatalogError):
    pass


@runtime_checkable
class CatalogSource(Protocol):
    """Everything the recommendation engine needs from track storage.

    Unsorted queries return rows ordered by ``track_id`` so repeated calls
    against an unchanged catalog give the same answer. ``scored_similar``
    must score with ``songmatch.services.similarity.compare``.
    """

    async def sample_random(self, n: int) -> List[Track]:
        ...

    async def by_genre(self, genre_id: int, n: int, *, sort_by_popularity: bool = True) -> List[Track]:
        ...

    async def by_artist(self, artist_id: int, n: int, *, sort_by_popularity: bool = True) -> List[Track]:
        ...

    async def by_tempo_window(self, target_tempo: float, range_bpm: float, n: int) -> List[Track]:
        ...

    async def scored_similar(
        self,
        reference: Track,
        threshold: float,
        n: int,
        *,
        genre_id: Optional[int] = None,
    ) -> List[Track]:
        ...

    async def search(self, query: str, limit: int, offset: int = 0) -> TrackPage:
        """Tracks whose name matches ``query``, then tracks by matching artists."""
        ...

    async def get_track(self, track_id: str) -> Optional[Track]:
        ...

    async def get_tracks(self, track_ids: Iterable[str]) -> List[Track]:
        ...

    async def count(self) -> int:
        ...
