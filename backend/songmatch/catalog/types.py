from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

FEATURE_FIELDS: Tuple[str, ...] = (
    "danceability",
    "energy",
    "valence",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
    "loudness",
    "tempo",
    "key",
    "mode",
    "time_signature",
)


@dataclass(frozen=True, slots=True)
class AudioFeatures:
    danceability: float
    energy: float
    valence: float
    acousticness: float
    instrumentalness: float
    liveness: float
    speechiness: float
    loudness: float
    tempo: float
    key: int
    mode: int
    time_signature: int


@dataclass(frozen=True, slots=True)
class Track:
    """A catalog track, or a reference built to look like one.

    ``artist_ids`` keeps the catalog order; the artist strategy walks it in
    that order when merging per-artist results.
    """

    track_id: str
    name: str
    artist_ids: Tuple[int, ...] = ()
    album_id: int | None = None
    genre_id: int | None = None
    popularity: int = 0
    duration_ms: int = 0
    explicit: bool = False
    audio_features: AudioFeatures | None = None

    @property
    def has_audio_features(self) -> bool:
        return self.audio_features is not None

    def shares_artist(self, other: Track) -> bool:
        return bool(set(self.artist_ids) & set(other.artist_ids))

    def same_genre(self, other: Track) -> bool:
        return self.genre_id is not None and self.genre_id == other.genre_id


@dataclass(frozen=True, slots=True)
class TrackPage:
    """One page of search results; ``total`` counts every match found."""

    tracks: Tuple[Track, ...]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total
