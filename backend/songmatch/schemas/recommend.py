from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..catalog.types import AudioFeatures, Track
from ..spotify.client import TrackMetadata


class AudioFeaturesPayload(BaseModel):
    danceability: float
    energy: float
    valence: float
    acousticness: float
    instrumentalness: float
    liveness: float
    speechiness: float
    loudness: float
    tempo: float = Field(..., ge=0.0)
    key: int = Field(..., ge=-1, le=11)
    mode: int = Field(..., ge=0, le=1)
    time_signature: int = Field(4, ge=0)

    def to_value(self) -> AudioFeatures:
        return AudioFeatures(**self.model_dump())

    @classmethod
    def from_value(cls, features: AudioFeatures) -> AudioFeaturesPayload:
        return cls(
            danceability=features.danceability,
            energy=features.energy,
            valence=features.valence,
            acousticness=features.acousticness,
            instrumentalness=features.instrumentalness,
            liveness=features.liveness,
            speechiness=features.speechiness,
            loudness=features.loudness,
            tempo=features.tempo,
            key=features.key,
            mode=features.mode,
            time_signature=features.time_signature,
        )


class TrackPayload(BaseModel):
    track_id: str = Field(..., min_length=1, max_length=64)
    name: str = ""
    artist_ids: List[int] = []
    album_id: Optional[int] = None
    genre_id: Optional[int] = None
    popularity: int = Field(0, ge=0, le=100)
    duration_ms: int = Field(0, ge=0)
    explicit: bool = False
    audio_features: Optional[AudioFeaturesPayload] = None

    def to_reference(self) -> Track:
        return Track(
            track_id=self.track_id,
            name=self.name,
            artist_ids=tuple(dict.fromkeys(self.artist_ids)),
            album_id=self.album_id,
            genre_id=self.genre_id,
            popularity=self.popularity,
            duration_ms=self.duration_ms,
            explicit=self.explicit,
            audio_features=self.audio_features.to_value() if self.audio_features else None,
        )


class TrackOut(TrackPayload):
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
    external_url: Optional[str] = None

    @classmethod
    def from_track(cls, track: Track, metadata: TrackMetadata | None = None) -> TrackOut:
        return cls(
            track_id=track.track_id,
            name=track.name,
            artist_ids=list(track.artist_ids),
            album_id=track.album_id,
            genre_id=track.genre_id,
            popularity=track.popularity,
            duration_ms=track.duration_ms,
            explicit=track.explicit,
            audio_features=AudioFeaturesPayload.from_value(track.audio_features) if track.audio_features else None,
            image_url=metadata.image_url if metadata else None,
            preview_url=metadata.preview_url if metadata else None,
            external_url=metadata.external_url if metadata else None,
        )


class RecommendRequest(BaseModel):
    reference: TrackPayload
    # Unknown modes and malformed limits are defaulted by the engine, never rejected.
    mode: Optional[Any] = None
    limit: Optional[Any] = None


class LikedRecommendRequest(BaseModel):
    track_ids: List[str] = Field(..., min_length=1)
    mode: Optional[Any] = None
    limit: Optional[Any] = None

    @field_validator("track_ids")
    @classmethod
    def _strip_ids(cls, value: List[str]) -> List[str]:
        cleaned = [track_id.strip() for track_id in value if track_id and track_id.strip()]
        if not cleaned:
            raise ValueError("at least one track id is required")
        return list(dict.fromkeys(cleaned))


class RecommendResponse(BaseModel):
    mode: str
    limit: int
    fallback: bool = False
    reference: TrackOut
    recommendations: List[TrackOut] = []


class HealthResponse(BaseModel):
    ok: bool = True
    catalog_size: int = 0


class SearchResponse(BaseModel):
    tracks: List[TrackOut] = []
    total: int = 0
    offset: int = 0
    limit: int = 0
    has_more: bool = False
