from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from ..catalog.types import AudioFeatures, Track as TrackValue
from .base import Base


class Genre(Base):
    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Artist(Base):
    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Album(Base):
    __tablename__ = "albums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class TrackArtist(Base):
    __tablename__ = "track_artists"

    track_id: Mapped[str] = mapped_column(String(64), ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True)
    artist_id: Mapped[int] = mapped_column(Integer, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Track(Base):
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    album_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("albums.id", ondelete="SET NULL"))
    genre_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("genres.id", ondelete="SET NULL"), index=True)
    popularity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    artist_links: Mapped[list[TrackArtist]] = relationship(
        lazy="selectin",
        order_by=TrackArtist.position,
        cascade="all, delete-orphan",
    )
    features: Mapped[TrackAudioFeatures | None] = relationship(
        back_populates="track",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_value(self) -> TrackValue:
        return TrackValue(
            track_id=self.id,
            name=self.name,
            artist_ids=tuple(link.artist_id for link in self.artist_links),
            album_id=self.album_id,
            genre_id=self.genre_id,
            popularity=self.popularity or 0,
            duration_ms=self.duration_ms or 0,
            explicit=bool(self.explicit),
            audio_features=self.features.to_value() if self.features is not None else None,
        )


class TrackAudioFeatures(Base):
    __tablename__ = "audio_features"

    track_id: Mapped[str] = mapped_column(String(64), ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True)
    danceability: Mapped[float] = mapped_column(Float, nullable=False)
    energy: Mapped[float] = mapped_column(Float, nullable=False)
    valence: Mapped[float] = mapped_column(Float, nullable=False)
    acousticness: Mapped[float] = mapped_column(Float, nullable=False)
    instrumentalness: Mapped[float] = mapped_column(Float, nullable=False)
    liveness: Mapped[float] = mapped_column(Float, nullable=False)
    speechiness: Mapped[float] = mapped_column(Float, nullable=False)
    loudness: Mapped[float] = mapped_column(Float, nullable=False)
    tempo: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    key: Mapped[int] = mapped_column(Integer, nullable=False)
    mode: Mapped[int] = mapped_column(Integer, nullable=False)
    time_signature: Mapped[int] = mapped_column(Integer, nullable=False)

    track: Mapped[Track] = relationship(back_populates="features")

    def to_value(self) -> AudioFeatures:
        return AudioFeatures(
            danceability=self.danceability,
            energy=self.energy,
            valence=self.valence,
            acousticness=self.acousticness,
            instrumentalness=self.instrumentalness,
            liveness=self.liveness,
            speechiness=self.speechiness,
            loudness=self.loudness,
            tempo=self.tempo,
            key=self.key,
            mode=self.mode,
            time_signature=self.time_signature,
        )
