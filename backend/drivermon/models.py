from __future__ import annotations

import time

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from drivermon.db import Base

TRIP_STATUSES = ("active", "completed", "cancelled")
CLIP_STATUSES = ("uploading", "processing", "processed", "failed")


def now_ms() -> int:
    return int(time.time() * 1000)


class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (Index("ix_trips_user_status", "user_id", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ended_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)

    # Null while active; written together when the trip leaves "active".
    total_distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)

    locations: Mapped[list[TripLocation]] = relationship(back_populates="trip", cascade="all, delete-orphan")
    clips: Mapped[list[VideoClip]] = relationship(back_populates="trip", cascade="all, delete-orphan")
    events: Mapped[list[TripEvent]] = relationship(back_populates="trip", cascade="all, delete-orphan")

    @property
    def duration_ms(self) -> int | None:
        if self.ended_at is None:
            return None
        return max(0, self.ended_at - self.started_at)


class TripLocation(Base):
    __tablename__ = "trip_locations"
    __table_args__ = (UniqueConstraint("trip_id", "client_id", name="uq_trip_locations_client_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    trip_id: Mapped[str] = mapped_column(ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)

    captured_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)

    trip: Mapped[Trip] = relationship(back_populates="locations")


class VideoClip(Base):
    __tablename__ = "trip_video_clips"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    trip_id: Mapped[str] = mapped_column(ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)

    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)

    file_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="uploading", nullable=False)

    processed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)

    trip: Mapped[Trip] = relationship(back_populates="clips")


class TripEvent(Base):
    __tablename__ = "trip_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    trip_id: Mapped[str] = mapped_column(ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    offset: Mapped[float] = mapped_column(Float, nullable=False)

    image_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)

    trip: Mapped[Trip] = relationship(back_populates="events")
