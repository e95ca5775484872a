from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TripCreate(CamelModel):
    started_at: int | None = Field(default=None, ge=0)


class TripUpdate(CamelModel):
    status: Literal["active", "completed", "cancelled"] | None = None
    ended_at: int | None = Field(default=None, ge=0)
    total_distance: float | None = Field(default=None, ge=0)
    average_speed: float | None = Field(default=None, ge=0)


class TripOut(CamelModel):
    id: str
    user_id: str
    started_at: int
    ended_at: int | None = None
    status: str
    total_distance: float | None = None
    average_speed: float | None = None
    score: int | None = None
    created_at: int
    updated_at: int


class TripListOut(CamelModel):
    trips: list[TripOut]


class TripStatsOut(CamelModel):
    average_score: int
    total_minutes: int
    total_events: int


class LocationIn(CamelModel):
    client_id: str | None = Field(default=None, max_length=64)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    speed: float | None = None
    altitude: float | None = None
    accuracy: float | None = None
    heading: float | None = None
    captured_at: int = Field(ge=0)


class LocationBatchIn(CamelModel):
    locations: list[LocationIn] | None = None


class LocationBatchOut(CamelModel):
    inserted: int
    duplicates: int = 0


class LocationOut(CamelModel):
    id: str
    trip_id: str
    client_id: str | None = None
    latitude: float
    longitude: float
    speed: float | None = None
    altitude: float | None = None
    accuracy: float | None = None
    heading: float | None = None
    captured_at: int
    created_at: int


class LocationListOut(CamelModel):
    locations: list[LocationOut]


class ClipPresignIn(CamelModel):
    get_presigned_url: bool = True
    start_time: int = Field(ge=0)
    end_time: int = Field(ge=0)
    duration: int | None = Field(default=None, ge=0)
    content_type: str = "video/webm"


class ClipPresignOut(CamelModel):
    id: str
    presigned_url: str
    status: str


class ClipUploadOut(CamelModel):
    id: str
    file_url: str | None
    status: str


class ClipStatusUpdate(CamelModel):
    status: Literal["processing", "processed", "failed"]


class ClipOut(CamelModel):
    id: str
    trip_id: str
    start_time: int
    end_time: int
    duration: int
    file_url: str | None = None
    file_size: int | None = None
    status: str
    processed_at: int | None = None
    created_at: int


class ClipListOut(CamelModel):
    clips: list[ClipOut]


class EventOut(CamelModel):
    id: str
    trip_id: str
    event_type: str
    offset: float
    image_url: str | None = None
    confidence: float | None = None
    metadata: dict[str, Any] | None = None
    created_at: int


class VideoClipRefOut(CamelModel):
    id: str
    start_time: int
    end_time: int
    duration: int
    status: str
    file_url: str | None = None


class LocationRefOut(CamelModel):
    latitude: float
    longitude: float
    speed: float | None = None
    captured_at: int


class CorrelatedEventOut(CamelModel):
    id: str
    trip_id: str
    event_type: str
    severity: str
    offset: float
    timestamp: int
    image_url: str | None = None
    confidence: float | None = None
    metadata: dict[str, Any] | None = None
    created_at: int
    video_clip: VideoClipRefOut | None = None
    location: LocationRefOut | None = None


class EventListOut(CamelModel):
    events: list[CorrelatedEventOut]


class ScoreOut(CamelModel):
    score: int
    rating: str
    message: str


class EventCategoryOut(CamelModel):
    event_type: str
    description: str
    count: int


class TripReportOut(CamelModel):
    trip: TripOut
    duration_ms: int | None = None
    score: ScoreOut | None = None
    summary: list[EventCategoryOut] = Field(default_factory=list)
    events: list[CorrelatedEventOut] = Field(default_factory=list)
    location_count: int = 0
    clip_count: int = 0
