from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from drivermon.models import Trip, TripEvent, TripLocation, VideoClip
from drivermon.services.scoring import classify_severity, round_half_up

Presign = Callable[[str], str]


@dataclass(frozen=True)
class ClipRef:
    id: str
    start_time: int
    end_time: int
    duration: int
    status: str
    file_url: str | None


@dataclass(frozen=True)
class LocationRef:
    latitude: float
    longitude: float
    speed: float | None
    captured_at: int


@dataclass(frozen=True)
class CorrelatedEvent:
    id: str
    trip_id: str
    event_type: str
    severity: str
    offset: float
    timestamp: int
    confidence: float | None
    created_at: int
    image_url: str | None = None
    metadata: dict[str, Any] | None = None
    video_clip: ClipRef | None = None
    location: LocationRef | None = None


@dataclass
class EventCategory:
    event_type: str
    description: str
    count: int = 0
    event_ids: list[str] = field(default_factory=list)


# Display grouping for the trip report; independent of the scoring tiers.
SUMMARY_CATEGORIES: list[tuple[str, tuple[str, ...], str, str]] = [
    ("drowsiness", ("drowsy", "yawn", "asleep", "eye closed", "fatigue"), "Drowsiness", "Eyeclosed, Yawning, Asleep"),
    ("phone", ("phone", "distract"), "Phone Usage", "Distraction detected"),
    ("speeding", ("speed",), "Speeding", "Speed limit exceeded"),
]
OTHER_CATEGORY = ("other", "Other Events", "Various detections")


def event_timestamp(started_at: int, offset: float) -> int:
    return started_at + round_half_up(offset * 1000)


def match_clip(clips: Sequence[VideoClip], timestamp: int) -> VideoClip | None:
    """Clip whose [start_time, end_time] contains the timestamp.

    Boundary instants shared by two adjacent clips resolve to the earlier one.
    Gaps between clips are normal and yield None.
    """
    for clip in sorted(clips, key=lambda c: (c.start_time, c.end_time, c.id)):
        if clip.start_time <= timestamp <= clip.end_time:
            return clip
    return None


def nearest_location(locations: Sequence[TripLocation], timestamp: int) -> TripLocation | None:
    if not locations:
        return None
    # min() keeps the first of equally distant samples.
    return min(locations, key=lambda loc: abs(loc.captured_at - timestamp))


def _parse_metadata(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


def _clip_ref(clip: VideoClip, presign: Presign | None) -> ClipRef:
    file_url = None
    if clip.file_key:
        file_url = presign(clip.file_key) if presign else clip.file_url
    return ClipRef(
        id=clip.id,
        start_time=clip.start_time,
        end_time=clip.end_time,
        duration=clip.duration,
        status=clip.status,
        file_url=file_url,
    )


def correlate_event(
    trip: Trip,
    event: TripEvent,
    clips: Sequence[VideoClip],
    locations: Sequence[TripLocation],
    presign: Presign | None = None,
) -> CorrelatedEvent:
    timestamp = event_timestamp(trip.started_at, event.offset)
    clip = match_clip(clips, timestamp)
    loc = nearest_location(locations, timestamp)

    image_url = None
    if event.image_key:
        image_url = presign(event.image_key) if presign else event.image_url

    return CorrelatedEvent(
        id=event.id,
        trip_id=event.trip_id,
        event_type=event.event_type,
        severity=classify_severity(event.event_type),
        offset=event.offset,
        timestamp=timestamp,
        confidence=event.confidence,
        created_at=event.created_at,
        image_url=image_url,
        metadata=_parse_metadata(event.metadata_json),
        video_clip=_clip_ref(clip, presign) if clip else None,
        location=(
            LocationRef(latitude=loc.latitude, longitude=loc.longitude, speed=loc.speed, captured_at=loc.captured_at)
            if loc
            else None
        ),
    )


def correlate_events(
    trip: Trip,
    events: Sequence[TripEvent],
    clips: Sequence[VideoClip],
    locations: Sequence[TripLocation],
    presign: Presign | None = None,
) -> list[CorrelatedEvent]:
    ordered = sorted(events, key=lambda e: (e.offset, e.created_at, e.id))
    return [correlate_event(trip, ev, clips, locations, presign) for ev in ordered]


def summarize_events(event_types: Sequence[tuple[str, str]]) -> list[EventCategory]:
    """Group (event_id, event_type) pairs into report categories, in first-seen order."""
    categories: dict[str, EventCategory] = {}
    for event_id, event_type in event_types:
        label = event_type.lower()
        key, name, description = OTHER_CATEGORY
        for cat_key, keywords, cat_name, cat_description in SUMMARY_CATEGORIES:
            if any(k in label for k in keywords):
                key, name, description = cat_key, cat_name, cat_description
                break
        category = categories.setdefault(key, EventCategory(event_type=name, description=description))
        category.count += 1
        category.event_ids.append(event_id)
    return list(categories.values())
