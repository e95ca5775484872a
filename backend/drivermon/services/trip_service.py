from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import dataclass

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from drivermon.core.config import settings
from drivermon.core.errors import BadRequestError, ConflictError, NotFoundError, UpstreamError
from drivermon.models import Trip, TripEvent, TripLocation, VideoClip, now_ms
from drivermon.schemas.trip import ClipPresignIn, LocationIn, TripUpdate
from drivermon.services.correlation import CorrelatedEvent, EventCategory, correlate_events, summarize_events
from drivermon.services.geo import trip_stats
from drivermon.services.object_store import ObjectStore, ObjectStoreError, clip_key, event_image_key
from drivermon.services.scoring import TripScore, calculate_trip_score, round_half_up, score_rating

logger = logging.getLogger(__name__)

TERMINAL_CLIP_STATUSES = {"processed", "failed"}


@dataclass
class UserStats:
    average_score: int
    total_minutes: int
    total_events: int


@dataclass
class TripReport:
    trip: Trip
    score: TripScore | None
    summary: list[EventCategory]
    events: list[CorrelatedEvent]
    location_count: int
    clip_count: int


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_active(trip: Trip) -> None:
    if trip.status != "active":
        raise ConflictError("Trip is not active")


# ---------------------------------------------------------------- trips


def create_trip(db: Session, user_id: str, started_at: int | None = None) -> Trip:
    if settings.enforce_single_active_trip:
        active = db.execute(
            select(Trip.id).where(and_(Trip.user_id == user_id, Trip.status == "active")).limit(1)
        ).scalar_one_or_none()
        if active:
            raise ConflictError(f"Trip {active} is still active")

    now = now_ms()
    trip = Trip(
        id=_new_id(),
        user_id=user_id,
        started_at=started_at if started_at is not None else now,
        status="active",
        created_at=now,
        updated_at=now,
    )
    db.add(trip)
    db.commit()
    db.refresh(trip)
    logger.info("Created trip %s for user %s", trip.id, user_id)
    return trip


def list_trips(db: Session, user_id: str) -> list[Trip]:
    return list(
        db.execute(select(Trip).where(Trip.user_id == user_id).order_by(Trip.started_at.desc())).scalars().all()
    )


def get_owned_trip(db: Session, trip_id: str, user_id: str) -> Trip:
    trip = db.get(Trip, trip_id)
    # Someone else's trip is indistinguishable from a missing one.
    if not trip or trip.user_id != user_id:
        raise NotFoundError("Trip not found")
    return trip


def _locations(db: Session, trip_id: str) -> list[TripLocation]:
    return list(
        db.execute(
            select(TripLocation)
            .where(TripLocation.trip_id == trip_id)
            .order_by(TripLocation.captured_at.asc(), TripLocation.created_at.asc(), TripLocation.id.asc())
        )
        .scalars()
        .all()
    )


def _events(db: Session, trip_id: str) -> list[TripEvent]:
    return list(
        db.execute(select(TripEvent).where(TripEvent.trip_id == trip_id).order_by(TripEvent.offset.asc()))
        .scalars()
        .all()
    )


def _clips(db: Session, trip_id: str) -> list[VideoClip]:
    return list(
        db.execute(select(VideoClip).where(VideoClip.trip_id == trip_id).order_by(VideoClip.start_time.asc()))
        .scalars()
        .all()
    )


def update_trip(db: Session, trip: Trip, update: TripUpdate) -> Trip:
    """Apply a partial update; leaving ``active`` writes the end-of-trip fields in one commit."""
    _require_active(trip)
    new_status = update.status or trip.status

    if new_status == "active":
        if update.ended_at is not None or update.total_distance is not None or update.average_speed is not None:
            raise BadRequestError("endedAt, totalDistance and averageSpeed can only be set when the trip ends")
        trip.updated_at = now_ms()
        db.commit()
        db.refresh(trip)
        return trip

    ended_at = update.ended_at if update.ended_at is not None else now_ms()
    if ended_at < trip.started_at:
        raise BadRequestError("endedAt must not precede startedAt")

    total_distance = update.total_distance
    average_speed = update.average_speed
    if total_distance is None or average_speed is None:
        stats = trip_stats(_locations(db, trip.id))
        total_distance = stats.total_distance if total_distance is None else total_distance
        average_speed = stats.average_speed if average_speed is None else average_speed

    score = None
    if new_status == "completed":
        score = calculate_trip_score([e.event_type for e in _events(db, trip.id)], ended_at - trip.started_at).score

    trip.status = new_status
    trip.ended_at = ended_at
    trip.total_distance = total_distance
    trip.average_speed = average_speed
    trip.score = score
    trip.updated_at = now_ms()
    db.commit()
    db.refresh(trip)
    logger.info("Trip %s %s (score=%s)", trip.id, new_status, score)
    return trip


def user_stats(db: Session, user_id: str) -> UserStats:
    completed = and_(Trip.user_id == user_id, Trip.status == "completed")
    avg_score, total_ms = db.execute(
        select(func.avg(Trip.score), func.sum(Trip.ended_at - Trip.started_at)).where(completed)
    ).one()
    total_events = db.execute(
        select(func.count(TripEvent.id)).join(Trip, TripEvent.trip_id == Trip.id).where(completed)
    ).scalar_one()
    return UserStats(
        average_score=round_half_up(float(avg_score or 0)),
        total_minutes=round_half_up(float(total_ms or 0) / 1000 / 60),
        total_events=int(total_events or 0),
    )


# ------------------------------------------------------------ locations


def add_locations(db: Session, trip: Trip, locations: list[LocationIn]) -> tuple[int, int]:
    """Insert a location batch, skipping samples whose client id is already stored.

    Returns (inserted, duplicates). Samples without a client id are always inserted.
    """
    _require_active(trip)
    if not locations:
        raise BadRequestError("locations array is required")

    client_ids = {loc.client_id for loc in locations if loc.client_id}
    seen: set[str] = set()
    if client_ids:
        seen = set(
            db.execute(
                select(TripLocation.client_id).where(
                    TripLocation.trip_id == trip.id, TripLocation.client_id.in_(client_ids)
                )
            )
            .scalars()
            .all()
        )

    now = now_ms()
    inserted = 0
    duplicates = 0
    for loc in locations:
        if loc.client_id and loc.client_id in seen:
            duplicates += 1
            continue
        if loc.client_id:
            seen.add(loc.client_id)
        db.add(
            TripLocation(
                id=_new_id(),
                trip_id=trip.id,
                client_id=loc.client_id,
                latitude=loc.latitude,
                longitude=loc.longitude,
                speed=loc.speed,
                altitude=loc.altitude,
                accuracy=loc.accuracy,
                heading=loc.heading,
                captured_at=loc.captured_at,
                created_at=now,
            )
        )
        inserted += 1

    try:
        db.commit()
    except IntegrityError:
        # A concurrent retry of the same batch won the race; nothing from this one is kept.
        db.rollback()
        raise ConflictError("Location batch conflicts with stored samples; retry")
    return inserted, duplicates


def list_locations(db: Session, trip: Trip) -> list[TripLocation]:
    return _locations(db, trip.id)


# ---------------------------------------------------------------- clips


def _check_clip_bounds(start_time: int, end_time: int) -> None:
    if end_time < start_time:
        raise BadRequestError("endTime must not precede startTime")


def upload_clip(
    db: Session,
    store: ObjectStore,
    trip: Trip,
    data: bytes,
    content_type: str,
    start_time: int,
    end_time: int,
) -> VideoClip:
    _require_active(trip)
    _check_clip_bounds(start_time, end_time)

    clip_id = _new_id()
    key = clip_key(trip.id, clip_id)
    clip = VideoClip(
        id=clip_id,
        trip_id=trip.id,
        start_time=start_time,
        end_time=end_time,
        duration=(end_time - start_time) // 1000,
        file_key=key,
        file_size=len(data),
        status="uploading",
        created_at=now_ms(),
    )
    db.add(clip)
    db.flush()

    try:
        clip.file_url = store.put(key, data, content_type or "video/webm")
    except ObjectStoreError as exc:
        logger.error("Upload of clip %s for trip %s failed: %s", clip_id, trip.id, exc)
        clip.status = "failed"
        db.commit()
        raise UpstreamError("Failed to store video clip")

    clip.status = "processed"
    clip.processed_at = now_ms()
    db.commit()
    db.refresh(clip)
    return clip


def presign_clip(db: Session, store: ObjectStore, trip: Trip, body: ClipPresignIn) -> tuple[VideoClip, str]:
    _require_active(trip)
    _check_clip_bounds(body.start_time, body.end_time)

    clip_id = _new_id()
    key = clip_key(trip.id, clip_id)
    presigned_url = store.presign_upload(key, body.content_type)
    clip = VideoClip(
        id=clip_id,
        trip_id=trip.id,
        start_time=body.start_time,
        end_time=body.end_time,
        duration=body.duration if body.duration is not None else (body.end_time - body.start_time) // 1000,
        file_key=key,
        status="uploading",
        created_at=now_ms(),
    )
    db.add(clip)
    db.commit()
    db.refresh(clip)
    return clip, presigned_url


def set_clip_status(db: Session, trip: Trip, clip_id: str, status: str) -> VideoClip:
    clip = db.get(VideoClip, clip_id)
    if not clip or clip.trip_id != trip.id:
        raise NotFoundError("Clip not found")
    if clip.status in TERMINAL_CLIP_STATUSES:
        raise ConflictError(f"Clip is already {clip.status}")
    clip.status = status
    if status == "processed":
        clip.processed_at = now_ms()
    db.commit()
    db.refresh(clip)
    return clip


def list_clips(db: Session, trip: Trip) -> list[VideoClip]:
    return _clips(db, trip.id)


# --------------------------------------------------------------- events


def _parse_offset(raw: str | None) -> float:
    if raw is None or not str(raw).strip():
        raise BadRequestError("offset is required")
    try:
        offset = float(raw)
    except ValueError:
        raise BadRequestError("offset must be a valid number")
    if not math.isfinite(offset):
        raise BadRequestError("offset must be a valid number")
    if offset < 0:
        raise BadRequestError("offset must not be negative")
    return offset


def _parse_confidence(raw: str | None) -> float | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        confidence = float(raw)
    except ValueError:
        raise BadRequestError("confidence must be a valid number")
    if not (0.0 <= confidence <= 1.0):
        raise BadRequestError("confidence must be between 0 and 1")
    return confidence


def _parse_metadata(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        raise BadRequestError("metadata must be valid JSON")
    if not isinstance(value, dict):
        raise BadRequestError("metadata must be a JSON object")
    return raw


def ingest_event(
    db: Session,
    store: ObjectStore,
    trip_id: str | None,
    image: bytes | None,
    image_content_type: str | None,
    offset_raw: str | None,
    prediction: str | None,
    confidence_raw: str | None = None,
    metadata_raw: str | None = None,
) -> TripEvent:
    """Validate and persist one detection pushed by the inference service.

    Everything is validated before the image is stored, so a rejected request
    leaves neither a blob nor a row behind.
    """
    if not trip_id:
        raise BadRequestError("trip_id query parameter is required")
    trip = db.get(Trip, trip_id)
    if not trip:
        raise NotFoundError("Trip not found")
    if not image:
        raise BadRequestError("image file is required")
    offset = _parse_offset(offset_raw)
    if not prediction or not prediction.strip():
        raise BadRequestError("prediction is required")
    confidence = _parse_confidence(confidence_raw)
    metadata_json = _parse_metadata(metadata_raw)

    event_id = _new_id()
    key = event_image_key(trip_id, event_id)
    try:
        image_url = store.put(key, image, image_content_type or "image/jpeg")
    except ObjectStoreError as exc:
        logger.error("Storing detection image for trip %s failed: %s", trip_id, exc)
        raise UpstreamError("Failed to store detection image")

    event = TripEvent(
        id=event_id,
        trip_id=trip_id,
        event_type=prediction.strip(),
        offset=offset,
        image_key=key,
        image_url=image_url,
        confidence=confidence,
        metadata_json=metadata_json,
        created_at=now_ms(),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Detection %r at %.2fs recorded for trip %s", event.event_type, offset, trip_id)
    return event


def correlated_events(db: Session, store: ObjectStore, trip: Trip) -> list[CorrelatedEvent]:
    return correlate_events(
        trip, _events(db, trip.id), _clips(db, trip.id), _locations(db, trip.id), store.presign_download
    )


def trip_report(db: Session, store: ObjectStore, trip: Trip) -> TripReport:
    events = _events(db, trip.id)
    clips = _clips(db, trip.id)
    locations = _locations(db, trip.id)

    score = None
    if trip.score is not None:
        rating, message = score_rating(trip.score)
        score = TripScore(score=trip.score, rating=rating, message=message)

    return TripReport(
        trip=trip,
        score=score,
        summary=summarize_events([(e.id, e.event_type) for e in events]),
        events=correlate_events(trip, events, clips, locations, store.presign_download),
        location_count=len(locations),
        clip_count=len(clips),
    )
