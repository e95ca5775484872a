from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from drivermon.auth import get_current_user
from drivermon.core.errors import BadRequestError
from drivermon.db import get_db
from drivermon.models import Trip
from drivermon.schemas.trip import (
    ClipListOut,
    ClipOut,
    ClipPresignIn,
    ClipPresignOut,
    ClipStatusUpdate,
    ClipUploadOut,
    CorrelatedEventOut,
    EventCategoryOut,
    EventListOut,
    LocationBatchIn,
    LocationBatchOut,
    LocationListOut,
    LocationOut,
    ScoreOut,
    TripCreate,
    TripListOut,
    TripOut,
    TripReportOut,
    TripStatsOut,
    TripUpdate,
)
from drivermon.services import trip_service
from drivermon.services.object_store import ObjectStore, get_object_store
from drivermon.services.report_pdf import render_trip_report

router = APIRouter()


def _owned_trip(trip_id: str, db: Session = Depends(get_db), user_id: str = Depends(get_current_user)) -> Trip:
    return trip_service.get_owned_trip(db, trip_id, user_id)


def _int_field(raw: str | UploadFile | None) -> int:
    try:
        return int(str(raw))
    except (TypeError, ValueError):
        raise BadRequestError("startTime and endTime are required")


@router.post("/trips", response_model=TripOut, status_code=201)
def create_trip(
    body: TripCreate | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> TripOut:
    trip = trip_service.create_trip(db, user_id, body.started_at if body else None)
    return TripOut.model_validate(trip)


@router.get("/trips", response_model=TripListOut)
def list_trips(db: Session = Depends(get_db), user_id: str = Depends(get_current_user)) -> TripListOut:
    return TripListOut(trips=[TripOut.model_validate(t) for t in trip_service.list_trips(db, user_id)])


@router.get("/trips/stats", response_model=TripStatsOut)
def trip_stats(db: Session = Depends(get_db), user_id: str = Depends(get_current_user)) -> TripStatsOut:
    stats = trip_service.user_stats(db, user_id)
    return TripStatsOut(
        average_score=stats.average_score, total_minutes=stats.total_minutes, total_events=stats.total_events
    )


@router.get("/trips/{trip_id}", response_model=TripOut)
def get_trip(trip: Trip = Depends(_owned_trip)) -> TripOut:
    return TripOut.model_validate(trip)


@router.patch("/trips/{trip_id}", response_model=TripOut)
def update_trip(body: TripUpdate, trip: Trip = Depends(_owned_trip), db: Session = Depends(get_db)) -> TripOut:
    return TripOut.model_validate(trip_service.update_trip(db, trip, body))


@router.post("/trips/{trip_id}/locations", response_model=LocationBatchOut, status_code=201)
def add_locations(
    body: LocationBatchIn, trip: Trip = Depends(_owned_trip), db: Session = Depends(get_db)
) -> LocationBatchOut:
    inserted, duplicates = trip_service.add_locations(db, trip, body.locations or [])
    return LocationBatchOut(inserted=inserted, duplicates=duplicates)


@router.get("/trips/{trip_id}/locations", response_model=LocationListOut)
def list_locations(trip: Trip = Depends(_owned_trip), db: Session = Depends(get_db)) -> LocationListOut:
    return LocationListOut(locations=[LocationOut.model_validate(loc) for loc in trip_service.list_locations(db, trip)])


@router.post("/trips/{trip_id}/clips", response_model=None, status_code=201)
async def create_clip(
    request: Request,
    trip: Trip = Depends(_owned_trip),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> ClipPresignOut | ClipUploadOut:
    """Upload a clip as multipart form data, or request a presigned upload URL with JSON."""
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            body = ClipPresignIn.model_validate(await request.json())
        except (ValidationError, ValueError):
            raise BadRequestError("startTime and endTime are required")
        clip, presigned_url = trip_service.presign_clip(db, store, trip, body)
        return ClipPresignOut(id=clip.id, presigned_url=presigned_url, status=clip.status)

    if "multipart/form-data" in content_type:
        form = await request.form()
        video = form.get("video")
        if not isinstance(video, UploadFile):
            raise BadRequestError("video file is required")
        start_time = _int_field(form.get("startTime"))
        end_time = _int_field(form.get("endTime"))
        data = await video.read()
        clip = trip_service.upload_clip(db, store, trip, data, video.content_type, start_time, end_time)
        return ClipUploadOut(id=clip.id, file_url=clip.file_url, status=clip.status)

    raise BadRequestError("Invalid content type")


@router.get("/trips/{trip_id}/clips", response_model=ClipListOut)
def list_clips(trip: Trip = Depends(_owned_trip), db: Session = Depends(get_db)) -> ClipListOut:
    return ClipListOut(clips=[ClipOut.model_validate(c) for c in trip_service.list_clips(db, trip)])


@router.patch("/trips/{trip_id}/clips/{clip_id}", response_model=ClipOut)
def update_clip(
    clip_id: str, body: ClipStatusUpdate, trip: Trip = Depends(_owned_trip), db: Session = Depends(get_db)
) -> ClipOut:
    return ClipOut.model_validate(trip_service.set_clip_status(db, trip, clip_id, body.status))


@router.get("/trips/{trip_id}/events", response_model=EventListOut)
def list_events(
    trip: Trip = Depends(_owned_trip),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> EventListOut:
    events = trip_service.correlated_events(db, store, trip)
    return EventListOut(events=[CorrelatedEventOut.model_validate(e) for e in events])


@router.get("/trips/{trip_id}/report", response_model=TripReportOut)
def get_report(
    trip: Trip = Depends(_owned_trip),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> TripReportOut:
    report = trip_service.trip_report(db, store, trip)
    return TripReportOut(
        trip=TripOut.model_validate(report.trip),
        duration_ms=report.trip.duration_ms,
        score=ScoreOut.model_validate(report.score) if report.score else None,
        summary=[EventCategoryOut.model_validate(c) for c in report.summary],
        events=[CorrelatedEventOut.model_validate(e) for e in report.events],
        location_count=report.location_count,
        clip_count=report.clip_count,
    )


@router.get("/trips/{trip_id}/report.pdf")
def get_report_pdf(
    trip: Trip = Depends(_owned_trip),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    pdf = render_trip_report(trip_service.trip_report(db, store, trip))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="trip-{trip.id}.pdf"'},
    )
