"""
Webhook sink for detections pushed by the inference service
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from drivermon.db import get_db
from drivermon.schemas.trip import EventOut
from drivermon.services import trip_service
from drivermon.services.object_store import ObjectStore, get_object_store

router = APIRouter()


def _text(value: str | UploadFile | None) -> str | None:
    if value is None or isinstance(value, UploadFile):
        return None
    return str(value)


@router.post("/detections", response_model=EventOut, status_code=201)
async def detection_webhook(
    request: Request,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> EventOut:
    """
    Receive one AI detection for a trip

    Query params:
    - trip_id: trip the detection belongs to

    Form data:
    - image: still frame of the detection
    - offset: seconds since the trip started
    - prediction: detected class label, e.g. "Drowsy eye", "phone"
    - confidence, metadata: optional
    """
    trip_id = request.query_params.get("trip_id")
    form = await request.form()
    image = form.get("image")
    image_bytes = await image.read() if isinstance(image, UploadFile) else None
    image_type = image.content_type if isinstance(image, UploadFile) else None

    event = trip_service.ingest_event(
        db,
        store,
        trip_id=trip_id,
        image=image_bytes,
        image_content_type=image_type,
        offset_raw=_text(form.get("offset")),
        prediction=_text(form.get("prediction")),
        confidence_raw=_text(form.get("confidence")),
        metadata_raw=_text(form.get("metadata")),
    )
    return EventOut(
        id=event.id,
        trip_id=event.trip_id,
        event_type=event.event_type,
        offset=event.offset,
        image_url=event.image_url,
        confidence=event.confidence,
        metadata=json.loads(event.metadata_json) if event.metadata_json else None,
        created_at=event.created_at,
    )
