from drivermon.models import Trip, TripEvent, TripLocation, VideoClip
from drivermon.services.correlation import (
    correlate_events,
    event_timestamp,
    match_clip,
    nearest_location,
    summarize_events,
)


def make_clip(clip_id, start, end, key=None):
    return VideoClip(
        id=clip_id,
        trip_id="t1",
        start_time=start,
        end_time=end,
        duration=(end - start) // 1000,
        status="processed",
        file_key=key,
        created_at=0,
    )


def make_location(loc_id, captured_at, lat=1.0, lon=2.0):
    return TripLocation(
        id=loc_id, trip_id="t1", latitude=lat, longitude=lon, speed=None, captured_at=captured_at, created_at=0
    )


def make_event(event_id, event_type, offset, created_at=0, metadata=None):
    return TripEvent(
        id=event_id,
        trip_id="t1",
        event_type=event_type,
        offset=offset,
        image_key=f"events/t1/{event_id}.jpg",
        metadata_json=metadata,
        created_at=created_at,
    )


def test_event_timestamp_rounds_to_milliseconds():
    assert event_timestamp(1000, 14.0) == 15000
    assert event_timestamp(1000, 0.0004) == 1000
    assert event_timestamp(0, 0.0625) == 63


def test_clip_window_contains_event():
    clip = make_clip("c1", 1000, 31000)
    assert match_clip([clip], 15000) is clip
    assert match_clip([clip], 35000) is None


def test_shared_boundary_goes_to_earlier_clip():
    first = make_clip("c1", 0, 30000)
    second = make_clip("c2", 30000, 60000)
    assert match_clip([second, first], 30000) is first


def test_nearest_location_prefers_first_on_tie():
    a = make_location("a", 1000)
    b = make_location("b", 3000)
    assert nearest_location([a, b], 2000) is a
    assert nearest_location([a, b], 2900) is b


def test_nearest_location_with_no_samples():
    assert nearest_location([], 1000) is None


def test_correlate_events_attaches_clip_location_and_severity():
    trip = Trip(id="t1", user_id="u", started_at=1000, status="active", created_at=0, updated_at=0)
    events = [make_event("e2", "yawn", 40.0), make_event("e1", "phone", 14.0, metadata='{"box": [1, 2]}')]
    clips = [make_clip("c1", 1000, 31000, key="clips/t1/c1.webm")]
    locations = [make_location("l1", 14000), make_location("l2", 42000, lat=5.0)]

    result = correlate_events(trip, events, clips, locations, presign=lambda key: f"signed:{key}")

    assert [e.id for e in result] == ["e1", "e2"]
    phone, yawn = result
    assert phone.severity == "critical"
    assert phone.timestamp == 15000
    assert phone.video_clip.id == "c1"
    assert phone.video_clip.file_url == "signed:clips/t1/c1.webm"
    assert phone.image_url == "signed:events/t1/e1.jpg"
    assert phone.metadata == {"box": [1, 2]}
    assert phone.location.captured_at == 14000
    assert yawn.video_clip is None
    assert yawn.location.latitude == 5.0


def test_correlation_is_idempotent():
    trip = Trip(id="t1", user_id="u", started_at=0, status="active", created_at=0, updated_at=0)
    events = [make_event("e1", "phone", 5.0), make_event("e2", "speeding", 5.0, created_at=1)]
    clips = [make_clip("c1", 0, 30000)]
    locations = [make_location("l1", 4000), make_location("l2", 6000)]

    first = correlate_events(trip, events, clips, locations)
    second = correlate_events(trip, list(reversed(events)), clips, locations)
    assert first == second


def test_summarize_events_groups_by_category():
    summary = summarize_events([("1", "Drowsy eye"), ("2", "phone"), ("3", "yawn"), ("4", "seatbelt")])
    assert [(c.event_type, c.count) for c in summary] == [("Drowsiness", 2), ("Phone Usage", 1), ("Other Events", 1)]
    assert summary[0].event_ids == ["1", "3"]
