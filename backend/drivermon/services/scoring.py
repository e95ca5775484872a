from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

HOUR_MS = 60 * 60 * 1000
BASE_SCORE = 100
MIN_DURATION_HOURS = 0.25

SEVERITY_PENALTIES: dict[str, int] = {
    "critical": 15,
    "warning": 8,
    "info": 3,
}

# Evaluated top-down; the first rule with a keyword in the label wins.
SEVERITY_RULES: list[tuple[tuple[str, ...], str]] = [
    (("phone", "distract", "asleep", "eye closed", "eye-closed"), "critical"),
    (("speed", "yawn", "drowsy", "fatigue"), "warning"),
]
DEFAULT_SEVERITY = "info"

# (lower bound, rating, message), highest band first.
RATING_BANDS: list[tuple[int, str, str]] = [
    (90, "Excellent Driving", "Top 10% of drivers today. Keep it up!"),
    (80, "Good Driving", "You're doing great! A few areas to improve."),
    (70, "Average Driving", "Room for improvement. Stay focused."),
    (60, "Below Average", "Multiple safety concerns detected."),
    (0, "Poor Driving", "Serious safety issues. Please drive carefully."),
]


@dataclass(frozen=True)
class TripScore:
    score: int
    rating: str
    message: str


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def classify_severity(event_type: str) -> str:
    label = event_type.lower()
    for keywords, tier in SEVERITY_RULES:
        if any(keyword in label for keyword in keywords):
            return tier
    return DEFAULT_SEVERITY


def event_penalty(event_type: str) -> int:
    return SEVERITY_PENALTIES[classify_severity(event_type)]


def score_rating(score: int) -> tuple[str, str]:
    for lower, rating, message in RATING_BANDS:
        if score >= lower:
            return rating, message
    _, rating, message = RATING_BANDS[-1]
    return rating, message


def calculate_trip_score(event_types: Iterable[str], trip_duration_ms: float) -> TripScore:
    """Score a trip from its event labels, normalized per hour with a 15 minute floor.

    Trips shorter than the floor are scored as if they lasted 15 minutes, so a
    couple of detections on a short drive do not wipe out the score.
    """
    total_penalty = sum(event_penalty(event_type) for event_type in event_types)
    duration_hours = max(trip_duration_ms / HOUR_MS, MIN_DURATION_HOURS)
    normalized = total_penalty / duration_hours

    score = max(0, min(BASE_SCORE, round_half_up(BASE_SCORE - normalized)))
    rating, message = score_rating(score)
    return TripScore(score=score, rating=rating, message=message)
