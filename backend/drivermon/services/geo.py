from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

EARTH_RADIUS_M = 6_371_000.0


class Positioned(Protocol):
    latitude: float
    longitude: float
    speed: float | None


@dataclass(frozen=True)
class TripStats:
    total_distance: float
    average_speed: float


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two WGS84 coordinates."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def total_distance(samples: Sequence[Positioned]) -> float:
    if len(samples) < 2:
        return 0.0
    return sum(
        haversine_m(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
        for prev, curr in zip(samples, samples[1:])
    )


def average_speed(samples: Sequence[Positioned]) -> float:
    # Samples without a usable reading are excluded, not counted as zero.
    valid = [s.speed for s in samples if s.speed is not None and s.speed >= 0 and math.isfinite(s.speed)]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


def trip_stats(samples: Sequence[Positioned]) -> TripStats:
    return TripStats(total_distance=total_distance(samples), average_speed=average_speed(samples))
