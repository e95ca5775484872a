"""
GPS aggregation and periodic batch flushing

GPSAggregator keeps every fix seen during a trip plus a sent-cursor; the
LocationBatcher ships whatever lies past the cursor and only moves it once
the server has accepted the batch.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from drivermon.client.api_client import ApiError
from drivermon.client.devices import PositionError, PositionFix, PositionSource
from drivermon.core.config import settings
from drivermon.models import now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GPSSample:
    latitude: float
    longitude: float
    captured_at: int
    speed: float | None = None
    altitude: float | None = None
    accuracy: float | None = None
    heading: float | None = None
    client_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_fix(cls, fix: PositionFix) -> GPSSample:
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            captured_at=fix.timestamp,
            speed=fix.speed,
            altitude=fix.altitude,
            accuracy=fix.accuracy,
            heading=fix.heading,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "clientId": self.client_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "altitude": self.altitude,
            "accuracy": self.accuracy,
            "heading": self.heading,
            "capturedAt": self.captured_at,
        }


def default_position() -> GPSSample:
    """Placeholder shown while no real fix is available. Never persisted."""
    return GPSSample(
        latitude=settings.default_latitude,
        longitude=settings.default_longitude,
        captured_at=now_ms(),
        client_id="default",
    )


class GPSAggregator:
    def __init__(self, source: PositionSource | None) -> None:
        self._source = source
        self._watch_id: Any = None
        self._history: list[GPSSample] = []
        self._sent = 0
        self.current_position: GPSSample | None = None
        self.error: str | None = None
        self.is_tracking = False

    @property
    def history(self) -> tuple[GPSSample, ...]:
        return tuple(self._history)

    @property
    def unsent_count(self) -> int:
        return len(self._history) - self._sent

    def start(self) -> None:
        if self.is_tracking:
            return
        if self._source is None:
            self.error = "Geolocation is not supported"
            self.current_position = default_position()
            logger.warning("No position source, using default location")
            return
        self.error = None
        self.is_tracking = True
        self._watch_id = self._source.watch(self._on_position, self._on_error)

    def stop(self) -> None:
        if self._source is not None and self._watch_id is not None:
            self._source.clear_watch(self._watch_id)
        self._watch_id = None
        self.is_tracking = False

    def _on_position(self, fix: PositionFix) -> None:
        sample = GPSSample.from_fix(fix)
        self._history.append(sample)
        self.current_position = sample
        self.error = None

    def _on_error(self, err: PositionError) -> None:
        logger.warning("GPS error %s: %s", err.code, err.message)
        self.error = err.message
        self.current_position = default_position()

    def pending(self) -> tuple[int, list[GPSSample]]:
        """Unsent samples and the cursor value that marks them sent."""
        end = len(self._history)
        return end, self._history[self._sent:end]

    def mark_sent(self, cursor: int) -> None:
        # Fixes recorded while a send was in flight stay pending.
        self._sent = max(self._sent, min(cursor, len(self._history)))


class LocationBatcher:
    def __init__(
        self,
        aggregator: GPSAggregator,
        send: Callable[[Sequence[GPSSample]], Awaitable[Any]],
    ) -> None:
        self.aggregator = aggregator
        self._send = send
        self._lock = asyncio.Lock()
        self.last_error: str | None = None

    async def flush(self) -> int:
        """Send pending samples; returns how many were accepted."""
        async with self._lock:
            cursor, batch = self.aggregator.pending()
            if not batch:
                return 0
            try:
                await self._send(batch)
            except ApiError as exc:
                logger.warning("Location batch of %d failed, will retry: %s", len(batch), exc)
                self.last_error = str(exc)
                return 0
            self.aggregator.mark_sent(cursor)
            self.last_error = None
            return len(batch)
