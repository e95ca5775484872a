"""
Device-side collaborators used by a recording session

Concrete implementations wrap whatever the host platform offers (a GPS
daemon, a V4L2 camera, a browser bridge); the session only relies on these
protocols and error types.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class PositionFix:
    latitude: float
    longitude: float
    timestamp: int
    speed: float | None = None
    altitude: float | None = None
    accuracy: float | None = None
    heading: float | None = None


class CapabilityMissing(Exception):
    """The platform has no such device or format at all."""


class PositionError(Exception):
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    MESSAGES = {
        PERMISSION_DENIED: "Location permission denied",
        POSITION_UNAVAILABLE: "Location information unavailable",
        TIMEOUT: "Location request timed out",
    }

    def __init__(self, code: int) -> None:
        self.code = code
        self.message = self.MESSAGES.get(code, "An unknown error occurred")
        super().__init__(self.message)


class CameraError(Exception):
    MESSAGES = {
        "permission_denied": "Camera permission denied",
        "not_found": "No camera found",
        "in_use": "Camera is in use by another application",
    }

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.message = self.MESSAGES.get(kind, "Failed to access camera")
        super().__init__(self.message)


class MediaError(Exception):
    """The media pipeline broke while recording."""


class InferenceError(Exception):
    pass


class PositionSource(Protocol):
    def watch(
        self, on_position: Callable[[PositionFix], None], on_error: Callable[[PositionError], None]
    ) -> Any: ...

    def clear_watch(self, watch_id: Any) -> None: ...


class MediaStream(Protocol):
    def supports(self, mime_type: str) -> bool: ...

    def drain(self) -> bytes:
        """Encoded bytes captured since the previous drain; still valid after stop()."""
        ...

    def stop(self) -> None: ...


class Camera(Protocol):
    async def open(self) -> MediaStream: ...
