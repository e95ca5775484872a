"""
Trip recording session

Drives one trip from creation to finalization: GPS tracking with periodic
batch flushes, chunked video upload and the optional live inference stream
all run side by side on the event loop. A failure in one stream is recorded
and the others keep going.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from enum import Enum

from drivermon.client.api_client import ApiError, TripApiClient
from drivermon.client.devices import Camera, CameraError, CapabilityMissing, MediaStream, PositionSource
from drivermon.client.gps import GPSAggregator, GPSSample, LocationBatcher
from drivermon.client.inference import InferenceStream
from drivermon.client.recorder import ChunkedRecorder, VideoChunk
from drivermon.core.config import settings
from drivermon.models import now_ms
from drivermon.services.geo import TripStats, trip_stats

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    RUNNING = "running"
    ENDING = "ending"
    ENDED = "ended"
    ERROR = "error"


class TripSession:
    def __init__(
        self,
        api: TripApiClient,
        positions: PositionSource | None,
        camera: Camera | None,
        inference: InferenceStream | None = None,
        *,
        gps_flush_seconds: float = settings.gps_flush_seconds,
        chunk_seconds: float = settings.chunk_seconds,
        final_flush_timeout: float | None = settings.final_flush_timeout_sec,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.api = api
        self.camera = camera
        self.inference = inference
        self.gps_flush_seconds = gps_flush_seconds
        self.final_flush_timeout = final_flush_timeout
        self._clock = clock

        self.gps = GPSAggregator(positions)
        self.batcher = LocationBatcher(self.gps, self._send_locations)
        self.recorder = ChunkedRecorder(chunk_seconds=chunk_seconds, clock=clock)

        self.state = SessionState.IDLE
        self.trip_id: str | None = None
        self.started_at: int | None = None
        self.error: str | None = None
        self.camera_error: str | None = None
        self.finalize_error: str | None = None
        self.upload_errors: list[str] = []
        self.stats: TripStats | None = None

        self._stream: MediaStream | None = None
        self._flush_task: asyncio.Task | None = None
        self._inference_task: asyncio.Task | None = None

    async def start(self) -> bool:
        if self.state != SessionState.IDLE:
            logger.warning("Cannot start a session in state %s", self.state.value)
            return False

        self.state = SessionState.CREATING
        try:
            trip = await self.api.create_trip(self._clock())
        except ApiError as exc:
            logger.error("Failed to create trip: %s", exc)
            self.error = exc.detail
            self.state = SessionState.IDLE
            return False

        self.trip_id = trip["id"]
        self.started_at = trip["startedAt"]
        self.state = SessionState.RUNNING
        logger.info("Trip %s started", self.trip_id)

        self.gps.start()
        self._flush_task = asyncio.create_task(self._flush_loop())
        await self._start_video()
        return True

    async def _start_video(self) -> None:
        if self.camera is None:
            self.camera_error = "Camera is not supported"
            return
        try:
            self._stream = await self.camera.open()
        except CapabilityMissing as exc:
            self.camera_error = str(exc) or "Camera is not supported"
            return
        except CameraError as exc:
            logger.warning("Camera unavailable: %s", exc.message)
            self.camera_error = exc.message
            return
        except Exception as exc:
            # Driver-level failures (busy device, backend errors) leave the trip running without video.
            logger.exception("Camera failed to open")
            self.camera_error = str(exc) or "Failed to access camera"
            return

        if not self.recorder.start(self._stream, self._upload_chunk, self._on_media_error):
            self.camera_error = "Video recording is not supported"
        if self.inference is not None:
            self._inference_task = asyncio.create_task(self.inference.connect(self._stream))

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.gps_flush_seconds)
            try:
                await self.batcher.flush()
            except Exception:
                logger.exception("Location flush crashed for trip %s", self.trip_id)
                self._degrade("Location sync failed")

    async def _send_locations(self, samples: Sequence[GPSSample]) -> None:
        await self.api.send_location_batch(self.trip_id, samples)

    async def _upload_chunk(self, chunk: VideoChunk) -> None:
        try:
            await self.api.upload_video_clip(
                self.trip_id, chunk.data, chunk.start_time, chunk.end_time, chunk.mime_type
            )
        except ApiError as exc:
            logger.error("Upload of chunk %d failed: %s", chunk.index, exc)
            self.upload_errors.append(exc.detail)

    def _on_media_error(self, exc: Exception) -> None:
        self.camera_error = str(exc)
        self._degrade("Video recording stopped")

    def _degrade(self, reason: str) -> None:
        if self.state == SessionState.RUNNING:
            self.state = SessionState.ERROR
            self.error = reason

    async def end(self) -> TripStats | None:
        """Tear down every stream, flush what is left and finalize the trip.

        Always leaves the session in ENDED; failures along the way are logged
        and kept in `upload_errors` or `finalize_error`.
        """
        if self.state not in (SessionState.RUNNING, SessionState.ERROR):
            logger.warning("Cannot end a session in state %s", self.state.value)
            return None
        self.state = SessionState.ENDING

        try:
            await self._teardown()
            self.stats = trip_stats(self.gps.history)
            await self._finalize()
        finally:
            self.state = SessionState.ENDED

        logger.info(
            "Trip %s ended: %.0fm, avg %.1fm/s",
            self.trip_id,
            self.stats.total_distance,
            self.stats.average_speed,
        )
        return self.stats

    async def _teardown(self) -> None:
        try:
            self.gps.stop()
        except Exception:
            logger.exception("Stopping GPS failed for trip %s", self.trip_id)

        try:
            if self._stream is not None:
                self._stream.stop()
            # The trailing chunk is drained and uploaded before we go on.
            if not await self.recorder.stop(timeout=self.final_flush_timeout):
                self.upload_errors.append("Final clip upload timed out")
        except Exception as exc:
            logger.exception("Stopping video failed for trip %s", self.trip_id)
            self.upload_errors.append(str(exc))

        if self._inference_task is not None:
            self._inference_task.cancel()
            try:
                await self._inference_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Inference connect failed for trip %s", self.trip_id)
        if self.inference is not None:
            try:
                await self.inference.disconnect()
            except Exception:
                logger.exception("Inference disconnect failed for trip %s", self.trip_id)

        if self._flush_task is not None:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

    async def _finalize(self) -> None:
        try:
            await self.batcher.flush()
        except Exception:
            logger.exception("Final location flush failed for trip %s", self.trip_id)
        if self.gps.unsent_count:
            logger.warning("%d locations were not delivered for trip %s", self.gps.unsent_count, self.trip_id)

        try:
            await self.api.end_trip(
                self.trip_id,
                ended_at=self._clock(),
                total_distance=self.stats.total_distance,
                average_speed=self.stats.average_speed,
            )
        except ApiError as exc:
            logger.error("Failed to finalize trip %s: %s", self.trip_id, exc)
            self.finalize_error = exc.detail
        except Exception as exc:
            logger.exception("Failed to finalize trip %s", self.trip_id)
            self.finalize_error = str(exc) or type(exc).__name__
