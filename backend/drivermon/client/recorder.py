"""
Fixed-interval chunked recorder

Every `chunk_seconds` the recorder drains the media stream into a VideoChunk
and hands it to the chunk handler. Handler calls are chained so chunks are
delivered in order with at most one handler running at a time. stop() emits
the trailing partial chunk and waits until its handler has finished.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from drivermon.client.devices import MediaError, MediaStream
from drivermon.core.config import settings
from drivermon.models import now_ms

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "video/webm;codecs=vp9"


@dataclass(frozen=True)
class VideoChunk:
    index: int
    data: bytes
    start_time: int
    end_time: int
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


ChunkHandler = Callable[[VideoChunk], Awaitable[None] | None]


class ChunkedRecorder:
    def __init__(
        self,
        chunk_seconds: float = settings.chunk_seconds,
        mime_type: str = DEFAULT_MIME_TYPE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.chunk_seconds = chunk_seconds
        self.mime_type = mime_type
        self._clock = clock
        self._stream: MediaStream | None = None
        self._on_chunk: ChunkHandler | None = None
        self._on_error: Callable[[Exception], None] | None = None
        self._task: asyncio.Task | None = None
        self._tail: asyncio.Future | None = None
        self._stop_requested = asyncio.Event()
        self._started_at = 0
        self._chunk_start = 0
        self._index = 0
        self.last_error: Exception | None = None
        self.chunks_delivered = 0

    @property
    def is_recording(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def recording_duration(self) -> int:
        """Whole seconds since start() while recording, else 0."""
        if not self.is_recording:
            return 0
        return (self._clock() - self._started_at) // 1000

    def start(
        self,
        stream: MediaStream,
        on_chunk: ChunkHandler,
        on_error: Callable[[Exception], None] | None = None,
    ) -> bool:
        if self.is_recording:
            logger.warning("Recorder already running")
            return False
        if not stream.supports(self.mime_type):
            logger.error("Recording format %s is not supported", self.mime_type)
            return False

        self._stream = stream
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._stop_requested = asyncio.Event()
        self._started_at = self._chunk_start = self._clock()
        self._index = 0
        self._tail = None
        self.last_error = None
        self.chunks_delivered = 0
        self._task = asyncio.create_task(self._run())
        logger.info("Recording started, %.0fs chunks", self.chunk_seconds)
        return True

    async def _run(self) -> None:
        try:
            while not self._stop_requested.is_set():
                try:
                    await asyncio.wait_for(self._stop_requested.wait(), timeout=self.chunk_seconds)
                except asyncio.TimeoutError:
                    self._emit()
            # Trailing partial chunk.
            self._emit()
        except MediaError as exc:
            logger.error("Media stream failed: %s", exc)
            self.last_error = exc
            if self._on_error is not None:
                self._on_error(exc)

    def _emit(self) -> None:
        end = self._clock()
        data = self._stream.drain()
        if not data:
            return
        chunk = VideoChunk(
            index=self._index,
            data=data,
            start_time=self._chunk_start,
            end_time=end,
            mime_type=self.mime_type,
        )
        self._chunk_start = end
        self._index += 1
        self._tail = asyncio.ensure_future(self._deliver(self._tail, chunk))

    async def _deliver(self, previous: asyncio.Future | None, chunk: VideoChunk) -> None:
        if previous is not None:
            await previous
        try:
            result = self._on_chunk(chunk)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            # A failed handler must not block later chunks.
            logger.error("Chunk %d handler failed: %s", chunk.index, exc)
            self.last_error = exc
        else:
            self.chunks_delivered += 1

    async def stop(self, timeout: float | None = None) -> bool:
        """
        Emit the final chunk and wait for every pending handler call.

        Returns False when `timeout` elapsed before the handlers finished;
        in-flight handlers keep running in that case.
        """
        if self._task is None:
            return True
        self._stop_requested.set()
        try:
            await self._task
        finally:
            self._task = None

        if self._tail is None:
            return True
        if timeout is None:
            await self._tail
            return True
        try:
            await asyncio.wait_for(asyncio.shield(self._tail), timeout)
        except asyncio.TimeoutError:
            logger.warning("Final chunk upload still pending after %.1fs", timeout)
            return False
        return True
