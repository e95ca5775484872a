import asyncio

import pytest

from drivermon.client.devices import MediaError
from drivermon.client.recorder import ChunkedRecorder


class FakeStream:
    def __init__(self, supported=True, data=b"frames"):
        self.supported = supported
        self.data = data
        self.drains = 0
        self.broken = False

    def supports(self, mime_type):
        return self.supported

    def drain(self):
        if self.broken:
            raise MediaError("track ended")
        self.drains += 1
        return self.data

    def stop(self):
        pass


class Clock:
    def __init__(self, now=1_000):
        self.now = now

    def __call__(self):
        return self.now


async def test_stop_right_after_start_uploads_one_chunk():
    delivered = []

    async def slow_upload(chunk):
        await asyncio.sleep(0.05)
        delivered.append(chunk)

    recorder = ChunkedRecorder(chunk_seconds=30)
    assert recorder.start(FakeStream(), slow_upload)
    assert await recorder.stop() is True

    assert len(delivered) == 1
    assert delivered[0].index == 0
    assert not recorder.is_recording


async def test_chunks_are_delivered_in_order_one_at_a_time():
    clock = Clock()
    in_flight = 0
    max_in_flight = 0
    delivered = []

    async def upload(chunk):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        # Earlier chunks take longer, so out-of-order delivery would show.
        await asyncio.sleep(0.03 if chunk.index == 0 else 0.001)
        delivered.append(chunk)
        in_flight -= 1

    recorder = ChunkedRecorder(chunk_seconds=0.01, clock=clock)
    recorder.start(FakeStream(), upload)
    for _ in range(3):
        clock.now += 10
        await asyncio.sleep(0.012)
    await recorder.stop()

    assert [c.index for c in delivered] == list(range(len(delivered)))
    assert len(delivered) >= 2
    assert max_in_flight == 1
    for prev, curr in zip(delivered, delivered[1:]):
        assert curr.start_time == prev.end_time


async def test_unsupported_format_does_not_start():
    recorder = ChunkedRecorder()
    assert recorder.start(FakeStream(supported=False), lambda chunk: None) is False
    assert not recorder.is_recording
    assert await recorder.stop() is True


async def test_empty_drain_emits_nothing():
    delivered = []
    recorder = ChunkedRecorder(chunk_seconds=30)
    recorder.start(FakeStream(data=b""), delivered.append)
    await recorder.stop()
    assert delivered == []


async def test_handler_failure_does_not_block_later_chunks():
    delivered = []

    def upload(chunk):
        if chunk.index == 0:
            raise RuntimeError("network down")
        delivered.append(chunk.index)

    recorder = ChunkedRecorder(chunk_seconds=0.01)
    recorder.start(FakeStream(), upload)
    await asyncio.sleep(0.025)
    await recorder.stop()

    assert isinstance(recorder.last_error, RuntimeError)
    assert delivered and delivered[0] == 1


async def test_stop_with_timeout_reports_pending_upload():
    release = asyncio.Event()

    async def stuck_upload(chunk):
        await release.wait()

    recorder = ChunkedRecorder(chunk_seconds=30)
    recorder.start(FakeStream(), stuck_upload)
    assert await recorder.stop(timeout=0.01) is False
    release.set()
    await asyncio.sleep(0.01)
    assert recorder.chunks_delivered == 1


async def test_media_failure_is_reported():
    errors = []
    stream = FakeStream()
    recorder = ChunkedRecorder(chunk_seconds=0.01)
    recorder.start(stream, lambda chunk: None, on_error=errors.append)
    stream.broken = True
    await asyncio.sleep(0.03)

    assert len(errors) == 1
    assert not recorder.is_recording
    await recorder.stop()


@pytest.mark.parametrize("elapsed_ms, seconds", [(0, 0), (2_500, 2)])
async def test_recording_duration(elapsed_ms, seconds):
    clock = Clock()
    recorder = ChunkedRecorder(chunk_seconds=30, clock=clock)
    recorder.start(FakeStream(), lambda chunk: None)
    clock.now += elapsed_ms
    assert recorder.recording_duration == seconds
    await recorder.stop()
    assert recorder.recording_duration == 0
