"""
Live inference stream connection

The actual WebRTC peer is provided by an InferenceTransport; this class owns
the connection lifecycle, ICE server lookup and status reporting.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from drivermon.client.api_client import TripApiClient
from drivermon.client.devices import InferenceError, MediaStream

logger = logging.getLogger(__name__)


class StreamStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class StreamParams:
    image_input_name: str = "image"
    stream_output_names: list[str] = field(default_factory=lambda: ["label"])
    data_output_names: list[str] = field(default_factory=lambda: ["*"])
    workflows_parameters: dict[str, Any] = field(default_factory=dict)


class InferenceConnection(Protocol):
    remote_stream: Any

    def reconfigure_outputs(self, stream_output: str | None, data_output: list[str] | None) -> None: ...

    async def close(self) -> None: ...


class InferenceTransport(Protocol):
    async def open(
        self,
        source: MediaStream,
        params: StreamParams,
        ice_servers: list[dict[str, Any]],
        on_data: Callable[[Any], None] | None,
    ) -> InferenceConnection: ...


class InferenceStream:
    def __init__(
        self,
        transport: InferenceTransport,
        api: TripApiClient,
        on_data: Callable[[Any], None] | None = None,
        on_status_change: Callable[[StreamStatus], None] | None = None,
    ) -> None:
        self._transport = transport
        self._api = api
        self._on_data = on_data
        self._on_status_change = on_status_change
        self._connection: InferenceConnection | None = None
        self.status = StreamStatus.DISCONNECTED
        self.error: str | None = None

    @property
    def remote_stream(self) -> Any:
        return self._connection.remote_stream if self._connection else None

    def _set_status(self, status: StreamStatus) -> None:
        self.status = status
        if self._on_status_change is not None:
            self._on_status_change(status)

    async def connect(self, source: MediaStream, params: StreamParams | None = None) -> bool:
        if self._connection is not None:
            return True
        self.error = None
        self._set_status(StreamStatus.CONNECTING)

        ice_servers = await self._api.fetch_ice_servers()
        try:
            self._connection = await self._transport.open(source, params or StreamParams(), ice_servers, self._on_data)
        except (InferenceError, OSError) as exc:
            logger.error("Inference stream failed to connect: %s", exc)
            self.error = str(exc)
            self._set_status(StreamStatus.ERROR)
            return False

        self._set_status(StreamStatus.CONNECTED)
        return True

    def reconfigure_outputs(self, stream_output: str | None = None, data_output: list[str] | None = None) -> None:
        if self._connection is None:
            logger.warning("Cannot reconfigure outputs: not connected")
            return
        self._connection.reconfigure_outputs(stream_output, data_output)

    async def disconnect(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                await connection.close()
            except InferenceError as exc:
                logger.warning("Error closing inference stream: %s", exc)
        if self.status != StreamStatus.DISCONNECTED:
            self._set_status(StreamStatus.DISCONNECTED)
