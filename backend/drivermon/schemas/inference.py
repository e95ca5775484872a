from __future__ import annotations

from typing import Any

from pydantic import Field

from drivermon.schemas.trip import CamelModel


class WebRTCOffer(CamelModel):
    sdp: str = ""
    type: str = ""


class WebRTCParams(CamelModel):
    image_input_name: str | None = None
    stream_output_names: list[str] | None = None
    data_output_names: list[str] | None = None
    workflows_parameters: dict[str, Any] | None = None


class InitWebRTCRequest(CamelModel):
    offer: WebRTCOffer | None = None
    wrtc_params: WebRTCParams | None = None


class IceServer(CamelModel):
    urls: list[str]
    username: str | None = None
    credential: str | None = None


class TurnConfigOut(CamelModel):
    ice_servers: list[IceServer] = Field(default_factory=list)
