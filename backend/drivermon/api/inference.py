from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from drivermon.auth import get_current_user
from drivermon.core.errors import BadRequestError
from drivermon.schemas.inference import InitWebRTCRequest, TurnConfigOut
from drivermon.services import inference_gateway

router = APIRouter()


@router.post("/init-webrtc")
def init_webrtc(body: InitWebRTCRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    if not body.offer or not body.offer.sdp or not body.offer.type:
        raise BadRequestError("Invalid offer")
    return inference_gateway.init_webrtc(body.offer, body.wrtc_params)


@router.get("/turn-config", response_model=TurnConfigOut)
def turn_config(user_id: str = Depends(get_current_user)) -> TurnConfigOut:
    return TurnConfigOut(ice_servers=inference_gateway.fetch_ice_servers())
