"""
Server-side proxy to the Roboflow inference service

API keys and workspace identifiers are read from settings and never leave the
server; the browser only sends its WebRTC offer and optional output names.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from drivermon.core.config import settings
from drivermon.core.errors import ServiceError, UpstreamError
from drivermon.schemas.inference import IceServer, WebRTCOffer, WebRTCParams

logger = logging.getLogger(__name__)


class InferenceConfigError(ServiceError):
    status_code = 500


def _stun_server() -> IceServer:
    return IceServer(urls=[settings.stun_url])


def _fetch_turn(api_key: str) -> dict[str, Any] | None:
    try:
        response = requests.get(
            f"{settings.roboflow_api_url}/webrtc_turn_config", params={"api_key": api_key}, timeout=5
        )
        response.raise_for_status()
        return response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning("Failed to fetch TURN config: %s", e)
        return None


def fetch_ice_servers() -> list[IceServer]:
    """TURN credentials plus public STUN; STUN alone when TURN is unavailable."""
    if not settings.roboflow_api_key:
        return [_stun_server()]
    turn = _fetch_turn(settings.roboflow_api_key)
    if not turn or not turn.get("urls"):
        return [_stun_server()]
    urls = turn["urls"] if isinstance(turn["urls"], list) else [turn["urls"]]
    return [
        IceServer(urls=urls, username=turn.get("username"), credential=turn.get("credential")),
        _stun_server(),
    ]


def init_webrtc(offer: WebRTCOffer, params: WebRTCParams | None = None) -> dict[str, Any]:
    api_key = settings.roboflow_api_key
    workspace = settings.roboflow_workspace
    workflow_id = settings.roboflow_workflow_id
    if not api_key or not workspace or not workflow_id:
        logger.error("Missing Roboflow configuration")
        raise InferenceConfigError("Server configuration error")

    params = params or WebRTCParams()
    turn = _fetch_turn(api_key) or {"urls": settings.stun_url}
    payload = {
        "api_key": api_key,
        "workflow_configuration": {
            "type": "WorkflowConfiguration",
            "workspace_name": workspace,
            "workflow_id": workflow_id,
            "image_input_name": params.image_input_name or "image",
            "workflows_parameters": params.workflows_parameters or {},
        },
        "webrtc_offer": {"sdp": offer.sdp, "type": offer.type},
        "webrtc_turn_config": turn,
        "stream_output": params.stream_output_names or [],
        "data_output": params.data_output_names or [],
    }

    try:
        response = requests.post(settings.inference_webrtc_url, json=payload, timeout=30)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        logger.error("Error initializing WebRTC worker: %s", e)
        raise UpstreamError(f"Failed to initialize WebRTC: {e}")
    except ValueError:
        raise UpstreamError("Inference service returned an invalid answer")
