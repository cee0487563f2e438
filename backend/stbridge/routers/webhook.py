"""Push and subscribe webhooks called by the SmartThings hub."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from stbridge.deps import get_bridge
from stbridge.exceptions import BrokerUnavailableError
from stbridge.mqtt.hub import Bridge
from stbridge.schemas.webhook import PushIn, StatusOut, SubscribeIn

router = APIRouter(tags=["webhook"])


@router.post("/push", response_model=StatusOut)
async def push(body: PushIn, bridge: Bridge = Depends(get_bridge)):
    """Device state changed on the hub; publish it to MQTT."""
    try:
        await bridge.push(body.name, body.type, body.value)
    except BrokerUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return StatusOut()


@router.post("/subscribe", response_model=StatusOut)
async def subscribe(body: SubscribeIn, bridge: Bridge = Depends(get_bridge)):
    """Replace the watched devices and the callback the hub listens on."""
    try:
        await bridge.subscribe(body.devices, body.callback)
    except BrokerUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return StatusOut()
