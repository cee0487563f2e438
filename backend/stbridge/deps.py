from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from stbridge.mqtt.hub import Bridge


def get_bridge(request: Request) -> Bridge:
    return request.app.state.bridge
