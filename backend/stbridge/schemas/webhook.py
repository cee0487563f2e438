from __future__ import annotations

from pydantic import BaseModel, Field


class PushIn(BaseModel):
    name: str = Field(min_length=1, examples=["Energy Meter"])
    value: str = Field(min_length=1, examples=["873"])
    type: str = Field(min_length=1, examples=["power"])


class SubscribeIn(BaseModel):
    # property → device names, e.g. {"switch": ["Lamp", "Fan"]}
    devices: dict[str, list[str]]
    callback: str = Field(min_length=1, examples=["192.168.1.20:39500"])


class StatusOut(BaseModel):
    status: str = "OK"
