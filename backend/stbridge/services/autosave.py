"""Background task: periodically persist bridge state as a crash safety net."""
from __future__ import annotations

import asyncio
import logging

from stbridge.mqtt.hub import Bridge

logger = logging.getLogger(__name__)


async def autosave(bridge: Bridge, interval_sec: float) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        try:
            await bridge.save_state(skip_if_busy=True)
        except Exception as exc:
            logger.exception("Autosave failed: %s", exc)
