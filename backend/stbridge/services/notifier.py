"""Best-effort POST of device events to the hub callback."""
from __future__ import annotations

import logging

import httpx

from stbridge.services.dedup import HubEvent

logger = logging.getLogger(__name__)


class HubNotifier:
    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def send(self, callback: str, event: HubEvent) -> bool:
        """POST the event to http://<callback>. Failures are logged, never retried."""
        url = f"http://{callback}"
        try:
            resp = await self._http.post(url, json=event.as_payload())
        except httpx.HTTPError as exc:
            logger.error("Error from SmartThings Hub: %s", exc)
            return False

        if resp.is_error:
            logger.error(
                "Error from SmartThings Hub: HTTP %s for %s=%s on %s: %s",
                resp.status_code, event.type, event.value, event.name, resp.text,
            )
            return False
        return True
