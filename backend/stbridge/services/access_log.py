"""Access log for hub webhook requests.

Separate 'stbridge.access' logger, written to access.log by main.
"""
from __future__ import annotations

import logging

logger = logging.getLogger("stbridge.access")


def log_access(
    *,
    method: str,
    path: str,
    status: int,
    client_ip: str = "",
    duration_ms: float = 0.0,
) -> None:
    logger.info(
        "%s %s status=%s ip=%s %.1fms",
        method, path, status, client_ip, duration_ms,
    )
