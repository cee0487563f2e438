"""SmartThings MQTT bridge: webhook server + MQTT client."""
from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stbridge.bootstrap import load_runtime
from stbridge.config import APP_VERSION, config_dir
from stbridge.exceptions import BridgeError
from stbridge.mqtt.hub import Bridge
from stbridge.mqtt.listener import BrokerLink
from stbridge.routers import webhook
from stbridge.services.access_log import log_access
from stbridge.services.autosave import autosave
from stbridge.services.notifier import HubNotifier

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(directory: Path) -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    formatter = logging.Formatter(LOG_FORMAT)
    directory.mkdir(parents=True, exist_ok=True)

    # Everything also goes to disk
    events = logging.FileHandler(directory / "events.log", encoding="utf-8")
    events.setFormatter(formatter)
    errors = logging.FileHandler(directory / "error.log", encoding="utf-8")
    errors.setFormatter(formatter)
    errors.setLevel(logging.ERROR)
    root = logging.getLogger()
    root.addHandler(events)
    root.addHandler(errors)

    access = logging.FileHandler(directory / "access.log", encoding="utf-8")
    access.setFormatter(formatter)
    access_logger = logging.getLogger("stbridge.access")
    access_logger.addHandler(access)
    access_logger.propagate = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    bridge: Bridge = app.state.bridge
    settings = bridge.settings
    logger.info("Starting SmartThings MQTT bridge v%s", APP_VERSION)

    # 1. Connect to MQTT; saved subscriptions are restored on connect
    logger.info("Connecting to MQTT at %s", settings.mqtt.host)
    link = BrokerLink(settings.mqtt, bridge.on_message, lambda: bridge.registry.topics)
    bridge.attach_broker(link)
    mqtt_task = asyncio.create_task(link.run())
    started = asyncio.create_task(link.wait_started())
    await asyncio.wait({mqtt_task, started}, return_when=asyncio.FIRST_COMPLETED)
    if not started.done():
        started.cancel()
        raise BridgeError("MQTT listener stopped before connecting")

    # 2. Periodic state save
    autosave_task = asyncio.create_task(
        autosave(bridge, settings.state_save_interval_min * 60)
    )

    logger.info("Listening at http://localhost:%s", settings.port)
    yield

    autosave_task.cancel()
    mqtt_task.cancel()
    await asyncio.gather(mqtt_task, autosave_task, return_exceptions=True)
    await bridge.drain()
    await bridge.save_state()
    http: httpx.AsyncClient | None = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
    logger.info("Shutdown complete")


def create_app(bridge: Bridge) -> FastAPI:
    app = FastAPI(
        title="SmartThings MQTT Bridge",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.bridge = bridge

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.monotonic()
        response = await call_next(request)
        log_access(
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            client_ip=request.client.host if request.client else "",
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={"statusCode": 400, "error": "Bad Request", "message": str(exc.errors())},
        )

    app.include_router(webhook.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "mqtt": getattr(bridge.broker, "connected", False)}

    return app


def main() -> None:
    directory = config_dir()
    configure_logging(directory)
    try:
        runtime = load_runtime(directory)
    except BridgeError as exc:
        logger.error("Cannot start: %s", exc)
        sys.exit(1)

    settings = runtime.settings
    http = httpx.AsyncClient(timeout=settings.callback_timeout_sec)
    bridge = Bridge(settings, runtime.snapshot, runtime.store, HubNotifier(http))
    app = create_app(bridge)
    app.state.http = http

    logger.info("Configuring API")
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
