"""MQTT connection: subscribed broker messages → bridge, bridge publishes → broker."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable
from urllib.parse import urlparse

import aiomqtt

from stbridge.config import MqttConfig
from stbridge.exceptions import BrokerUnavailableError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, str], None]
TopicsProvider = Callable[[], list[str]]

DEFAULT_PORTS = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883}


class BrokerLink:
    def __init__(
        self,
        cfg: MqttConfig,
        on_message: MessageHandler,
        topics: TopicsProvider,
    ) -> None:
        self._cfg = cfg
        self._on_message = on_message
        self._topics = topics
        self._client: aiomqtt.Client | None = None
        # Set on the first successful connect only; reconnects never re-run startup
        self._started = asyncio.Event()

        url = urlparse(cfg.host)
        self.hostname = url.hostname or "localhost"
        self.port = url.port or DEFAULT_PORTS.get(url.scheme, 1883)
        self._username = cfg.username or url.username
        self._password = cfg.password or url.password

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def wait_started(self) -> None:
        await self._started.wait()

    async def run(self) -> None:
        reconnect_interval = self._cfg.reconnect_interval

        while True:
            try:
                async with aiomqtt.Client(
                    hostname=self.hostname,
                    port=self.port,
                    identifier=self._cfg.client_id,
                    username=self._username,
                    password=self._password,
                ) as client:
                    logger.info("MQTT connected to %s:%s", self.hostname, self.port)
                    topics = list(dict.fromkeys(self._topics()))
                    if topics:
                        logger.info("Subscribing to %s", ", ".join(topics))
                        await client.subscribe([(topic, 0) for topic in topics])
                    self._client = client
                    reconnect_interval = self._cfg.reconnect_interval
                    if not self._started.is_set():
                        self._started.set()

                    async for message in client.messages:
                        self._dispatch(message)

            except aiomqtt.MqttError as exc:
                self._client = None
                logger.error("MQTT connection lost: %s, reconnecting in %ds", exc, reconnect_interval)
                await asyncio.sleep(reconnect_interval)
                reconnect_interval = min(reconnect_interval * 2, self._cfg.max_reconnect_interval)
            except asyncio.CancelledError:
                self._client = None
                logger.info("MQTT listener cancelled")
                break
            except Exception as exc:
                self._client = None
                logger.exception("Unexpected error in MQTT listener: %s", exc)
                await asyncio.sleep(reconnect_interval)

    def _dispatch(self, message: aiomqtt.Message) -> None:
        payload = message.payload
        if isinstance(payload, (bytes, bytearray)):
            value = payload.decode("utf-8", errors="replace")
        elif payload is None:
            value = ""
        else:
            value = str(payload)
        try:
            self._on_message(str(message.topic), value)
        except Exception:
            logger.exception("Failed to handle MQTT message on %s", message.topic)

    def _require_client(self) -> aiomqtt.Client:
        if self._client is None:
            raise BrokerUnavailableError("not connected to MQTT broker")
        return self._client

    async def publish(self, topic: str, value: str, *, retain: bool) -> None:
        client = self._require_client()
        try:
            await client.publish(topic, payload=value, retain=retain)
        except aiomqtt.MqttError as exc:
            raise BrokerUnavailableError(f"publish to {topic} failed: {exc}") from exc

    async def subscribe(self, topics: list[str]) -> None:
        if not topics:
            return
        client = self._require_client()
        try:
            await client.subscribe([(topic, 0) for topic in dict.fromkeys(topics)])
        except aiomqtt.MqttError as exc:
            raise BrokerUnavailableError(f"subscribe failed: {exc}") from exc

    async def unsubscribe(self, topics: list[str]) -> None:
        if not topics:
            return
        client = self._require_client()
        try:
            await client.unsubscribe(list(dict.fromkeys(topics)))
        except aiomqtt.MqttError as exc:
            raise BrokerUnavailableError(f"unsubscribe failed: {exc}") from exc
