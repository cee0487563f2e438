"""Bridge context: hub push/subscribe → MQTT, MQTT messages → hub callback."""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from stbridge.config import APP_VERSION, Settings
from stbridge.exceptions import BrokerUnavailableError
from stbridge.mqtt.topics import TopicKind, TopicNamer
from stbridge.services.dedup import HubEvent, process_message
from stbridge.services.history import HistoryStore
from stbridge.services.subscriptions import SubscriptionRegistry, topics_for_devices
from stbridge.state.snapshot import SnapshotStore, StateSnapshot

logger = logging.getLogger(__name__)


class Broker(Protocol):
    async def publish(self, topic: str, value: str, *, retain: bool) -> None: ...

    async def subscribe(self, topics: list[str]) -> None: ...

    async def unsubscribe(self, topics: list[str]) -> None: ...


class Notifier(Protocol):
    async def send(self, callback: str, event: HubEvent) -> bool: ...


class Bridge:
    def __init__(
        self,
        settings: Settings,
        snapshot: StateSnapshot,
        store: SnapshotStore,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self.namer = TopicNamer.from_config(settings.mqtt)
        self.history = HistoryStore(snapshot.history)
        self.registry = SubscriptionRegistry(snapshot.subscriptions, snapshot.callback)
        self.broker: Broker | None = None
        self._store = store
        self._notifier = notifier
        self._save_lock = asyncio.Lock()
        # Held from broker subscribe to stale unsubscribe so overlapping requests cannot drop live topics
        self._subscribe_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    def attach_broker(self, broker: Broker) -> None:
        self.broker = broker

    def _require_broker(self) -> Broker:
        if self.broker is None:
            raise BrokerUnavailableError("MQTT broker not configured")
        return self.broker

    # ── hub → broker ──────────────────────────

    async def push(self, device: str, prop: str, value: str) -> None:
        topic = self.namer.topic_for(device, prop, TopicKind.READ_STATE)
        logger.info("Incoming message from SmartThings: %s = %s", topic, value)
        self.history.set(topic, value)
        await self._require_broker().publish(topic, value, retain=self.settings.mqtt.retain)

    async def subscribe(self, devices: dict[str, list[str]], callback: str) -> None:
        broker = self._require_broker()
        async with self._subscribe_lock:
            await self._replace_subscriptions(broker, devices, callback)

    async def _replace_subscriptions(
        self, broker: Broker, devices: dict[str, list[str]], callback: str
    ) -> None:
        topics = topics_for_devices(self.namer, devices)
        wanted = set(topics)
        stale = [t for t in self.registry.unique_topics() if t not in wanted]

        logger.info("Subscribing to %s", ", ".join(dict.fromkeys(topics)))
        await broker.subscribe(topics)
        self.registry.replace(topics, callback)
        await self.save_state()

        if stale:
            logger.info("Unsubscribing from %s", ", ".join(stale))
            try:
                await broker.unsubscribe(stale)
            except BrokerUnavailableError as exc:
                # Registry is already replaced; stale topics are filtered on the next reconnect
                logger.warning("Could not drop stale subscriptions: %s", exc)

    # ── broker → hub ──────────────────────────

    def on_message(self, topic: str, value: str) -> None:
        event = process_message(self.namer, self.history, topic, value)
        if event is None:
            return
        callback = self.registry.callback
        if not callback:
            logger.warning("No hub callback registered, dropping %s = %s", topic, value)
            return
        task = asyncio.create_task(self._notifier.send(callback, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight hub notifications."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── persistence ───────────────────────────

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            subscriptions=list(self.registry.topics),
            callback=self.registry.callback,
            history=self.history.as_dict(),
            version=APP_VERSION,
        )

    async def save_state(self, *, skip_if_busy: bool = False) -> bool:
        if skip_if_busy and self._save_lock.locked():
            logger.debug("State save already in flight, skipping")
            return False
        async with self._save_lock:
            logger.info("Saving current state")
            await asyncio.to_thread(self._store.save, self.snapshot())
        return True
