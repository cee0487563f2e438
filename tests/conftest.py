from __future__ import annotations

from pathlib import Path

import pytest

from stbridge.config import MqttConfig, Settings
from stbridge.exceptions import BrokerUnavailableError
from stbridge.mqtt.hub import Bridge
from stbridge.services.dedup import HubEvent
from stbridge.state.snapshot import SnapshotStore, StateSnapshot


class FakeBroker:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, bool]] = []
        self.subscribed: list[list[str]] = []
        self.unsubscribed: list[list[str]] = []
        self.connected = True

    def _check(self) -> None:
        if not self.connected:
            raise BrokerUnavailableError("not connected to MQTT broker")

    async def publish(self, topic: str, value: str, *, retain: bool) -> None:
        self._check()
        self.published.append((topic, value, retain))

    async def subscribe(self, topics: list[str]) -> None:
        self._check()
        self.subscribed.append(list(topics))

    async def unsubscribe(self, topics: list[str]) -> None:
        self._check()
        self.unsubscribed.append(list(topics))


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, HubEvent]] = []

    async def send(self, callback: str, event: HubEvent) -> bool:
        self.sent.append((callback, event))
        return True


def make_settings(**mqtt: object) -> Settings:
    return Settings(mqtt=MqttConfig(**mqtt))


@pytest.fixture
def store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore.in_dir(tmp_path)


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def bridge(store: SnapshotStore, broker: FakeBroker, notifier: FakeNotifier) -> Bridge:
    b = Bridge(make_settings(preface="smartthings"), StateSnapshot(), store, notifier)
    b.attach_broker(broker)
    return b
