from __future__ import annotations

import asyncio

import pytest

from stbridge.exceptions import BrokerUnavailableError
from stbridge.mqtt.hub import Bridge
from stbridge.services.dedup import HubEvent
from stbridge.state.snapshot import SnapshotStore, StateSnapshot

from conftest import FakeBroker, FakeNotifier, make_settings


@pytest.mark.asyncio
async def test_push_records_and_publishes_retained(bridge: Bridge, broker: FakeBroker) -> None:
    await bridge.push("Lamp", "switch", "on")
    assert broker.published == [("smartthings/Lamp/switch", "on", True)]
    assert bridge.history.get("smartthings/Lamp/switch") == "on"


@pytest.mark.asyncio
async def test_push_is_never_deduplicated(bridge: Bridge, broker: FakeBroker) -> None:
    await bridge.push("Lamp", "switch", "on")
    await bridge.push("Lamp", "switch", "on")
    assert len(broker.published) == 2


@pytest.mark.asyncio
async def test_push_honours_retain_flag(store: SnapshotStore, broker: FakeBroker, notifier: FakeNotifier) -> None:
    bridge = Bridge(make_settings(preface="st", retain=False, state_read_suffix="state"), StateSnapshot(), store, notifier)
    bridge.attach_broker(broker)
    await bridge.push("Lamp", "power", "12")
    assert broker.published == [("st/Lamp/power/state", "12", False)]


@pytest.mark.asyncio
async def test_pushed_value_echo_is_not_sent_back(bridge: Bridge, notifier: FakeNotifier) -> None:
    await bridge.push("Lamp", "switch", "on")
    bridge.on_message("smartthings/Lamp/switch", "on")
    await bridge.drain()
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_subscribe_builds_command_and_write_topics(store: SnapshotStore, broker: FakeBroker, notifier: FakeNotifier) -> None:
    bridge = Bridge(
        make_settings(preface="st", command_suffix="cmd", state_write_suffix="set"),
        StateSnapshot(), store, notifier,
    )
    bridge.attach_broker(broker)

    await bridge.subscribe({"switch": ["Lamp", "Fan"], "level": ["Lamp"]}, "hub:39500")

    expected = [
        "st/Lamp/switch/cmd", "st/Lamp/switch/set",
        "st/Fan/switch/cmd", "st/Fan/switch/set",
        "st/Lamp/level/cmd", "st/Lamp/level/set",
    ]
    assert bridge.registry.topics == expected
    assert bridge.registry.callback == "hub:39500"
    assert broker.subscribed == [expected]
    saved = store.load()
    assert saved is not None
    assert saved.subscriptions == expected
    assert saved.callback == "hub:39500"


@pytest.mark.asyncio
async def test_subscribe_replaces_previous_set(bridge: Bridge, broker: FakeBroker) -> None:
    await bridge.subscribe({"switch": ["Lamp"]}, "hub:1")
    await bridge.subscribe({"power": ["Meter"]}, "hub:2")

    assert bridge.registry.unique_topics() == ["smartthings/Meter/power"]
    assert bridge.registry.callback == "hub:2"
    assert broker.unsubscribed == [["smartthings/Lamp/switch"]]


@pytest.mark.asyncio
async def test_subscribe_without_broker_keeps_old_registry(bridge: Bridge, broker: FakeBroker, store: SnapshotStore) -> None:
    await bridge.subscribe({"switch": ["Lamp"]}, "hub:1")
    broker.connected = False

    with pytest.raises(BrokerUnavailableError):
        await bridge.subscribe({"power": ["Meter"]}, "hub:2")

    assert bridge.registry.topics == ["smartthings/Lamp/switch", "smartthings/Lamp/switch"]
    assert bridge.registry.callback == "hub:1"
    saved = store.load()
    assert saved is not None and saved.callback == "hub:1"


@pytest.mark.asyncio
async def test_message_is_forwarded_to_callback(bridge: Bridge, notifier: FakeNotifier) -> None:
    await bridge.subscribe({"switch": ["Lamp"]}, "hub:39500")
    bridge.on_message("smartthings/Lamp/switch", "off")
    await bridge.drain()
    assert notifier.sent == [("hub:39500", HubEvent(name="Lamp", type="switch", value="off", command=True))]


@pytest.mark.asyncio
async def test_message_without_callback_is_dropped(bridge: Bridge, notifier: FakeNotifier) -> None:
    bridge.on_message("smartthings/Lamp/switch", "off")
    await bridge.drain()
    assert notifier.sent == []
    assert bridge.history.get("smartthings/Lamp/switch") == "off"


@pytest.mark.asyncio
async def test_state_round_trips_through_snapshot(bridge: Bridge, store: SnapshotStore, notifier: FakeNotifier) -> None:
    await bridge.subscribe({"switch": ["Lamp"]}, "hub:1")
    bridge.on_message("smartthings/Lamp/switch", "on")
    await bridge.drain()
    await bridge.save_state()

    saved = store.load()
    assert saved is not None
    restored = Bridge(bridge.settings, saved, store, notifier)
    assert restored.history.get("smartthings/Lamp/switch") == "on"
    assert restored.registry.callback == "hub:1"


class _SlowStore(SnapshotStore):
    def __init__(self, inner: SnapshotStore, gate: asyncio.Event, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(inner.path)
        self.saves = 0
        self._gate = gate
        self._loop = loop

    def save(self, snapshot: StateSnapshot) -> None:
        asyncio.run_coroutine_threadsafe(self._gate.wait(), self._loop).result(timeout=5)
        self.saves += 1
        super().save(snapshot)


@pytest.mark.asyncio
async def test_autosave_skips_while_a_save_is_in_flight(store: SnapshotStore, notifier: FakeNotifier) -> None:
    gate = asyncio.Event()
    slow = _SlowStore(store, gate, asyncio.get_running_loop())
    bridge = Bridge(make_settings(), StateSnapshot(), slow, notifier)

    first = asyncio.create_task(bridge.save_state())
    await asyncio.sleep(0.05)
    assert await bridge.save_state(skip_if_busy=True) is False

    gate.set()
    assert await first is True
    assert slow.saves == 1


class _YieldingBroker(FakeBroker):
    """Every call yields once, so concurrent requests interleave; tracks live topics."""

    def __init__(self) -> None:
        super().__init__()
        self.active: set[str] = set()

    async def subscribe(self, topics: list[str]) -> None:
        await asyncio.sleep(0)
        await super().subscribe(topics)
        self.active.update(topics)

    async def unsubscribe(self, topics: list[str]) -> None:
        await asyncio.sleep(0)
        await super().unsubscribe(topics)
        self.active.difference_update(topics)


@pytest.mark.asyncio
async def test_overlapping_subscribes_keep_registry_topics_live(store: SnapshotStore, notifier: FakeNotifier) -> None:
    broker = _YieldingBroker()
    bridge = Bridge(make_settings(preface="smartthings"), StateSnapshot(), store, notifier)
    bridge.attach_broker(broker)
    await bridge.subscribe({"switch": ["Lamp"]}, "hub:1")

    await asyncio.gather(
        bridge.subscribe({"switch": ["Fan"]}, "hub:1"),
        bridge.subscribe({"switch": ["Lamp", "Fan"]}, "hub:1"),
    )

    assert set(bridge.registry.unique_topics()) == {"smartthings/Lamp/switch", "smartthings/Fan/switch"}
    assert set(bridge.registry.unique_topics()) <= broker.active
