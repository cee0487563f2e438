"""Broker message → hub event: echo suppression and switch/level coalescing.

Order matters:
  A. value equals what we last wrote   → echo, mirror into read-state, drop
  B. value equals the last read-state  → echo, mirror into write-state, drop
  record the raw topic
  C. level while the switch is off     → drop (the hub would turn the light on)
  D. switch "on" with a stored level   → send the level instead
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from stbridge.mqtt.topics import TopicKind, TopicNamer
from stbridge.services.history import HistoryStore

logger = logging.getLogger(__name__)

SWITCH = "switch"
LEVEL = "level"


@dataclass(frozen=True)
class HubEvent:
    name: str
    type: str
    value: str
    command: bool

    def as_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "command": self.command,
        }


def process_message(
    namer: TopicNamer,
    history: HistoryStore,
    topic: str,
    value: str,
) -> HubEvent | None:
    parsed = namer.parse_topic(topic)
    if parsed is None:
        logger.warning("Ignoring message outside preface %r: %s", namer.preface, topic)
        return None

    device, prop = parsed.device, parsed.property
    topic_read = namer.topic_for(device, prop, TopicKind.READ_STATE)
    topic_write = namer.topic_for(device, prop, TopicKind.WRITE_STATE)

    if history.get(topic_write) == value:
        logger.debug("Skipping duplicate message from: %s = %s", topic, value)
        history.set(topic_read, value)
        return None
    if history.get(topic_read) == value:
        logger.debug("Skipping duplicate message from: %s = %s", topic, value)
        history.set(topic_write, value)
        return None

    logger.info("Incoming message from MQTT: %s = %s", topic, value)
    history.set(topic, value)

    if prop == LEVEL:
        switch_state = history.get(namer.topic_for(device, SWITCH, TopicKind.READ_STATE))
        if switch_state == "off":
            logger.info("Skipping level set due to device being off: %s = %s", topic, value)
            return None

    if prop == SWITCH and value == "on":
        level = history.get(namer.topic_for(device, LEVEL, TopicKind.COMMAND))
        if level is not None:
            logger.info("Passing level instead of switch on: %s = %s", device, level)
            prop, value = LEVEL, level

    return HubEvent(name=device, type=prop, value=value, command=namer.is_command(parsed))
