from __future__ import annotations

from stbridge.mqtt.topics import TopicKind, TopicNamer


def topics_for_devices(namer: TopicNamer, devices: dict[str, list[str]]) -> list[str]:
    """Command and write-state topics for every (property, device) pair."""
    topics: list[str] = []
    for prop, names in devices.items():
        for device in names:
            topics.append(namer.topic_for(device, prop, TopicKind.COMMAND))
            topics.append(namer.topic_for(device, prop, TopicKind.WRITE_STATE))
    return topics


class SubscriptionRegistry:
    """Broker topics the hub asked for plus the one callback to notify."""

    def __init__(self, topics: list[str] | None = None, callback: str = "") -> None:
        self.topics: list[str] = list(topics or [])
        self.callback = callback

    def replace(self, topics: list[str], callback: str) -> None:
        self.topics = list(topics)
        self.callback = callback

    def unique_topics(self) -> list[str]:
        # Duplicates appear when suffixes are empty; the broker only needs each once
        return list(dict.fromkeys(self.topics))
