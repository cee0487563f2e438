"""Last value sent or seen per topic."""
from __future__ import annotations


class HistoryStore:
    """Topic → last value. Entries never expire; the whole map is persisted."""

    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    def get(self, topic: str) -> str | None:
        return self._entries.get(topic)

    def set(self, topic: str, value: str) -> None:
        self._entries[topic] = value

    def as_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, topic: object) -> bool:
        return topic in self._entries
