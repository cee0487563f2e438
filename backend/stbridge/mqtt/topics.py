"""Topic naming: (device, property, kind) ⇄ <preface>/<device>/<property>[/<suffix>]."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from stbridge.config import MqttConfig


class TopicKind(str, Enum):
    READ_STATE = "read_state"
    COMMAND = "command"
    WRITE_STATE = "write_state"


@dataclass(frozen=True)
class ParsedTopic:
    device: str
    property: str
    suffix: str = ""


class TopicNamer:
    def __init__(self, preface: str, suffixes: dict[TopicKind, str]) -> None:
        self.preface = preface
        self._suffixes = {kind: suffixes.get(kind, "") for kind in TopicKind}

    @classmethod
    def from_config(cls, cfg: MqttConfig) -> TopicNamer:
        return cls(
            cfg.preface,
            {
                TopicKind.READ_STATE: cfg.state_read_suffix,
                TopicKind.COMMAND: cfg.command_suffix,
                TopicKind.WRITE_STATE: cfg.state_write_suffix,
            },
        )

    def suffix(self, kind: TopicKind) -> str:
        return self._suffixes[kind]

    def topic_for(self, device: str, prop: str, kind: TopicKind) -> str:
        tree = [self.preface, device, prop]
        suffix = self._suffixes[kind]
        if suffix:
            tree.append(suffix)
        return "/".join(tree)

    def parse_topic(self, topic: str) -> ParsedTopic | None:
        """Split a topic published under our preface.

        Device names are not escaped, so a device containing "/" shifts the
        remaining segments and yields a wrong property.
        """
        if not topic.startswith(self.preface + "/"):
            return None
        pieces = topic[len(self.preface) + 1:].split("/")
        if len(pieces) < 2:
            return None
        return ParsedTopic(
            device=pieces[0],
            property=pieces[1],
            suffix=pieces[2] if len(pieces) > 2 else "",
        )

    def is_command(self, parsed: ParsedTopic) -> bool:
        return not parsed.suffix or parsed.suffix == self._suffixes[TopicKind.COMMAND]
