"""Durable bridge state: subscriptions, callback and value history in data/state.json."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from stbridge.exceptions import SnapshotError

logger = logging.getLogger(__name__)

EMPTY_VERSION = "0.0.0"


class StateSnapshot(BaseModel):
    subscriptions: list[str] = Field(default_factory=list)
    callback: str = ""
    history: dict[str, str] = Field(default_factory=dict)
    version: str = EMPTY_VERSION


class LegacySubscription(BaseModel):
    """subscription.json written by releases before the unified state file."""

    topics: list[str] = Field(default_factory=list)
    callback: str = ""


class SnapshotStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def in_dir(cls, config_dir: Path) -> SnapshotStore:
        return cls(config_dir / "data" / "state.json")

    def load(self) -> StateSnapshot | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SnapshotError(f"cannot read {self.path}: {exc}") from exc
        try:
            return StateSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            raise SnapshotError(f"cannot parse {self.path}: {exc}") from exc

    def save(self, snapshot: StateSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(snapshot.model_dump(), f, indent=4, ensure_ascii=False)
        os.replace(tmp, self.path)
        logger.info("Saved state (%d topics, %d history entries)",
                    len(snapshot.subscriptions), len(snapshot.history))


def read_legacy_subscription(path: Path) -> LegacySubscription | None:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return LegacySubscription.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Ignoring unreadable legacy subscription file %s: %s", path, exc)
        return None
