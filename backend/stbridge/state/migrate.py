"""Versioned upgrades of the raw configuration and the persisted state.

Each step is paired with the first release that no longer needs it. A step
runs only when the loaded state is older than its threshold, steps run in
threshold order, and every step only fills in what is missing, so running
the list twice is harmless. Migration always finishes by saving the state at
the current version.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, NamedTuple

from stbridge.state.snapshot import SnapshotStore, StateSnapshot, read_legacy_subscription

logger = logging.getLogger(__name__)

SUFFIX_KEYS = ("state_read_suffix", "command_suffix", "state_write_suffix")


@dataclass
class MigrationContext:
    config: dict[str, Any]
    snapshot: StateSnapshot
    config_dir: Path

    @property
    def mqtt(self) -> dict[str, Any]:
        section = self.config.get("mqtt")
        if not isinstance(section, dict):
            section = {}
            self.config["mqtt"] = section
        return section


class Migration(NamedTuple):
    threshold: str
    name: str
    apply: Callable[[MigrationContext], None]


def parse_version(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("-", 1)[0].split("."):
        parts.append(int(piece) if piece.isdigit() else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


# ──────────────────────────────────────────────
# Steps
# ──────────────────────────────────────────────

def import_legacy_subscription(ctx: MigrationContext) -> None:
    legacy = read_legacy_subscription(ctx.config_dir / "subscription.json")
    if legacy is None:
        return
    ctx.snapshot.subscriptions = list(legacy.topics)
    ctx.snapshot.callback = legacy.callback
    logger.info("Imported %d topics from legacy subscription.json", len(legacy.topics))


def default_preface(ctx: MigrationContext) -> None:
    # Topics used to be hardcoded under /smartthings
    if not ctx.mqtt.get("preface"):
        ctx.mqtt["preface"] = "/smartthings"


def default_suffixes_and_retain(ctx: MigrationContext) -> None:
    for key in SUFFIX_KEYS:
        if not ctx.mqtt.get(key):
            ctx.mqtt[key] = ""
    if ctx.mqtt.get("retain") is not False:
        ctx.mqtt["retain"] = True


def default_port_and_scheme(ctx: MigrationContext) -> None:
    if not ctx.config.get("port"):
        ctx.config["port"] = 8080
    host = str(ctx.mqtt.get("host") or "localhost")
    if "://" not in host:
        host = "mqtt://" + host
    ctx.mqtt["host"] = host


MIGRATIONS: list[Migration] = [
    Migration("1.1.0", "import legacy subscription.json", import_legacy_subscription),
    Migration("1.2.0", "default topic preface", default_preface),
    Migration("1.3.0", "default suffixes and retain", default_suffixes_and_retain),
    Migration("1.4.0", "default port and broker scheme", default_port_and_scheme),
]


def migrate(
    ctx: MigrationContext,
    store: SnapshotStore,
    current_version: str,
    migrations: list[Migration] = MIGRATIONS,
) -> StateSnapshot:
    loaded = parse_version(ctx.snapshot.version)
    for step in sorted(migrations, key=lambda m: parse_version(m.threshold)):
        if parse_version(step.threshold) > parse_version(current_version):
            continue
        if loaded < parse_version(step.threshold):
            logger.info("Migrating state %s → %s: %s", ctx.snapshot.version, step.threshold, step.name)
            step.apply(ctx)

    ctx.snapshot.version = current_version
    store.save(ctx.snapshot)
    return ctx.snapshot
