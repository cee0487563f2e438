"""Startup: config and saved state, loaded and migrated before anything connects."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from stbridge.config import APP_VERSION, Settings, build_settings, ensure_config_file, read_config
from stbridge.state.migrate import MigrationContext, migrate
from stbridge.state.snapshot import EMPTY_VERSION, SnapshotStore, StateSnapshot

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    snapshot: StateSnapshot
    store: SnapshotStore
    config_dir: Path


def load_runtime(config_dir: Path) -> Runtime:
    """Raises ConfigError / SnapshotError; both are fatal."""
    # 1. Config (created from the sample on first start)
    config_path = ensure_config_file(config_dir)
    logger.info("Loading configuration from %s", config_path)
    raw_config = read_config(config_path)

    # 2. Saved state
    store = SnapshotStore.in_dir(config_dir)
    snapshot = store.load()
    if snapshot is None:
        logger.info("No previous state found, continuing")
        snapshot = StateSnapshot(version=EMPTY_VERSION)

    # 3. Upgrade both to the current version
    ctx = MigrationContext(config=raw_config, snapshot=snapshot, config_dir=config_dir)
    snapshot = migrate(ctx, store, APP_VERSION)

    # 4. Validate the upgraded config
    settings = build_settings(ctx.config)
    return Runtime(settings=settings, snapshot=snapshot, store=store, config_dir=config_dir)
