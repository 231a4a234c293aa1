"""Shared plumbing for CLI commands: open both stores, reconcile, yield a manager."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from envoy.config import ConfigError, EnvoyConfig, load_config
from envoy.db.blob_store import BlobStore
from envoy.db.metadata_store import MetadataStore
from envoy.library.manager import LibraryManager
from envoy.library.reconciler import reconcile_library


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def resolve_config(data_dir: str | None = None, max_items: int | None = None) -> EnvoyConfig:
    """Load config and apply CLI flag overrides (highest priority)."""
    cfg = load_config()
    if data_dir is not None:
        cfg.library.data_dir = data_dir
    if max_items is not None:
        if max_items < 1:
            raise ConfigError("--max-items must be >= 1")
        cfg.library.max_items = max_items
    return cfg


def metadata_store_for(cfg: EnvoyConfig) -> MetadataStore:
    return MetadataStore(cfg.data_dir, quota_bytes=cfg.storage.metadata_quota_bytes)


@asynccontextmanager
async def open_library(cfg: EnvoyConfig) -> AsyncIterator[LibraryManager]:
    """Open the stores, run startup reconciliation and yield a LibraryManager.

    Raises:
        StoreUnavailable: If the blob store cannot be opened.
    """
    metadata = metadata_store_for(cfg)
    async with BlobStore(cfg.db_path) as blobs:
        state = await reconcile_library(
            metadata, blobs, default_group_name=cfg.library.default_group_name
        )
        yield LibraryManager(state, metadata, blobs, max_items=cfg.library.max_items)
