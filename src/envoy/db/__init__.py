"""Envoy storage layer: blob store (SQLite) and metadata store (JSON)."""

from envoy.db.blob_store import BlobStore
from envoy.db.connection import Database
from envoy.db.metadata_store import STORAGE_KEY, MetadataStore
from envoy.db.migrations import DB_NAME, DB_VERSION, MIGRATIONS, run_migrations

__all__ = [
    "BlobStore",
    "Database",
    "MetadataStore",
    "STORAGE_KEY",
    "DB_NAME",
    "DB_VERSION",
    "MIGRATIONS",
    "run_migrations",
]
