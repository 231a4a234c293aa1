"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio

import pytest

from envoy.db.blob_store import BlobStore
from envoy.db.metadata_store import MetadataStore
from envoy.db.models import StoredBlob
from envoy.errors import StoreUnavailable


@pytest.fixture
def blob_store(tmp_path):
    """File-based blob store in tmp_path, opened and closed around the test."""
    store = BlobStore(tmp_path / "envoy-library.db")
    asyncio.run(store.open())
    yield store
    asyncio.run(store.close())


@pytest.fixture
def metadata_store(tmp_path):
    return MetadataStore(tmp_path / "meta")


class FailingBlobStore(BlobStore):
    """Blob store whose selected operations raise StoreUnavailable."""

    def __init__(self, db_path, *, fail: set[str]) -> None:
        super().__init__(db_path)
        self.fail = fail

    async def put(self, blob: StoredBlob) -> None:
        if "put" in self.fail:
            raise StoreUnavailable("transaction aborted")
        await super().put(blob)

    async def get(self, blob_id: str) -> StoredBlob | None:
        if "get" in self.fail:
            raise StoreUnavailable("transaction aborted")
        return await super().get(blob_id)

    async def get_all(self) -> list[StoredBlob]:
        if "get_all" in self.fail:
            raise StoreUnavailable("transaction aborted")
        return await super().get_all()

    async def delete(self, blob_id: str) -> None:
        if "delete" in self.fail:
            raise StoreUnavailable("transaction aborted")
        await super().delete(blob_id)


@pytest.fixture
def failing_blob_store(tmp_path):
    """Factory: ``failing_blob_store({"put"})`` returns an opened FailingBlobStore."""
    stores: list[FailingBlobStore] = []

    def _make(fail: set[str]) -> FailingBlobStore:
        store = FailingBlobStore(tmp_path / "failing.db", fail=fail)
        asyncio.run(store.open())
        stores.append(store)
        return store

    yield _make
    for store in stores:
        asyncio.run(store.close())
