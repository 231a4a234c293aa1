"""Tests for startup reconciliation between the two stores."""

from __future__ import annotations

import asyncio
import json

from envoy.db.models import (
    DEFAULT_GROUP_ID,
    Group,
    SourceDescriptor,
    SourceType,
    StoredBlob,
    default_groups,
)
from envoy.library.reconciler import reconcile, reconcile_library


def _blob(id="file-1", name="reg.pdf"):
    return StoredBlob(id=id, name=name, mime_type="application/pdf", data="AAAA", date="2026-01-01")


def _url(id="src-1"):
    return SourceDescriptor(id=id, type=SourceType.URL, title="u", url="https://example.com")


# ------------------------------------------------------------------
# reconcile(): pure
# ------------------------------------------------------------------

def test_absent_metadata_seeds_default_group():
    groups, added = reconcile(None, [])
    assert [g.id for g in groups] == [DEFAULT_GROUP_ID]
    assert groups[0].sources == []
    assert added == []


def test_orphan_blob_gets_file_descriptor():
    groups, added = reconcile(default_groups(), [_blob()])
    assert len(added) == 1
    d = groups[0].sources[0]
    assert (d.id, d.type, d.title, d.mime_type) == ("file-1", SourceType.FILE, "reg.pdf", "application/pdf")
    assert d.url is None


def test_known_blob_not_duplicated():
    groups = default_groups()
    groups[0].sources.append(
        SourceDescriptor(id="file-1", type=SourceType.FILE, title="Renamed", mime_type="application/pdf")
    )
    result, added = reconcile(groups, [_blob()])
    assert added == []
    assert len(result[0].sources) == 1
    assert result[0].sources[0].title == "Renamed"


def test_blob_known_in_other_group_not_duplicated():
    groups = default_groups() + [
        Group(id="g2", name="Other", sources=[
            SourceDescriptor(id="file-1", type=SourceType.FILE, title="x", mime_type="application/pdf")
        ])
    ]
    result, added = reconcile(groups, [_blob()])
    assert added == []
    assert result[0].sources == []


def test_orphans_go_to_default_group():
    groups = [Group(id="g2", name="Other"), *default_groups()]
    result, _ = reconcile(groups, [_blob()])
    assert result[0].sources == []
    assert [s.id for s in result[1].sources] == ["file-1"]


def test_orphans_go_to_first_group_without_default():
    groups = [Group(id="g2", name="Other"), Group(id="g3", name="Third")]
    result, _ = reconcile(groups, [_blob()])
    assert [s.id for s in result[0].sources] == ["file-1"]


def test_appends_after_existing_sources():
    groups = default_groups()
    groups[0].sources.append(_url())
    result, _ = reconcile(groups, [_blob()])
    assert [s.id for s in result[0].sources] == ["src-1", "file-1"]


def test_input_not_mutated():
    groups = default_groups()
    reconcile(groups, [_blob()])
    assert groups[0].sources == []


def test_dangling_descriptor_kept():
    groups = default_groups()
    groups[0].sources.append(
        SourceDescriptor(id="file-gone", type=SourceType.FILE, title="gone.pdf", mime_type="application/pdf")
    )
    result, _ = reconcile(groups, [])
    assert [s.id for s in result[0].sources] == ["file-gone"]


def test_reconcile_is_idempotent():
    once, _ = reconcile(None, [_blob("a"), _blob("b")])
    twice, added = reconcile(once, [_blob("a"), _blob("b")])
    assert twice == once
    assert added == []


def test_custom_default_group_name():
    groups, _ = reconcile(None, [], default_group_name="Regulations")
    assert groups[0].name == "Regulations"


# ------------------------------------------------------------------
# reconcile_library(): both stores
# ------------------------------------------------------------------

def test_reconcile_library_recovers_orphans_and_saves(metadata_store, blob_store):
    asyncio.run(blob_store.put(_blob()))
    state = asyncio.run(reconcile_library(metadata_store, blob_store))
    assert [s.id for s in state.active_group.sources] == ["file-1"]
    assert metadata_store.load() == state.groups


def test_reconcile_library_twice_same_result(metadata_store, blob_store):
    asyncio.run(blob_store.put(_blob("a")))
    asyncio.run(blob_store.put(_blob("b")))
    first = asyncio.run(reconcile_library(metadata_store, blob_store))
    second = asyncio.run(reconcile_library(metadata_store, blob_store))
    assert first.groups == second.groups
    assert len(second.groups[0].sources) == 2


def test_reconcile_library_seeds_and_persists_defaults(metadata_store, blob_store):
    state = asyncio.run(reconcile_library(metadata_store, blob_store))
    assert state.groups == default_groups()
    assert metadata_store.load() == default_groups()


def test_reconcile_library_blob_store_unavailable(metadata_store, failing_blob_store):
    groups = default_groups()
    groups[0].sources.append(_url())
    metadata_store.save(groups)
    state = asyncio.run(reconcile_library(metadata_store, failing_blob_store({"get_all"})))
    assert state.groups == groups


def test_reconcile_library_active_group_fallback(metadata_store, blob_store):
    metadata_store.save([Group(id="g2", name="Other")])
    state = asyncio.run(reconcile_library(metadata_store, blob_store))
    assert state.active_group_id == "g2"


def _write_raw(store, text):
    store.root.mkdir(parents=True, exist_ok=True)
    store.path.write_text(text, encoding="utf-8")


def test_reconcile_library_keeps_valid_sources_beside_bad_one(metadata_store, blob_store):
    _write_raw(metadata_store, json.dumps({"groups": [{
        "id": DEFAULT_GROUP_ID,
        "name": "My Knowledge Library",
        "sources": [
            {"id": "src-1", "type": "url", "title": "u", "url": "https://example.com"},
            {"id": "note-1", "type": "note", "title": "Scribble"},
        ],
    }]}))
    original = metadata_store.path.read_text(encoding="utf-8")
    asyncio.run(blob_store.put(_blob()))

    state = asyncio.run(reconcile_library(metadata_store, blob_store))

    assert [s.id for s in state.active_group.sources] == ["src-1", "file-1"]
    assert [s.id for s in metadata_store.load()[0].sources] == ["src-1", "file-1"]
    assert metadata_store.corrupt_path.read_text(encoding="utf-8") == original


def test_reconcile_library_moves_undecodable_document_aside(metadata_store, blob_store):
    _write_raw(metadata_store, '{"groups": [truncated')

    state = asyncio.run(reconcile_library(metadata_store, blob_store))

    assert state.groups == default_groups()
    assert metadata_store.load() == default_groups()
    assert metadata_store.corrupt_path.read_text(encoding="utf-8") == '{"groups": [truncated'


def test_reconcile_library_clean_document_makes_no_backup(metadata_store, blob_store):
    metadata_store.save(default_groups())
    asyncio.run(reconcile_library(metadata_store, blob_store))
    assert not metadata_store.corrupt_path.exists()
