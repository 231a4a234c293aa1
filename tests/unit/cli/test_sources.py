"""Tests for envoy add-url / add-file / remove / rename / list / groups."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from typer.testing import CliRunner

from envoy.cli.main import app
from envoy.db.metadata_store import STORAGE_KEY

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _data(tmp_path: Path) -> str:
    return str(tmp_path / "data")


def _metadata(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "data" / f"{STORAGE_KEY}.json").read_text(encoding="utf-8"))


def _sources(tmp_path: Path) -> list[dict]:
    return _metadata(tmp_path)["groups"][0]["sources"]


def _pdf(tmp_path: Path, name: str = "reg.pdf") -> Path:
    path = tmp_path / name
    path.write_bytes(b"%PDF-1.4\n%%EOF\n")
    return path


# ---------------------------------------------------------------------------
# add-url
# ---------------------------------------------------------------------------


def test_add_url_persists(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["add-url", "https://example.com/act.pdf", "--data-dir", _data(tmp_path)]
    )
    assert result.exit_code == 0, result.output
    assert "Added URL" in result.output

    sources = _sources(tmp_path)
    assert len(sources) == 1
    assert sources[0]["type"] == "url"
    assert sources[0]["title"] == "https://example.com/act.pdf"
    assert sources[0]["id"].startswith("src-")


def test_add_url_invalid_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["add-url", "not a url", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 1
    assert "Invalid URL" in result.output
    assert _sources(tmp_path) == []


def test_add_url_capacity(tmp_path: Path) -> None:
    args = ["--data-dir", _data(tmp_path), "--max-items", "1"]
    assert runner.invoke(app, ["add-url", "https://a.eu", *args]).exit_code == 0
    result = runner.invoke(app, ["add-url", "https://b.eu", *args])
    assert result.exit_code == 1
    assert "Maximum limit reached" in result.output
    assert len(_sources(tmp_path)) == 1


def test_add_url_unknown_group(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["add-url", "https://a.eu", "--group", "nope", "--data-dir", _data(tmp_path)]
    )
    assert result.exit_code == 1
    assert "nope" in result.output


# ---------------------------------------------------------------------------
# add-file
# ---------------------------------------------------------------------------


def test_add_file_pdf(tmp_path: Path) -> None:
    result = runner.invoke(app, ["add-file", str(_pdf(tmp_path)), "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Added file: reg.pdf" in result.output

    sources = _sources(tmp_path)
    assert sources[0]["type"] == "file"
    assert sources[0]["mimeType"] == "application/pdf"
    assert (tmp_path / "data" / "envoy-library.db").exists()


def test_add_file_rejects_non_pdf(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("hello", encoding="utf-8")
    result = runner.invoke(app, ["add-file", str(notes), "--data-dir", _data(tmp_path)])
    assert result.exit_code == 1
    assert "Only PDF files" in result.output


def test_add_file_missing_path(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["add-file", str(tmp_path / "missing.pdf"), "--data-dir", _data(tmp_path)]
    )
    assert result.exit_code == 1
    assert "File not found" in result.output


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------


def test_remove_file_with_yes(tmp_path: Path) -> None:
    runner.invoke(app, ["add-file", str(_pdf(tmp_path)), "--data-dir", _data(tmp_path)])
    source_id = _sources(tmp_path)[0]["id"]

    result = runner.invoke(app, ["remove", source_id, "--yes", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Removed: reg.pdf" in result.output
    assert _sources(tmp_path) == []

    # The blob is gone too: a fresh start does not resurrect it.
    runner.invoke(app, ["list", "--data-dir", _data(tmp_path)])
    assert _sources(tmp_path) == []


def test_remove_by_title_with_prompt(tmp_path: Path) -> None:
    runner.invoke(app, ["add-url", "https://a.eu", "--data-dir", _data(tmp_path)])
    result = runner.invoke(
        app, ["remove", "https://a.eu", "--data-dir", _data(tmp_path)], input="y\n"
    )
    assert result.exit_code == 0, result.output
    assert _sources(tmp_path) == []


def test_remove_cancelled(tmp_path: Path) -> None:
    runner.invoke(app, ["add-url", "https://a.eu", "--data-dir", _data(tmp_path)])
    result = runner.invoke(
        app, ["remove", "https://a.eu", "--data-dir", _data(tmp_path)], input="n\n"
    )
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert len(_sources(tmp_path)) == 1


def test_remove_unknown_source(tmp_path: Path) -> None:
    result = runner.invoke(app, ["remove", "src-missing", "--yes", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0
    assert "Source not found" in result.output


# ---------------------------------------------------------------------------
# rename
# ---------------------------------------------------------------------------


def test_rename_source(tmp_path: Path) -> None:
    runner.invoke(app, ["add-file", str(_pdf(tmp_path)), "--data-dir", _data(tmp_path)])
    source_id = _sources(tmp_path)[0]["id"]

    result = runner.invoke(app, ["rename", source_id, "EU AI Act", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Renamed to: EU AI Act" in result.output
    assert _sources(tmp_path)[0]["title"] == "EU AI Act"


def test_rename_empty_title_rejected(tmp_path: Path) -> None:
    runner.invoke(app, ["add-url", "https://a.eu", "--data-dir", _data(tmp_path)])
    source_id = _sources(tmp_path)[0]["id"]

    result = runner.invoke(app, ["rename", source_id, "   ", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 1
    assert "Title cannot be empty" in result.output
    assert _sources(tmp_path)[0]["title"] == "https://a.eu"


def test_rename_unknown_source(tmp_path: Path) -> None:
    result = runner.invoke(app, ["rename", "src-missing", "X", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 1
    assert "Source not found" in result.output


# ---------------------------------------------------------------------------
# list / groups
# ---------------------------------------------------------------------------


def test_list_empty(tmp_path: Path) -> None:
    result = runner.invoke(app, ["list", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0
    assert "is empty" in result.output


def test_list_shows_sources(tmp_path: Path) -> None:
    runner.invoke(app, ["add-url", "https://a.eu", "--data-dir", _data(tmp_path)])
    result = runner.invoke(app, ["list", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0
    assert "https://a.eu" in result.output
    assert "1/50" in result.output


def test_groups_marks_active(tmp_path: Path) -> None:
    result = runner.invoke(app, ["groups", "--data-dir", _data(tmp_path)])
    assert result.exit_code == 0
    assert "default-library" in result.output
    assert "active" in result.output


def test_data_dir_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("ENVOY_DATA_DIR", _data(tmp_path))
    result = runner.invoke(app, ["add-url", "https://a.eu"])
    assert result.exit_code == 0, result.output
    assert len(_sources(tmp_path)) == 1


def test_remove_with_metadata_save_failure_no_orphan_warning(tmp_path: Path) -> None:
    runner.invoke(app, ["add-file", str(_pdf(tmp_path)), "--data-dir", _data(tmp_path)])
    (tmp_path / "envoy.yaml").write_text("storage:\n  metadata_quota_bytes: 1\n", encoding="utf-8")

    result = runner.invoke(app, ["remove", "reg.pdf", "--yes", "--data-dir", _data(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Removed: reg.pdf" in result.output
    assert "could not be deleted" not in result.output
    with sqlite3.connect(tmp_path / "data" / "envoy-library.db") as conn:
        assert conn.execute("SELECT COUNT(*) FROM files").fetchone()[0] == 0
