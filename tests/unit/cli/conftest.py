"""CLI fixtures: isolate the working directory, global config and env."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("envoy.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("ENVOY_GENERATION_MODEL", "ENVOY_MAX_ITEMS", "ENVOY_DATA_DIR"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path
