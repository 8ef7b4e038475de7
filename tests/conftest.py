from __future__ import annotations

import pytest

from aocd_runner import default as default_runner
from aocd_source.log import configure_logging


configure_logging()


@pytest.fixture(autouse=True)
def _isolated_aocd_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.delenv("AOC_SESSION", raising=False)
    monkeypatch.setenv("AOCD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AOCD_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setattr(default_runner, "_runner", None)
    monkeypatch.setattr(default_runner, "_config", None)
