from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_BASE_URL = "https://adventofcode.com"
USER_AGENT = "github.com/aocd-py/aocd-py by aocd-py maintainers"


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip())
    except Exception:
        return float(default)


def _xdg_dir(var: str, fallback: str) -> Path:
    raw = (os.getenv(var) or "").strip()
    base = Path(raw) if raw else Path.home() / fallback
    return base / "aocd"


def _default_data_dir() -> str:
    return _env_str("AOCD_DATA_DIR", str(_xdg_dir("XDG_DATA_HOME", ".local/share")))


def _default_cache_dir() -> str:
    return _env_str("AOCD_CACHE_DIR", str(_xdg_dir("XDG_CACHE_HOME", ".cache")))


@dataclass(frozen=True)
class AocdSettings:
    # main.db (the stored session) lives here.
    data_dir: str = field(default_factory=_default_data_dir)
    # cache.db (inputs and sent solutions) lives here.
    cache_dir: str = field(default_factory=_default_cache_dir)

    # Overrides the stored session when set.
    session: str = field(default_factory=lambda: os.getenv("AOC_SESSION", "").strip())

    base_url: str = field(default_factory=lambda: _env_str("AOCD_BASE_URL", DEFAULT_BASE_URL).rstrip("/"))
    user_agent: str = USER_AGENT
    http_timeout_seconds: float = field(default_factory=lambda: _env_float("AOCD_HTTP_TIMEOUT_SECONDS", 30.0))

    @property
    def main_db_path(self) -> str:
        return str(Path(self.data_dir) / "main.db")

    @property
    def cache_db_path(self) -> str:
        return str(Path(self.cache_dir) / "cache.db")
