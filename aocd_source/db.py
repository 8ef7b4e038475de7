from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from aocd_source.settings import AocdSettings


@dataclass(frozen=True)
class SentSolution:
    solution: str
    correct: bool


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db path")
    Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _connect_main(settings: AocdSettings) -> sqlite3.Connection:
    conn = _connect(settings.main_db_path)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          created TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
          session TEXT NOT NULL
        );
        """
    )
    return conn


def _connect_cache(settings: AocdSettings) -> sqlite3.Connection:
    conn = _connect(settings.cache_db_path)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS inputs (
          year INTEGER NOT NULL,
          day INTEGER NOT NULL,
          input TEXT,
          PRIMARY KEY (year, day)
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sent_solutions (
          year INTEGER NOT NULL,
          day INTEGER NOT NULL,
          part INTEGER NOT NULL,
          solution TEXT NOT NULL,
          timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
          correct INTEGER NOT NULL,
          PRIMARY KEY (year, day, part, solution)
        );
        """
    )
    return conn


def get_session(settings: AocdSettings) -> str | None:
    conn = _connect_main(settings)
    try:
        row = conn.execute("SELECT session FROM sessions ORDER BY id DESC LIMIT 1").fetchone()
        return str(row["session"]) if row else None
    finally:
        conn.close()


def set_session(settings: AocdSettings, session: str) -> None:
    conn = _connect_main(settings)
    try:
        conn.execute("BEGIN")
        try:
            conn.execute("DELETE FROM sessions")
            conn.execute("INSERT INTO sessions (session) VALUES (?)", (str(session),))
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
    finally:
        conn.close()


def get_cached_input(settings: AocdSettings, *, year: int, day: int) -> str | None:
    conn = _connect_cache(settings)
    try:
        row = conn.execute("SELECT input FROM inputs WHERE year = ? AND day = ?", (int(year), int(day))).fetchone()
        return str(row["input"]) if row and row["input"] is not None else None
    finally:
        conn.close()


def put_input(settings: AocdSettings, *, year: int, day: int, text: str) -> None:
    conn = _connect_cache(settings)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO inputs (year, day, input) VALUES (?, ?, ?)",
            (int(year), int(day), str(text)),
        )
    finally:
        conn.close()


def sent_solutions(settings: AocdSettings, *, year: int, day: int, part: int) -> list[SentSolution]:
    conn = _connect_cache(settings)
    try:
        rows = conn.execute(
            "SELECT solution, correct FROM sent_solutions WHERE year = ? AND day = ? AND part = ? ORDER BY timestamp",
            (int(year), int(day), int(part)),
        ).fetchall()
    finally:
        conn.close()
    return [SentSolution(solution=str(r["solution"]), correct=bool(r["correct"])) for r in rows]


def record_solution(settings: AocdSettings, *, year: int, day: int, part: int, solution: str, correct: bool) -> None:
    conn = _connect_cache(settings)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO sent_solutions (year, day, part, solution, correct) VALUES (?, ?, ?, ?, ?)",
            (int(year), int(day), int(part), str(solution), 1 if correct else 0),
        )
    finally:
        conn.close()


def clear_data(settings: AocdSettings) -> None:
    """Forget the stored session, cached inputs and sent solutions."""
    for p in (settings.main_db_path, settings.cache_db_path):
        Path(p).unlink(missing_ok=True)
