from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteStoreDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    @property
    def write_lock(self) -> threading.Lock:
        return self._lock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                  id TEXT PRIMARY KEY,
                  email TEXT UNIQUE NOT NULL,
                  password_hash TEXT,
                  name TEXT NOT NULL,
                  picture TEXT,
                  google_id TEXT UNIQUE,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS donation_reports (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  report_id TEXT UNIQUE NOT NULL,
                  donation_json TEXT NOT NULL,
                  submitted_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS chat_sessions (
                  id TEXT PRIMARY KEY,
                  session_json TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  last_activity TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_chat_sessions_last_activity
                  ON chat_sessions(last_activity);
                """
            )
