from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteLedgerDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
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
                CREATE TABLE IF NOT EXISTS ai_usage_log (
                  id TEXT PRIMARY KEY,
                  request_id TEXT UNIQUE NOT NULL,
                  provider_id TEXT NOT NULL,
                  tier TEXT,
                  query_length INTEGER NOT NULL DEFAULT 0,
                  response_type TEXT,
                  usage_month TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_ai_usage_provider_month
                  ON ai_usage_log(provider_id, usage_month);

                CREATE TABLE IF NOT EXISTS ai_crisis_events (
                  id TEXT PRIMARY KEY,
                  provider_id TEXT NOT NULL,
                  session_key TEXT,
                  crisis_message TEXT NOT NULL,
                  protocol_json TEXT NOT NULL,
                  severity_level TEXT NOT NULL,
                  actions_json TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_ai_crisis_provider
                  ON ai_crisis_events(provider_id, created_at);
                """
            )
