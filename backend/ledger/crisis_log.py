from __future__ import annotations

import json
import uuid
from typing import Any

from alex_core.emergency import EmergencyProtocol
from alex_core.time_utils import to_iso, utc_now

from .database import SQLiteLedgerDB


class SQLiteCrisisEventLog:
    def __init__(self, db: SQLiteLedgerDB) -> None:
        self._db = db

    def record(
        self,
        provider_id: str,
        message: str,
        protocol: EmergencyProtocol,
        *,
        session_key: str | None = None,
    ) -> str:
        event_id = uuid.uuid4().hex
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO ai_crisis_events (
                  id, provider_id, session_key, crisis_message, protocol_json,
                  severity_level, actions_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    provider_id,
                    session_key,
                    message,
                    json.dumps(protocol.as_dict(), sort_keys=True),
                    protocol.severity,
                    json.dumps(list(protocol.immediate_actions)),
                    to_iso(utc_now()),
                ),
            )
        return event_id

    def list_events(self, provider_id: str, limit: int = 50) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, session_key, crisis_message, severity_level, actions_json, created_at
                FROM ai_crisis_events
                WHERE provider_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (provider_id, max(1, limit)),
            ).fetchall()
        return [
            {
                "id": row["id"],
                "session_key": row["session_key"],
                "crisis_message": row["crisis_message"],
                "severity_level": row["severity_level"],
                "actions": json.loads(row["actions_json"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
