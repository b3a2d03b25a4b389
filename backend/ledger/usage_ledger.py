from __future__ import annotations

import uuid
from typing import Callable

from alex_core.time_utils import month_bucket, to_iso, utc_now

from .database import SQLiteLedgerDB


class SQLiteUsageLedger:
    """Monthly AI query counter, one row per counted query.

    ``increment`` is keyed by ``request_id``; replaying the same request id is
    a no-op, so callers may retry without double counting.
    """

    def __init__(self, db: SQLiteLedgerDB, *, clock: Callable = utc_now) -> None:
        self._db = db
        self._clock = clock

    def get_monthly_count(self, provider_id: str) -> int:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS usage_count
                FROM ai_usage_log
                WHERE provider_id = ? AND usage_month = ?
                """,
                (provider_id, month_bucket(self._clock())),
            ).fetchone()
        return int(row["usage_count"] if row else 0)

    def increment(
        self,
        provider_id: str,
        *,
        request_id: str | None = None,
        tier: str | None = None,
        query_length: int = 0,
        response_type: str | None = None,
    ) -> bool:
        now = self._clock()
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO ai_usage_log (
                  id, request_id, provider_id, tier, query_length, response_type, usage_month, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(request_id) DO NOTHING
                """,
                (
                    uuid.uuid4().hex,
                    request_id or uuid.uuid4().hex,
                    provider_id,
                    tier,
                    int(query_length),
                    response_type,
                    month_bucket(now),
                    to_iso(now),
                ),
            )
            return cursor.rowcount > 0
