from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable

from certinfo.domain.mappers.identity_payload import buildIdentityPayload, parseIdentityPayload
from certinfo.domain.models import CachedIdentity, IdentityRecord
from certinfo.domain.ports.identity_cache import IdentityCacheAdminProtocol
from certinfo.infra.cache.sqlite_engine import SqliteEngine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqliteIdentityCache(IdentityCacheAdminProtocol):
    """
    Назначение/ответственность:
        Персистентный кэш identity в SQLite (таблица identity_cache).
    Ограничения:
        - Негативная запись хранится как payload IS NULL.
        - ttl_seconds=None: записи живут до явного evict/clear.
          Иначе просроченная запись удаляется при чтении и считается отсутствующей.
    """

    def __init__(
        self,
        engine: SqliteEngine,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def get(self, user_id: str) -> CachedIdentity | None:
        row = self.engine.fetchone(
            "SELECT payload, resolved_at FROM identity_cache WHERE user_id = ?",
            (user_id,),
        )
        if row is None:
            return None
        if self._expired(row["resolved_at"]):
            self.evict(user_id)
            return None
        if row["payload"] is None:
            return CachedIdentity(record=None)
        return CachedIdentity(record=parseIdentityPayload(json.loads(row["payload"])))

    def put(self, user_id: str, record: IdentityRecord | None) -> None:
        payload = json.dumps(buildIdentityPayload(record), ensure_ascii=False) if record is not None else None
        self.engine.execute(
            """
            INSERT INTO identity_cache(user_id, payload, resolved_at)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                payload=excluded.payload,
                resolved_at=excluded.resolved_at
            """,
            (user_id, payload, self.clock().isoformat()),
        )

    def evict(self, user_id: str) -> bool:
        cur = self.engine.execute("DELETE FROM identity_cache WHERE user_id = ?", (user_id,))
        return cur.rowcount > 0

    def clear(self) -> int:
        cur = self.engine.execute("DELETE FROM identity_cache")
        return cur.rowcount

    def stats(self) -> dict[str, int]:
        row = self.engine.fetchone(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN payload IS NULL THEN 1 ELSE 0 END), 0) AS failures
            FROM identity_cache
            """
        )
        total = int(row["total"]) if row is not None else 0
        failures = int(row["failures"]) if row is not None else 0
        return {"total": total, "resolved": total - failures, "failures": failures}

    def _expired(self, resolved_at: str) -> bool:
        if self.ttl_seconds is None:
            return False
        try:
            stamp = datetime.fromisoformat(resolved_at)
        except (TypeError, ValueError):
            return True
        return self.clock() - stamp > timedelta(seconds=self.ttl_seconds)
