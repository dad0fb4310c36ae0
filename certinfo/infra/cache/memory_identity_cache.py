from __future__ import annotations

import threading

from certinfo.domain.models import CachedIdentity, IdentityRecord
from certinfo.domain.ports.identity_cache import IdentityCacheAdminProtocol


class InMemoryIdentityCache(IdentityCacheAdminProtocol):
    """
    Назначение/ответственность:
        Кэш identity в памяти процесса, без вытеснения.
        Отдельные get/put атомарны, резолвы при этом не сериализуются.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CachedIdentity] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> CachedIdentity | None:
        with self._lock:
            return self._entries.get(user_id)

    def put(self, user_id: str, record: IdentityRecord | None) -> None:
        with self._lock:
            self._entries[user_id] = CachedIdentity(record=record)

    def evict(self, user_id: str) -> bool:
        with self._lock:
            return self._entries.pop(user_id, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def stats(self) -> dict[str, int]:
        with self._lock:
            failures = sum(1 for entry in self._entries.values() if entry.is_failure)
            total = len(self._entries)
        return {"total": total, "resolved": total - failures, "failures": failures}
