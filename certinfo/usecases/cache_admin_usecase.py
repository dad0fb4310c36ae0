from __future__ import annotations

import logging

from certinfo.domain.ports.identity_cache import IdentityCacheAdminProtocol
from certinfo.infra.logging.setup import logEvent


class CacheAdminUseCase:
    """
    Назначение/ответственность:
        Статус, очистка и точечное вытеснение записей кэша identity.
        Единственный способ снять негативную запись до истечения TTL хранилища.
    """

    def __init__(self, cache: IdentityCacheAdminProtocol, logger: logging.Logger | None = None, run_id: str = "-"):
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

    def status(self) -> dict[str, int]:
        return self.cache.stats()

    def clear(self) -> int:
        removed = self.cache.clear()
        logEvent(self.logger, logging.INFO, self.run_id, "cache", f"cache cleared removed={removed}")
        return removed

    def evict(self, user_id: str) -> bool:
        removed = self.cache.evict(user_id)
        logEvent(self.logger, logging.INFO, self.run_id, "cache", f"cache evict user={user_id} removed={removed}")
        return removed
