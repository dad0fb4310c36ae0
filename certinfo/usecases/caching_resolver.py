from __future__ import annotations

import logging
from typing import Protocol

from certinfo.domain.exceptions import ResolutionError
from certinfo.domain.models import IdentityRecord
from certinfo.domain.ports.identity_cache import IdentityCacheProtocol
from certinfo.infra.logging.setup import logEvent


class IdentityResolverProtocol(Protocol):
    def resolve(self, user_id: str) -> IdentityRecord: ...


class CachingIdentityResolver:
    """
    Назначение/ответственность:
        Публичная точка резолва identity: кэш + делегирование IdentityResolver.
    Взаимодействия:
        - IdentityCacheProtocol: внедряется снаружи, вытеснение/TTL — его ответственность.
        - IdentityResolverProtocol: выполняет запросы к каталогу на промахе кэша.
    Ограничения:
        - Проверка/резолв/запись не синхронизированы: параллельные вызовы для одного
          некэшированного user_id могут оба сходить в каталог, побеждает последняя запись.
        - Негативная запись не перезапрашивается до внешнего вытеснения.
    """

    def __init__(
        self,
        resolver: IdentityResolverProtocol,
        cache: IdentityCacheProtocol,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        self.resolver = resolver
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

    def resolve(self, user_id: str) -> IdentityRecord:
        """
        Контракт (вход/выход):
            Вход: user_id.
            Выход: IdentityRecord или ResolutionError.
        Алгоритм:
            - Позитивная запись в кэше -> вернуть её без обращения к каталогу.
            - Негативная запись -> CACHED_FAILURE без обращения к каталогу.
            - Промах -> резолв; успех кэшируется как запись, любая ошибка как негативная
              запись, после чего исходная ошибка пробрасывается вызывающему.
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            if cached.record is None:
                logEvent(self.logger, logging.DEBUG, self.run_id, "cache", f"cached failure user={user_id}")
                raise ResolutionError.cached_failure(user_id)
            logEvent(self.logger, logging.DEBUG, self.run_id, "cache", f"cached hit user={user_id}")
            return cached.record

        logEvent(self.logger, logging.DEBUG, self.run_id, "cache", f"uncached user={user_id}")
        record: IdentityRecord | None = None
        try:
            record = self.resolver.resolve(user_id)
        except ResolutionError as exc:
            logEvent(self.logger, logging.INFO, self.run_id, "cache", f"resolution failed user={user_id} kind={exc.kind.value}")
            raise
        finally:
            self.cache.put(user_id, record)
        return record
