from __future__ import annotations

from typing import Protocol

from certinfo.domain.models import CachedIdentity, IdentityRecord


class IdentityCacheProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт кэша результатов резолва (позитивных и негативных).
    Взаимодействия:
        Используется CachingIdentityResolver. Вытеснение/TTL — полностью на стороне реализации.
    """

    def get(self, user_id: str) -> CachedIdentity | None:
        """
        Контракт:
            - None: записи нет.
            - CachedIdentity(record=None): ранее зафиксирован неуспешный резолв.
            - CachedIdentity(record=...): ранее успешно полученная запись.
        """
        ...

    def put(self, user_id: str, record: IdentityRecord | None) -> None: ...


class IdentityCacheAdminProtocol(IdentityCacheProtocol, Protocol):
    """
    Назначение:
        Административные операции над кэшем (status/clear/evict).
    """

    def evict(self, user_id: str) -> bool: ...
    def clear(self) -> int: ...
    def stats(self) -> dict[str, int]: ...


__all__ = ["IdentityCacheProtocol", "IdentityCacheAdminProtocol"]
