from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

DirectoryEntry = Mapping[str, Any]


class DirectoryConnectionProtocol(Protocol):
    """
    Назначение/ответственность:
        Открытое соединение с каталогом, живущее в рамках одного резолва.
    Ограничения:
        - Только subtree-поиск, без записи.
        - Ошибки протокола поднимаются как ResolutionError(kind=TRANSPORT).
    """

    def search(self, base_dn: str, search_filter: str, attributes: Sequence[str]) -> list[DirectoryEntry]:
        """
        Контракт (вход/выход):
            - Вход: search base, готовый фильтр, список запрашиваемых атрибутов.
            - Выход: атрибуты найденных записей в порядке ответа каталога.
              Значение атрибута — скаляр или список значений.
        """
        ...

    def close(self) -> None: ...


class DirectoryConnectorProtocol(Protocol):
    """
    Назначение/ответственность:
        Фабрика соединений с каталогом. Пулинг, если он нужен, живёт здесь, а не в резолвере.
    """

    def open(self) -> DirectoryConnectionProtocol: ...


__all__ = ["DirectoryEntry", "DirectoryConnectionProtocol", "DirectoryConnectorProtocol"]
