from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class IdentityRecord:
    """
    Назначение:
        Данные субъекта сертификата, полученные из каталога.

    Поля:
        cn: каноническое имя
        uid: уникальный идентификатор
        mail: почтовый адрес
        groups: имена групп в порядке, в котором их вернул каталог
    """

    cn: str
    uid: str
    mail: str
    groups: tuple[str, ...] = ()


@dataclass(frozen=True)
class QueryTemplate:
    """
    Назначение:
        Пара (search base, шаблон фильтра с одним слотом %s).
    """

    base_dn: str
    filter_pattern: str


@dataclass(frozen=True)
class DirectoryQueries:
    user: QueryTemplate
    groups: QueryTemplate


@dataclass(frozen=True)
class CachedIdentity:
    """
    Назначение:
        Значение записи кэша identity.
    Инварианты:
        - record=None означает негативную запись (предыдущий резолв завершился ошибкой).
        - Отсутствие записи в кэше выражается самим None вместо CachedIdentity.
    """

    record: IdentityRecord | None

    @property
    def is_failure(self) -> bool:
        return self.record is None
