from __future__ import annotations

import logging
from contextlib import closing
from typing import Any

from certinfo.domain.exceptions import ResolutionError
from certinfo.domain.filters import render_filter
from certinfo.domain.models import DirectoryQueries, IdentityRecord
from certinfo.domain.ports.directory import DirectoryEntry, DirectoryConnectorProtocol

USER_ATTRIBUTES = ("cn", "uid", "mail")
GROUP_ATTRIBUTES = ("cn",)


def _first_value(entry: DirectoryEntry, name: str) -> str | None:
    """
    Возвращает первое значение атрибута (имя без учёта регистра) или None,
    если атрибут отсутствует, пуст или не читается как строка.
    """
    value: Any = entry.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in entry.items():
            if key.lower() == lowered:
                value = candidate
                break
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None:
        return None
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    return str(value)


class IdentityResolver:
    """
    Назначение/ответственность:
        Резолв user_id в IdentityRecord двумя поисками в каталоге:
        сначала запись пользователя, затем группы.
    Взаимодействия:
        - DirectoryConnectorProtocol: соединение открывается на время одного вызова.
        - DirectoryQueries: шаблоны фильтров, не изменяются.
    Ограничения:
        - Без ретраев. Ошибки протокола (TRANSPORT) пробрасываются как есть.
        - Без кэширования (см. CachingIdentityResolver).
    """

    def __init__(
        self,
        connector: DirectoryConnectorProtocol,
        queries: DirectoryQueries,
        escape_filter_values: bool = False,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        self.connector = connector
        self.queries = queries
        self.escape_filter_values = escape_filter_values
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

    def resolve(self, user_id: str) -> IdentityRecord:
        """
        Контракт (вход/выход):
            Вход: user_id.
            Выход: IdentityRecord или ResolutionError
            (MISSING_USER | TOO_MANY_USERS | MISSING_DETAILS | TRANSPORT).
        Алгоритм:
            - Подставляет user_id в оба шаблона фильтров.
            - Открывает соединение, закрывает его на любом пути выхода.
            - Ищет пользователя: 0 записей -> MISSING_USER, >1 -> TOO_MANY_USERS.
            - Извлекает cn/uid/mail: чего-то нет -> MISSING_DETAILS.
            - Ищет группы и собирает их cn (пустой список допустим).
        """
        user_filter = render_filter(self.queries.user.filter_pattern, user_id, escape=self.escape_filter_values)
        groups_filter = render_filter(self.queries.groups.filter_pattern, user_id, escape=self.escape_filter_values)

        with closing(self.connector.open()) as conn:
            self.logger.log(
                logging.DEBUG,
                f"user search filter={user_filter}",
                extra={"runId": self.run_id, "component": "directory"},
            )
            users = conn.search(self.queries.user.base_dn, user_filter, USER_ATTRIBUTES)
            if not users:
                raise ResolutionError.missing_user(user_id)
            if len(users) > 1:
                raise ResolutionError.too_many_users(user_id, len(users))

            entry = users[0]
            values = {name: _first_value(entry, name) for name in USER_ATTRIBUTES}
            missing = [name for name, value in values.items() if value is None]
            if missing:
                raise ResolutionError.missing_details(user_id, missing)

            self.logger.log(
                logging.DEBUG,
                f"groups search filter={groups_filter}",
                extra={"runId": self.run_id, "component": "directory"},
            )
            groups: list[str] = []
            for group_entry in conn.search(self.queries.groups.base_dn, groups_filter, GROUP_ATTRIBUTES):
                group_cn = _first_value(group_entry, "cn")
                if group_cn is None:
                    raise ResolutionError.missing_details(user_id, ["group cn"])
                groups.append(group_cn)

        return IdentityRecord(
            cn=values["cn"],
            uid=values["uid"],
            mail=values["mail"],
            groups=tuple(groups),
        )
