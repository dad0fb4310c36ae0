from __future__ import annotations

from ldap3.utils.conv import escape_filter_chars

SLOT = "%s"


def count_slots(pattern: str) -> int:
    """Количество слотов %s в шаблоне (экранированный %% не считается)."""
    return pattern.replace("%%", "").count(SLOT)


def render_filter(pattern: str, user_id: str, escape: bool = False) -> str:
    """
    Назначение:
        Подставляет идентификатор пользователя в шаблон LDAP-фильтра.

    Входные данные:
        pattern: str
            Шаблон с ровно одним слотом %s, например (&(objectClass=person)(uid=%s)).
        user_id: str
            Идентификатор пользователя.
        escape: bool
            Экранировать значение по RFC 4515 перед подстановкой.

    Выходные данные:
        str
            Готовый фильтр.

    Ограничения:
        - По умолчанию подстановка текстовая, без экранирования: спецсимволы
          фильтра в user_id меняют смысл запроса.
    """
    value = escape_filter_chars(user_id) if escape else user_id
    return pattern % (value,)
