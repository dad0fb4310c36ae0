from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Закрытая таксономия причин неуспешного резолва identity.
    Инварианты:
        - MISSING_USER/TOO_MANY_USERS/MISSING_DETAILS — ошибки валидации ответа каталога.
        - TRANSPORT — сбой протокола/соединения, не смешивается с валидацией.
        - CACHED_FAILURE — в кэше лежит негативная запись, каталог не опрашивался.
    """

    MISSING_USER = "MISSING_USER"
    TOO_MANY_USERS = "TOO_MANY_USERS"
    MISSING_DETAILS = "MISSING_DETAILS"
    CACHED_FAILURE = "CACHED_FAILURE"
    TRANSPORT = "TRANSPORT"

    @property
    def is_validation(self) -> bool:
        return self in (ErrorCode.MISSING_USER, ErrorCode.TOO_MANY_USERS, ErrorCode.MISSING_DETAILS)
