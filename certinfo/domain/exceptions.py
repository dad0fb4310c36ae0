from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from certinfo.domain.error_codes import ErrorCode


@dataclass
class AppError(Exception):
    """
    Унифицированная ошибка приложения.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }


_DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_USER: "User not found in directory",
    ErrorCode.TOO_MANY_USERS: "User filter matched more than one entry",
    ErrorCode.MISSING_DETAILS: "Directory entry lacks required attributes",
    ErrorCode.CACHED_FAILURE: "Previous resolution failed (cached)",
    ErrorCode.TRANSPORT: "Directory request failed",
}


class ResolutionError(AppError):
    def __init__(
        self,
        kind: ErrorCode,
        message: str | None = None,
        user_id: str | None = None,
        details: dict | None = None,
    ):
        """
        Назначение:
            Единственный тип ошибки резолва identity.
        Контракт:
            - kind: ErrorCode, по нему вызывающий код выбирает поведение (не по типу исключения).
            - user_id: идентификатор, для которого выполнялся резолв.
            - Для TRANSPORT исходное исключение клиента каталога доступно через __cause__.
        """
        super().__init__(
            category="directory" if kind is ErrorCode.TRANSPORT else "identity",
            code=kind.value,
            message=message or _DEFAULT_MESSAGES[kind],
            retryable=False,
            details=details or {},
        )
        self.kind = kind
        self.user_id = user_id

    @classmethod
    def missing_user(cls, user_id: str) -> "ResolutionError":
        return cls(ErrorCode.MISSING_USER, user_id=user_id)

    @classmethod
    def too_many_users(cls, user_id: str, count: int) -> "ResolutionError":
        return cls(ErrorCode.TOO_MANY_USERS, user_id=user_id, details={"count": count})

    @classmethod
    def missing_details(cls, user_id: str, missing: list[str]) -> "ResolutionError":
        return cls(
            ErrorCode.MISSING_DETAILS,
            f"Directory entry lacks required attributes: {', '.join(missing)}",
            user_id=user_id,
            details={"missing": missing},
        )

    @classmethod
    def cached_failure(cls, user_id: str) -> "ResolutionError":
        return cls(ErrorCode.CACHED_FAILURE, user_id=user_id)

    @classmethod
    def transport(cls, message: str, details: dict | None = None) -> "ResolutionError":
        return cls(ErrorCode.TRANSPORT, message, details=details)


class ConfigError(AppError):
    def __init__(self, message: str, missing: list[str] | None = None):
        """
        Назначение:
            Ошибка конфигурации: отсутствуют или некорректны обязательные настройки.
        """
        super().__init__(
            category="config",
            code="INVALID_CONFIG",
            message=message,
            retryable=False,
            details={"missing": missing} if missing else {},
        )


__all__ = ["AppError", "ResolutionError", "ConfigError"]
