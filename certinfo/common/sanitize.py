def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секреты (пароль bind DN) для безопасного вывода в stdout/logs.

    Выходные данные:
        str | None
            Если value задано — возвращает '***', иначе None.
    """
    if value is None:
        return None
    return "***"


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста ошибок каталога, чтобы не раздувать логи.

    Выходные данные:
        str | None
            Строка, не длиннее limit символов; None, если вход None.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    return value[: limit - len(suffix)] + suffix
