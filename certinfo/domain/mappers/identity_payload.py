from __future__ import annotations

from typing import Any

from certinfo.domain.models import IdentityRecord

_REQUIRED_KEYS = ("cn", "uid", "mail")


def buildIdentityPayload(record: IdentityRecord) -> dict[str, Any]:
    """
    Строит JSON-совместимый payload записи для хранения в кэше.
    """
    return {
        "cn": record.cn,
        "uid": record.uid,
        "mail": record.mail,
        "groups": list(record.groups),
    }


def parseIdentityPayload(payload: Any) -> IdentityRecord:
    """
    Назначение:
        Восстанавливает IdentityRecord из сохранённого payload.
    Ошибки:
        ValueError, если payload повреждён (нет обязательных полей или неверные типы).
    """
    if not isinstance(payload, dict):
        raise ValueError("Identity payload must be an object")
    missing = [key for key in _REQUIRED_KEYS if not isinstance(payload.get(key), str)]
    if missing:
        raise ValueError(f"Missing required fields in identity payload: {', '.join(missing)}")
    groups = payload.get("groups") or []
    if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
        raise ValueError("Identity payload groups must be a list of strings")
    return IdentityRecord(
        cn=payload["cn"],
        uid=payload["uid"],
        mail=payload["mail"],
        groups=tuple(groups),
    )
