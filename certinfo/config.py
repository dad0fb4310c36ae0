from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
import os
from typing import Any, Callable

import yaml

from certinfo.domain.exceptions import ConfigError
from certinfo.domain.filters import count_slots, render_filter
from certinfo.domain.models import DirectoryQueries, QueryTemplate

CACHE_BACKENDS = ("memory", "sqlite")


@dataclass(frozen=True)
class Settings:
    # Directory
    ldap_host: str | None = None
    ldap_port: int | None = None
    use_ssl: bool = False
    bind_dn: str | None = None
    bind_password: str | None = None
    connect_timeout_seconds: float = 10.0
    receive_timeout_seconds: float = 20.0
    tls_skip_verify: bool = False
    ca_file: str | None = None

    # Queries
    user_base_dn: str | None = None
    user_filter: str | None = None
    groups_base_dn: str | None = None
    groups_filter: str | None = None
    escape_filter_values: bool = False

    # Cache
    cache_backend: str = "sqlite"
    cache_dir: str = "./cache"
    cache_ttl_seconds: int | None = None

    # Logging
    log_dir: str = "./logs"
    log_level: str = "INFO"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_int(v: str | None) -> int | None:
    if v is None:
        return None
    return int(v)


def parse_float(v: str | None) -> float | None:
    if v is None:
        return None
    return float(v)


def parse_bool(v: str | None) -> bool | None:
    if v is None:
        return None
    vv = v.lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean env value: {v}")


def _parse_str(v: str | None) -> str | None:
    return v


# field -> (переменная окружения, парсер)
ENV_VARS: dict[str, tuple[str, Callable[[str | None], Any]]] = {
    "ldap_host": ("CERTINFO_LDAP_HOST", _parse_str),
    "ldap_port": ("CERTINFO_LDAP_PORT", parse_int),
    "use_ssl": ("CERTINFO_LDAP_USE_SSL", parse_bool),
    "bind_dn": ("CERTINFO_LDAP_BIND_DN", _parse_str),
    "bind_password": ("CERTINFO_LDAP_BIND_PASSWORD", _parse_str),
    "connect_timeout_seconds": ("CERTINFO_LDAP_CONNECT_TIMEOUT", parse_float),
    "receive_timeout_seconds": ("CERTINFO_LDAP_RECEIVE_TIMEOUT", parse_float),
    "tls_skip_verify": ("CERTINFO_TLS_SKIP_VERIFY", parse_bool),
    "ca_file": ("CERTINFO_CA_FILE", _parse_str),
    "user_base_dn": ("CERTINFO_USER_BASE_DN", _parse_str),
    "user_filter": ("CERTINFO_USER_FILTER", _parse_str),
    "groups_base_dn": ("CERTINFO_GROUPS_BASE_DN", _parse_str),
    "groups_filter": ("CERTINFO_GROUPS_FILTER", _parse_str),
    "escape_filter_values": ("CERTINFO_ESCAPE_FILTER_VALUES", parse_bool),
    "cache_backend": ("CERTINFO_CACHE_BACKEND", _parse_str),
    "cache_dir": ("CERTINFO_CACHE_DIR", _parse_str),
    "cache_ttl_seconds": ("CERTINFO_CACHE_TTL_SECONDS", parse_int),
    "log_dir": ("CERTINFO_LOG_DIR", _parse_str),
    "log_level": ("CERTINFO_LOG_LEVEL", _parse_str),
}


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()
    known = [f.name for f in fields(Settings)]

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    merged: dict[str, Any] = {name: cfg.get(name, getattr(defaults, name)) for name in known}

    # 2) env
    env: dict[str, Any] = {}
    for name, (var, parser) in ENV_VARS.items():
        raw = _env_get(var)
        if raw is not None:
            env[name] = parser(raw)
    if env:
        sources.append("env")
    merged.update(env)

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    if merged["cache_backend"] not in CACHE_BACKENDS:
        raise ConfigError(f"Unsupported cache backend: {merged['cache_backend']}")

    settings = Settings(
        **{
            **merged,
            "use_ssl": bool(merged["use_ssl"]),
            "tls_skip_verify": bool(merged["tls_skip_verify"]),
            "escape_filter_values": bool(merged["escape_filter_values"]),
        }
    )
    return LoadedSettings(settings=settings, sources_used=sources)


def build_directory_queries(settings: Settings) -> DirectoryQueries:
    """
    Назначение:
        Собирает шаблоны запросов к каталогу из настроек.

    Ошибки:
        ConfigError, если одно из четырёх значений не задано
        или шаблон фильтра содержит не ровно один слот %s
        либо не форматируется (например, одиночный %).
    """
    required = {
        "user_base_dn": settings.user_base_dn,
        "user_filter": settings.user_filter,
        "groups_base_dn": settings.groups_base_dn,
        "groups_filter": settings.groups_filter,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigError(f"Missing query settings: {', '.join(missing)}", missing=missing)

    for name in ("user_filter", "groups_filter"):
        slots = count_slots(required[name])
        if slots != 1:
            raise ConfigError(f"{name} must contain exactly one %s slot (found {slots})")
        try:
            render_filter(required[name], "x")
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name} is not a valid filter template: {exc}") from exc

    return DirectoryQueries(
        user=QueryTemplate(base_dn=settings.user_base_dn, filter_pattern=settings.user_filter),
        groups=QueryTemplate(base_dn=settings.groups_base_dn, filter_pattern=settings.groups_filter),
    )


def require_directory(settings: Settings) -> list[str]:
    """Возвращает список отсутствующих параметров подключения к каталогу."""
    missing = []
    if not settings.ldap_host:
        missing.append("ldap_host")
    if settings.bind_dn and not settings.bind_password:
        missing.append("bind_password")
    return missing
