from __future__ import annotations

from certinfo.infra.cache.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 1


def ensure_cache_ready(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать meta и identity_cache, вернуть актуальную версию схемы.
    """
    with engine.transaction():
        _create_meta(engine)
        current_version = _get_schema_version(engine) or 0
        if current_version == 0:
            _create_identity_cache(engine)
            _set_schema_version(engine, SCHEMA_VERSION)
            return SCHEMA_VERSION
        if current_version > SCHEMA_VERSION:
            raise RuntimeError(
                f"Cache schema version {current_version} is newer than supported {SCHEMA_VERSION}"
            )
        return current_version


def _create_meta(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )


def _create_identity_cache(engine: SqliteEngine) -> None:
    # payload IS NULL — негативная запись
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS identity_cache (
            user_id TEXT PRIMARY KEY,
            payload TEXT,
            resolved_at TEXT NOT NULL
        )
        """
    )


def _get_schema_version(engine: SqliteEngine) -> int | None:
    row = engine.fetchone("SELECT value FROM meta WHERE key='schema_version'")
    if row is None:
        return None
    try:
        return int(row[0])
    except (TypeError, ValueError):
        return None


def _set_schema_version(engine: SqliteEngine, version: int) -> None:
    engine.execute(
        """
        INSERT INTO meta(key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        ("schema_version", str(version)),
    )


def get_schema_version(engine: SqliteEngine) -> int | None:
    return _get_schema_version(engine)
