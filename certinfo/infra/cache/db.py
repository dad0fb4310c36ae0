from __future__ import annotations

import sqlite3
from pathlib import Path

CACHE_DB_FILENAME = "certinfo_cache.sqlite3"


def getCacheDbPath(cacheDir: str) -> str:
    """
    Возвращает путь к файлу кэша identity в указанном каталоге.
    """
    return str(Path(cacheDir) / CACHE_DB_FILENAME)


def openCacheDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite БД кэша.
    Соединение разделяется потоками резолва, доступ сериализует SqliteEngine.
    """
    Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dbPath, timeout=5.0, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn
