from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

import typer

from certinfo.common.sanitize import maskSecret
from certinfo.config import Settings, build_directory_queries, load_settings, require_directory
from certinfo.domain.exceptions import ConfigError, ResolutionError
from certinfo.domain.identity.resolver import IdentityResolver
from certinfo.domain.mappers.identity_payload import buildIdentityPayload
from certinfo.domain.models import IdentityRecord
from certinfo.domain.ports.identity_cache import IdentityCacheAdminProtocol
from certinfo.infra.cache.db import getCacheDbPath, openCacheDb
from certinfo.infra.cache.memory_identity_cache import InMemoryIdentityCache
from certinfo.infra.cache.schema import ensure_cache_ready
from certinfo.infra.cache.sqlite_engine import SqliteEngine
from certinfo.infra.cache.sqlite_identity_cache import SqliteIdentityCache
from certinfo.infra.directory.ldap_client import LdapDirectoryConnector
from certinfo.infra.logging.setup import closeCommandLogger, createCommandLogger, logEvent, mapLogLevel
from certinfo.usecases.cache_admin_usecase import CacheAdminUseCase
from certinfo.usecases.caching_resolver import CachingIdentityResolver

app = typer.Typer(no_args_is_help=True, add_completion=False)
cacheApp = typer.Typer(no_args_is_help=True)


def ensureDir(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"ldap_host={settings.ldap_host} ldap_port={settings.ldap_port} bind_dn={settings.bind_dn} "
        f"bind_password={maskSecret(settings.bind_password)} sources={sources} "
        f"cache_backend={settings.cache_backend}"
    )


def runCommand(ctx: typer.Context, commandName: str, runner) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - печатает заголовок запуска
        - переводит код возврата runner в exit code процесса

    Входные данные:
        runner: Callable[[logging.Logger], int]
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    exitCode = 0
    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)
        exitCode = runner(logger)
    finally:
        logEvent(logger, logging.INFO, runId, "core", f"Command finished exit_code={exitCode} log={logFilePath}")
        closeCommandLogger(logger)

    if exitCode:
        raise typer.Exit(code=exitCode)


@contextmanager
def openIdentityCache(settings: Settings) -> Iterator[IdentityCacheAdminProtocol]:
    """
    Назначение:
        Создаёт хранилище кэша identity по settings.cache_backend и закрывает его по выходу.
    Ошибки:
        sqlite3.Error при недоступном файле кэша.
    """
    if settings.cache_backend == "memory":
        yield InMemoryIdentityCache()
        return

    engine = SqliteEngine(openCacheDb(getCacheDbPath(settings.cache_dir)))
    try:
        ensure_cache_ready(engine)
        yield SqliteIdentityCache(engine, ttl_seconds=settings.cache_ttl_seconds)
    finally:
        engine.close()


def buildConnector(settings: Settings, logger: logging.Logger, runId: str) -> LdapDirectoryConnector:
    return LdapDirectoryConnector(
        host=settings.ldap_host or "",
        port=settings.ldap_port,
        use_ssl=settings.use_ssl,
        bind_dn=settings.bind_dn,
        bind_password=settings.bind_password,
        connect_timeout_seconds=settings.connect_timeout_seconds,
        receive_timeout_seconds=settings.receive_timeout_seconds,
        tls_skip_verify=settings.tls_skip_verify,
        ca_file=settings.ca_file,
        logger=logger,
        run_id=runId,
    )


def formatRecord(userId: str, record: IdentityRecord, asJson: bool) -> str:
    if asJson:
        return json.dumps({"user_id": userId, **buildIdentityPayload(record)}, ensure_ascii=False)
    return (
        f"user_id={userId} cn={record.cn!r} uid={record.uid} mail={record.mail} "
        f"groups={','.join(record.groups)}"
    )


def runResolveCommand(ctx: typer.Context, userIds: list[str], asJson: bool) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger) -> int:
        try:
            queries = build_directory_queries(settings)
        except ConfigError as exc:
            logEvent(logger, logging.ERROR, runId, "config", str(exc))
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        missing = require_directory(settings)
        if missing:
            logEvent(logger, logging.ERROR, runId, "config", "Missing directory settings")
            typer.echo(f"ERROR: missing directory settings: {', '.join(missing)}", err=True)
            return 2

        connector = buildConnector(settings, logger, runId)
        resolver = IdentityResolver(
            connector,
            queries,
            escape_filter_values=settings.escape_filter_values,
            logger=logger,
            run_id=runId,
        )
        try:
            with openIdentityCache(settings) as cache:
                cachingResolver = CachingIdentityResolver(resolver, cache, logger=logger, run_id=runId)
                exitCode = 0
                for userId in userIds:
                    try:
                        record = cachingResolver.resolve(userId)
                    except ResolutionError as exc:
                        logEvent(logger, logging.ERROR, runId, "resolve", f"user={userId} {exc.kind.value}: {exc}")
                        typer.echo(f"ERROR: user={userId} {exc.kind.value}: {exc}", err=True)
                        exitCode = 1
                        continue
                    typer.echo(formatRecord(userId, record, asJson))
                return exitCode
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "cache", f"Failed to open cache DB: {exc}")
            typer.echo("ERROR: failed to open cache DB (see logs)", err=True)
            return 2
        except ValueError as exc:
            logEvent(logger, logging.ERROR, runId, "cache", f"Malformed cache entry: {exc}")
            typer.echo("ERROR: malformed cache entry, run `cache clear` or `cache evict` (see logs)", err=True)
            return 2

    runCommand(ctx, "resolve", execute)


def runCheckDirectoryCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger) -> int:
        missing = require_directory(settings)
        if missing:
            logEvent(logger, logging.ERROR, runId, "config", "Missing directory settings")
            typer.echo(f"ERROR: missing directory settings: {', '.join(missing)}", err=True)
            return 2
        connector = buildConnector(settings, logger, runId)
        try:
            with closing(connector.open()):
                pass
        except ResolutionError as exc:
            logEvent(logger, logging.ERROR, runId, "directory", f"Directory check failed: {exc}")
            typer.echo("ERROR: directory check failed (see logs)", err=True)
            return 2
        logEvent(logger, logging.INFO, runId, "directory", f"directory ok host={settings.ldap_host}")
        typer.echo(f"directory ok host={settings.ldap_host}")
        return 0

    runCommand(ctx, "check-directory", execute)


def runCacheCommand(ctx: typer.Context, commandName: str, action) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger) -> int:
        try:
            with openIdentityCache(settings) as cache:
                return action(CacheAdminUseCase(cache, logger=logger, run_id=runId))
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "cache", f"Failed to open cache DB: {exc}")
            typer.echo("ERROR: failed to open cache DB (see logs)", err=True)
            return 2

    runCommand(ctx, commandName, execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to YAML config"),
    ldapHost: str | None = typer.Option(None, "--ldap-host", help="Directory host or ldap(s):// URL"),
    ldapPort: int | None = typer.Option(None, "--ldap-port", help="Directory port"),
    useSsl: bool | None = typer.Option(None, "--use-ssl/--no-use-ssl", help="Use LDAPS"),
    bindDn: str | None = typer.Option(None, "--bind-dn", help="Bind DN"),
    bindPassword: str | None = typer.Option(None, "--bind-password", help="Bind password"),
    bindPasswordFile: str | None = typer.Option(None, "--bind-password-file", help="Read bind password from file"),
    cacheDir: str | None = typer.Option(None, "--cache-dir", help="Cache directory"),
    cacheBackend: str | None = typer.Option(None, "--cache-backend", help="Cache backend: memory|sqlite"),
    cacheTtlSeconds: int | None = typer.Option(None, "--cache-ttl-seconds", help="Expire cache entries after N seconds"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Log directory"),
    logLevel: str | None = typer.Option(None, "--log-level", help="ERROR|WARN|INFO|DEBUG"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier"),
    tlsSkipVerify: bool | None = typer.Option(None, "--tls-skip-verify/--no-tls-skip-verify", help="Skip TLS verification"),
    caFile: str | None = typer.Option(None, "--ca-file", help="CA bundle for LDAPS"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/cache
        - сохраняет всё в ctx.obj для подкоманд
    """
    if bindPasswordFile and not bindPassword:
        p = Path(bindPasswordFile)
        if not p.exists() or not p.is_file():
            typer.echo(f"ERROR: bind-password-file not found: {bindPasswordFile}", err=True)
            raise typer.Exit(code=2)
        bindPassword = p.read_text(encoding="utf-8").strip()

    if not runId:
        runId = str(uuid.uuid4())

    cliOverrides = {
        "ldap_host": ldapHost,
        "ldap_port": ldapPort,
        "use_ssl": useSsl,
        "bind_dn": bindDn,
        "bind_password": bindPassword,
        "cache_dir": cacheDir,
        "cache_backend": cacheBackend,
        "cache_ttl_seconds": cacheTtlSeconds,
        "log_dir": logDir,
        "log_level": logLevel,
        "tls_skip_verify": tlsSkipVerify,
        "ca_file": caFile,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
        mapLogLevel(loaded.settings.log_level)
    except (ConfigError, ValueError) as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)
    if loaded.settings.cache_backend == "sqlite":
        ensureDir(loaded.settings.cache_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
    }


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    userIds: list[str] = typer.Argument(..., help="User identifiers to resolve"),
    asJson: bool = typer.Option(False, "--json", help="Print records as JSON lines"),
):
    runResolveCommand(ctx, userIds, asJson)


@app.command("check-directory")
def checkDirectory(ctx: typer.Context):
    runCheckDirectoryCommand(ctx)


@cacheApp.command("status")
def cacheStatus(ctx: typer.Context):
    def action(usecase: CacheAdminUseCase) -> int:
        stats = usecase.status()
        typer.echo(f"total={stats['total']} resolved={stats['resolved']} failures={stats['failures']}")
        return 0

    runCacheCommand(ctx, "cache-status", action)


@cacheApp.command("clear")
def cacheClear(ctx: typer.Context):
    def action(usecase: CacheAdminUseCase) -> int:
        typer.echo(f"removed={usecase.clear()}")
        return 0

    runCacheCommand(ctx, "cache-clear", action)


@cacheApp.command("evict")
def cacheEvict(
    ctx: typer.Context,
    userId: str = typer.Argument(..., help="User identifier to evict"),
):
    def action(usecase: CacheAdminUseCase) -> int:
        removed = usecase.evict(userId)
        typer.echo(f"user_id={userId} removed={removed}")
        return 0 if removed else 1

    runCacheCommand(ctx, "cache-evict", action)


app.add_typer(cacheApp, name="cache")
