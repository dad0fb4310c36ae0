from __future__ import annotations

import json
from pathlib import Path

from ldap3 import MOCK_SYNC, Connection
from ldap3.core.exceptions import LDAPSocketOpenError
from typer.testing import CliRunner

from certinfo.infra.cache.db import getCacheDbPath, openCacheDb
from certinfo.infra.directory.ldap_client import LdapDirectoryConnector
from certinfo.main import app

runner = CliRunner()

ADMIN_DN = "cn=admin,dc=example,dc=com"
PEOPLE = "ou=people,dc=example,dc=com"
GROUPS = "ou=groups,dc=example,dc=com"


def mock_connection(server):
    conn = Connection(server, user=ADMIN_DN, password="secret", client_strategy=MOCK_SYNC)
    conn.strategy.add_entry(ADMIN_DN, {"objectClass": "person", "userPassword": "secret", "sn": "admin"})
    conn.strategy.add_entry(PEOPLE, {"objectClass": "organizationalUnit", "ou": "people"})
    conn.strategy.add_entry(GROUPS, {"objectClass": "organizationalUnit", "ou": "groups"})
    conn.strategy.add_entry(
        f"uid=alice,{PEOPLE}",
        {"objectClass": "person", "uid": "alice", "cn": "Alice Smith", "sn": "Smith", "mail": "alice@example.com"},
    )
    conn.strategy.add_entry(f"cn=devs,{GROUPS}", {"objectClass": "posixGroup", "cn": "devs", "memberUid": "alice"})
    conn.bind()
    return conn


def patch_connector(monkeypatch, connection_factory) -> None:
    import certinfo.main as main_module

    def factory(*args, **kwargs):
        kwargs["connection_factory"] = connection_factory
        return LdapDirectoryConnector(*args, **kwargs)

    monkeypatch.setattr(main_module, "LdapDirectoryConnector", factory)


def write_config(tmp_path: Path) -> Path:
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            f'user_base_dn: "{PEOPLE}"',
            'user_filter: "(&(objectClass=person)(uid=%s))"',
            f'groups_base_dn: "{GROUPS}"',
            'groups_filter: "(&(objectClass=posixGroup)(memberUid=%s))"',
        ]),
        encoding="utf-8",
    )
    return cfg


def base_args(tmp_path: Path, *extra: str) -> list[str]:
    return [
        "--config",
        str(write_config(tmp_path)),
        "--log-dir",
        str(tmp_path / "logs"),
        "--cache-dir",
        str(tmp_path / "cache"),
        "--ldap-host",
        "ldap.example.com",
        "--bind-dn",
        ADMIN_DN,
        "--bind-password",
        "secret",
        *extra,
    ]


def test_help_shows_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "resolve" in result.stdout
    assert "check-directory" in result.stdout
    assert "cache" in result.stdout


def test_resolve_prints_json_record(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)

    result = runner.invoke(app, base_args(tmp_path, "--run-id", "r1", "resolve", "alice", "--json"))

    assert result.exit_code == 0, result.output
    assert "bind_password=***" in result.stdout
    assert "secret" not in result.stdout
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload == {
        "user_id": "alice",
        "cn": "Alice Smith",
        "uid": "alice",
        "mail": "alice@example.com",
        "groups": ["devs"],
    }
    assert (tmp_path / "logs" / "resolve_r1.log").exists()


def test_resolve_failure_then_cached_failure_within_one_run(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)

    result = runner.invoke(app, base_args(tmp_path, "--cache-backend", "memory", "resolve", "ghost", "ghost"))

    assert result.exit_code == 1
    assert "user=ghost MISSING_USER" in result.output
    assert "user=ghost CACHED_FAILURE" in result.output


def test_sqlite_cache_persists_failures_between_runs(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)

    first = runner.invoke(app, base_args(tmp_path, "resolve", "ghost"))
    second = runner.invoke(app, base_args(tmp_path, "resolve", "ghost"))
    status = runner.invoke(app, base_args(tmp_path, "cache", "status"))
    evict = runner.invoke(app, base_args(tmp_path, "cache", "evict", "ghost"))
    third = runner.invoke(app, base_args(tmp_path, "resolve", "ghost"))

    assert "MISSING_USER" in first.output
    assert "CACHED_FAILURE" in second.output
    assert status.exit_code == 0
    assert "total=1 resolved=0 failures=1" in status.stdout
    assert evict.exit_code == 0
    assert "removed=True" in evict.stdout
    assert "MISSING_USER" in third.output


def test_cache_clear(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)
    runner.invoke(app, base_args(tmp_path, "resolve", "alice", "ghost"))

    result = runner.invoke(app, base_args(tmp_path, "cache", "clear"))

    assert result.exit_code == 0
    assert "removed=2" in result.stdout


def test_resolve_requires_query_settings(tmp_path):
    result = runner.invoke(
        app,
        ["--log-dir", str(tmp_path / "logs"), "--cache-dir", str(tmp_path / "cache"), "--ldap-host", "ldap", "resolve", "alice"],
    )
    assert result.exit_code == 2
    assert "Missing query settings" in result.output


def test_check_directory(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)

    result = runner.invoke(app, base_args(tmp_path, "check-directory"))

    assert result.exit_code == 0
    assert "directory ok host=ldap.example.com" in result.stdout


def test_check_directory_reports_connection_failure(tmp_path, monkeypatch):
    def unreachable(server):
        raise LDAPSocketOpenError("unable to open socket")

    patch_connector(monkeypatch, unreachable)

    result = runner.invoke(app, base_args(tmp_path, "check-directory"))

    assert result.exit_code == 2
    assert "directory check failed" in result.output


def test_resolve_reports_malformed_cache_entry(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)
    first = runner.invoke(app, base_args(tmp_path, "resolve", "alice"))
    assert first.exit_code == 0, first.output

    conn = openCacheDb(getCacheDbPath(str(tmp_path / "cache")))
    try:
        conn.execute("UPDATE identity_cache SET payload = ? WHERE user_id = ?", ("{broken", "alice"))
    finally:
        conn.close()

    result = runner.invoke(app, base_args(tmp_path, "resolve", "alice"))

    assert result.exit_code == 2
    assert "malformed cache entry" in result.output


def test_resolve_rejects_unformattable_filter_template(tmp_path, monkeypatch):
    patch_connector(monkeypatch, mock_connection)
    cfg = tmp_path / "broken.yml"
    cfg.write_text(
        "\n".join([
            f'user_base_dn: "{PEOPLE}"',
            'user_filter: "(&(uid=%s)(description=100%))"',
            f'groups_base_dn: "{GROUPS}"',
            'groups_filter: "(memberUid=%s)"',
        ]),
        encoding="utf-8",
    )
    args = base_args(tmp_path, "resolve", "alice")
    args[args.index("--config") + 1] = str(cfg)

    result = runner.invoke(app, args)
    status = runner.invoke(app, base_args(tmp_path, "cache", "status"))

    assert result.exit_code == 2
    assert "user_filter is not a valid filter template" in result.output
    assert "total=0" in status.stdout
