from __future__ import annotations

import pytest

from certinfo.config import ENV_VARS, Settings, build_directory_queries, load_settings, require_directory
from certinfo.domain.exceptions import ConfigError
from certinfo.domain.models import QueryTemplate


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            'ldap_host: "cfg.example.com"',
            "ldap_port: 1389",
            'bind_dn: "cn=cfg,dc=example,dc=com"',
            'user_base_dn: "ou=people,dc=example,dc=com"',
            'user_filter: "(uid=%s)"',
            "cache_ttl_seconds: 600",
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("CERTINFO_LDAP_HOST", "env.example.com")
    monkeypatch.setenv("CERTINFO_LDAP_PORT", "2389")
    monkeypatch.setenv("CERTINFO_LDAP_USE_SSL", "yes")

    loaded = load_settings(str(cfg), {"ldap_host": "cli.example.com", "ldap_port": None})

    s = loaded.settings
    assert s.ldap_host == "cli.example.com"
    assert s.ldap_port == 2389
    assert s.use_ssl is True
    assert s.bind_dn == "cn=cfg,dc=example,dc=com"
    assert s.cache_ttl_seconds == 600
    assert s.cache_backend == "sqlite"
    assert loaded.sources_used == ["config", "env", "cli"]


def test_defaults_without_sources(monkeypatch):
    for var, _parser in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)

    loaded = load_settings(None, {})

    assert loaded.settings == Settings()
    assert loaded.sources_used == []


def test_invalid_boolean_env_is_rejected(monkeypatch):
    monkeypatch.setenv("CERTINFO_TLS_SKIP_VERIFY", "maybe")

    with pytest.raises(ValueError):
        load_settings(None, {})


def test_unknown_cache_backend_is_rejected():
    with pytest.raises(ConfigError):
        load_settings(None, {"cache_backend": "redis"})


def test_build_directory_queries():
    settings = Settings(
        user_base_dn="ou=people,dc=example,dc=com",
        user_filter="(&(objectClass=person)(uid=%s))",
        groups_base_dn="ou=groups,dc=example,dc=com",
        groups_filter="(memberUid=%s)",
    )

    queries = build_directory_queries(settings)

    assert queries.user == QueryTemplate("ou=people,dc=example,dc=com", "(&(objectClass=person)(uid=%s))")
    assert queries.groups == QueryTemplate("ou=groups,dc=example,dc=com", "(memberUid=%s)")


def test_build_directory_queries_reports_missing_values():
    with pytest.raises(ConfigError) as excinfo:
        build_directory_queries(Settings(user_base_dn="ou=people,dc=example,dc=com", user_filter="(uid=%s)"))

    assert excinfo.value.details == {"missing": ["groups_base_dn", "groups_filter"]}


@pytest.mark.parametrize("pattern", ["(uid=alice)", "(|(uid=%s)(mail=%s))"])
def test_build_directory_queries_requires_single_slot(pattern):
    settings = Settings(
        user_base_dn="ou=people,dc=example,dc=com",
        user_filter=pattern,
        groups_base_dn="ou=groups,dc=example,dc=com",
        groups_filter="(memberUid=%s)",
    )

    with pytest.raises(ConfigError, match="exactly one"):
        build_directory_queries(settings)


@pytest.mark.parametrize("pattern", ["(&(uid=%s)(description=100%))", "(&(uid=%s)(cn=%d))"])
def test_build_directory_queries_rejects_unformattable_template(pattern):
    settings = Settings(
        user_base_dn="ou=people,dc=example,dc=com",
        user_filter=pattern,
        groups_base_dn="ou=groups,dc=example,dc=com",
        groups_filter="(memberUid=%s)",
    )

    with pytest.raises(ConfigError, match="user_filter is not a valid filter template"):
        build_directory_queries(settings)


def test_build_directory_queries_accepts_escaped_percent():
    settings = Settings(
        user_base_dn="ou=people,dc=example,dc=com",
        user_filter="(&(uid=%s)(description=100%%))",
        groups_base_dn="ou=groups,dc=example,dc=com",
        groups_filter="(memberUid=%s)",
    )

    queries = build_directory_queries(settings)

    assert queries.user.filter_pattern == "(&(uid=%s)(description=100%%))"


def test_require_directory():
    assert require_directory(Settings()) == ["ldap_host"]
    assert require_directory(Settings(ldap_host="ldap", bind_dn="cn=admin")) == ["bind_password"]
    assert require_directory(Settings(ldap_host="ldap")) == []
