from __future__ import annotations

import logging
import ssl
from typing import Any, Callable, Sequence

import ldap3
from ldap3.core.exceptions import LDAPException

from certinfo.common.sanitize import truncateText
from certinfo.domain.exceptions import ResolutionError
from certinfo.domain.ports.directory import DirectoryConnectionProtocol, DirectoryConnectorProtocol, DirectoryEntry
from certinfo.infra.logging.setup import logEvent

RESULT_SUCCESS = 0

ConnectionFactory = Callable[[ldap3.Server], ldap3.Connection]


def _transport_error(message: str, exc: Exception | None = None) -> ResolutionError:
    details: dict[str, Any] = {}
    if exc is not None:
        details["error_type"] = type(exc).__name__
        details["error"] = truncateText(str(exc))
    return ResolutionError.transport(message, details=details)


class LdapDirectoryConnection(DirectoryConnectionProtocol):
    """
    Назначение/ответственность:
        Обёртка над открытым ldap3.Connection: subtree-поиск и unbind.
        Исключения ldap3 и неуспешные коды результата превращаются в TRANSPORT.
    """

    def __init__(self, conn: ldap3.Connection, logger: logging.Logger, run_id: str = "-"):
        self._conn = conn
        self._logger = logger
        self._run_id = run_id

    def search(self, base_dn: str, search_filter: str, attributes: Sequence[str]) -> list[DirectoryEntry]:
        try:
            self._conn.search(
                search_base=base_dn,
                search_filter=search_filter,
                search_scope=ldap3.SUBTREE,
                attributes=list(attributes),
            )
        except LDAPException as exc:
            raise _transport_error(f"LDAP search failed (base={base_dn})", exc) from exc

        result = self._conn.result or {}
        code = result.get("result", RESULT_SUCCESS)
        if code != RESULT_SUCCESS:
            raise ResolutionError.transport(
                f"LDAP search failed (base={base_dn}): {result.get('description') or code}",
                details={"result": code, "message": truncateText(result.get("message"))},
            )

        entries: list[DirectoryEntry] = []
        for item in self._conn.response or []:
            # searchResRef (referrals) пропускаются
            if item.get("type") != "searchResEntry":
                continue
            entries.append(dict(item.get("attributes") or {}))
        return entries

    def close(self) -> None:
        try:
            self._conn.unbind()
        except LDAPException as exc:
            logEvent(self._logger, logging.WARNING, self._run_id, "directory", f"LDAP unbind failed: {exc}")


class LdapDirectoryConnector(DirectoryConnectorProtocol):
    def __init__(
        self,
        host: str,
        port: int | None = None,
        use_ssl: bool = False,
        bind_dn: str | None = None,
        bind_password: str | None = None,
        connect_timeout_seconds: float = 10.0,
        receive_timeout_seconds: float = 20.0,
        tls_skip_verify: bool = False,
        ca_file: str | None = None,
        connection_factory: ConnectionFactory | None = None,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        """
        Назначение:
            Фабрика соединений с LDAP-каталогом поверх ldap3.
        Контракт:
            - Каждое open() создаёт новое соединение (без пулинга и переиспользования).
            - connection_factory позволяет подменить создание ldap3.Connection (тесты, MOCK_SYNC);
              фабрика обязана вернуть уже привязанное (bound) соединение.
        """
        self.host = host
        self.port = port
        self.use_ssl = use_ssl
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.connect_timeout_seconds = connect_timeout_seconds
        self.receive_timeout_seconds = receive_timeout_seconds
        self.tls_skip_verify = tls_skip_verify
        self.ca_file = ca_file
        self.connection_factory = connection_factory or self._default_connection
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

    def _server(self) -> ldap3.Server:
        tls = None
        if self.use_ssl:
            tls = ldap3.Tls(
                validate=ssl.CERT_NONE if self.tls_skip_verify else ssl.CERT_REQUIRED,
                ca_certs_file=self.ca_file,
            )
        return ldap3.Server(
            self.host,
            port=self.port,
            use_ssl=self.use_ssl,
            tls=tls,
            get_info=ldap3.NONE,
            connect_timeout=self.connect_timeout_seconds,
        )

    def _default_connection(self, server: ldap3.Server) -> ldap3.Connection:
        return ldap3.Connection(
            server,
            user=self.bind_dn,
            password=self.bind_password,
            auto_bind=True,
            read_only=True,
            receive_timeout=self.receive_timeout_seconds,
        )

    def open(self) -> LdapDirectoryConnection:
        """
        Открывает и привязывает соединение; ошибки сокета/bind -> TRANSPORT.
        """
        try:
            conn = self.connection_factory(self._server())
        except LDAPException as exc:
            raise _transport_error(f"LDAP connection to {self.host} failed", exc) from exc
        logEvent(self.logger, logging.DEBUG, self.run_id, "directory", f"connected host={self.host} port={self.port}")
        return LdapDirectoryConnection(conn, self.logger, self.run_id)
