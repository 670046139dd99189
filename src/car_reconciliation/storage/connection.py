"""
Database connection factory for reconciliation runs.

PostgreSQL DSNs are opened with psycopg2. ``mysql://`` connection strings, as
written by the Singularity tooling, are opened with PyMySQL.
"""

import logging
from typing import Any

import psycopg2
import pymysql
from opentelemetry import trace

from utils.retry import retry_database_operation
from utils.tracing import trace_operation

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

POSTGRESQL = "postgresql"
MYSQL = "mysql"

MYSQL_SCHEME = "mysql://"
MYSQL_DEFAULT_PORT = 3306

_UNSUPPORTED_SCHEMES = ("sqlite://",)


def detect_engine(dsn: str) -> str:
    """Return MYSQL for ``mysql://`` connection strings, POSTGRESQL otherwise."""
    if dsn.strip().lower().startswith(MYSQL_SCHEME):
        return MYSQL
    return POSTGRESQL


def normalize_dsn(dsn: str) -> str:
    """
    Validate a connection string before a driver sees it.

    Accepts libpq key/value DSNs, ``postgresql://`` or ``postgres://`` URIs
    and ``mysql://`` connection strings in the go-sql-driver form.

    Raises:
        ConfigurationError: If the connection string is empty, names an
            engine that is not supported, or is a malformed MySQL string
    """
    dsn = (dsn or "").strip()
    if not dsn:
        raise ConfigurationError(
            "Database connection string not provided. Set DATABASE_CONNECTION_STRING "
            "or pass --dsn."
        )
    if dsn.lower().startswith(_UNSUPPORTED_SCHEMES):
        scheme = dsn.split("://", 1)[0]
        raise ConfigurationError(
            f"Unsupported database scheme '{scheme}'; use a PostgreSQL or mysql:// "
            "connection string"
        )
    if detect_engine(dsn) == MYSQL:
        parse_mysql_dsn(dsn)
    return dsn


def parse_mysql_dsn(dsn: str) -> dict[str, Any]:
    """
    Turn a MySQL connection string into PyMySQL connect() arguments.

    The ``mysql://`` prefix is dropped and the rest is read in the
    go-sql-driver layout ``user:password@tcp(host:port)/dbname?charset=utf8mb4``.
    ``unix(/path/to/socket)`` addresses and a bare ``host:port`` are accepted
    as well.

    Args:
        dsn: Connection string, with or without the mysql:// prefix

    Returns:
        Keyword arguments for pymysql.connect

    Raises:
        ConfigurationError: If the string has no database part or a bad address
    """
    text = dsn.strip()
    if text.lower().startswith(MYSQL_SCHEME):
        text = text[len(MYSQL_SCHEME):]

    head, slash, tail = text.rpartition("/")
    if not slash:
        raise ConfigurationError("MySQL connection string must end with /<database>")
    database, _, query = tail.partition("?")

    params: dict[str, Any] = {}
    if database:
        params["database"] = database

    credentials, at, address = head.rpartition("@")
    if at:
        user, _, password = credentials.partition(":")
        params["user"] = user
        if password:
            params["password"] = password
    else:
        address = head

    protocol, paren, location = address.partition("(")
    if paren:
        if not location.endswith(")"):
            raise ConfigurationError(f"Unbalanced address in MySQL connection string: {address}")
        location = location[:-1]
    elif address == "tcp":
        location = ""
    else:
        location, protocol = protocol, "tcp"

    if protocol == "unix":
        params["unix_socket"] = location
    elif protocol == "tcp":
        host, port = _split_host_port(location)
        params["host"] = host
        params["port"] = port
    else:
        raise ConfigurationError(f"Unsupported MySQL protocol '{protocol}'")

    for item in filter(None, query.split("&")):
        key, _, value = item.partition("=")
        if key == "charset":
            params["charset"] = value.split(",", 1)[0]
        else:
            logger.debug(f"Ignoring MySQL connection parameter {key}")

    return params


def _split_host_port(location: str) -> tuple[str, int]:
    if not location:
        return "localhost", MYSQL_DEFAULT_PORT
    if location.startswith("["):
        host, _, rest = location[1:].partition("]")
        port = rest.lstrip(":")
    elif location.count(":") == 1:
        host, _, port = location.partition(":")
    else:
        host, port = location, ""
    if not port:
        return host or "localhost", MYSQL_DEFAULT_PORT
    try:
        return host or "localhost", int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid MySQL port '{port}'") from None


def _quote_dsn_value(value: Any) -> str:
    text = str(value)
    if text and not any(ch in text for ch in " '\\"):
        return text
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def build_dsn(config: dict[str, Any]) -> str:
    """
    Build a key/value DSN from discrete credentials.

    Args:
        config: Mapping with host, port, database, username and password

    Returns:
        libpq connection string
    """
    parts = {
        "host": config["host"],
        "port": config.get("port", 5432),
        "dbname": config["database"],
        "user": config["username"],
        "password": config["password"],
    }
    return " ".join(f"{key}={_quote_dsn_value(value)}" for key, value in parts.items())


@retry_database_operation(max_retries=3, base_delay=1.0)
def _open_postgres(dsn: str, connect_timeout: int) -> Any:
    with trace_operation("postgres_connect", kind=trace.SpanKind.CLIENT):
        return psycopg2.connect(dsn, connect_timeout=connect_timeout)


@retry_database_operation(max_retries=3, base_delay=1.0)
def _open_mysql(params: dict[str, Any], connect_timeout: int) -> Any:
    with trace_operation("mysql_connect", kind=trace.SpanKind.CLIENT):
        return pymysql.connect(**params, connect_timeout=connect_timeout, autocommit=False)


def connect(dsn: str, connect_timeout: int = 10) -> Any:
    """
    Open a connection for a reconciliation run.

    Transient connection errors are retried with backoff. The connection is
    returned with autocommit disabled.

    Args:
        dsn: libpq DSN, postgresql:// URI or mysql:// connection string
        connect_timeout: Seconds before a connection attempt fails

    Returns:
        psycopg2 or PyMySQL connection

    Raises:
        ConfigurationError: If the DSN is empty or malformed
        psycopg2.OperationalError: If PostgreSQL stays unreachable
        pymysql.err.OperationalError: If MySQL stays unreachable
    """
    dsn = normalize_dsn(dsn)
    if detect_engine(dsn) == MYSQL:
        conn = _open_mysql(parse_mysql_dsn(dsn), connect_timeout)
        logger.info("Connected to MySQL")
        return conn

    conn = _open_postgres(dsn, connect_timeout)
    conn.set_session(autocommit=False)
    logger.info("Connected to PostgreSQL")
    return conn
