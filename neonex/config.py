"""Database configuration loaded from the environment, and connection management."""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass, fields
from datetime import timedelta

_SQLITE_DRIVERS = frozenset({"sqlite", "turso"})

# Fields that may be overridden by a ``DB_<FIELD NAME>`` environment variable.
_ENV_FIELDS = frozenset(
    {
        "driver",
        "host",
        "port",
        "username",
        "password",
        "database",
        "charset",
        "parse_time",
        "loc",
    }
)


class UnsupportedDriverError(ValueError):
    """Raised when the configured database driver is not known."""

    def __init__(self, driver: str) -> None:
        super().__init__(f"unsupported database driver: {driver}")
        self.driver = driver


@dataclass
class DatabaseConfig:
    """Connection settings for the application database."""

    driver: str = "sqlite"
    host: str = "localhost"
    port: str = "3306"
    username: str = "root"
    password: str = ""
    database: str = "neonex.db"
    charset: str = "utf8mb4"
    parse_time: str = "True"
    loc: str = "Local"
    max_idle_conns: int = 10
    max_open_conns: int = 100
    conn_max_lifetime: timedelta = timedelta(hours=1)
    log_level: str = "info"


def load_database_config() -> DatabaseConfig:
    """Build a configuration from ``DB_*`` environment variables.

    Each text setting is read from ``DB_`` followed by its field name in
    upper case; unset or empty variables keep the default.
    """
    overrides: dict[str, str] = {}
    for field in fields(DatabaseConfig):
        if field.name not in _ENV_FIELDS:
            continue
        value = os.environ.get(f"DB_{field.name.upper()}")
        if value:
            overrides[field.name] = value
    return DatabaseConfig(**overrides)


def build_dsn(config: DatabaseConfig) -> str:
    """Return the connection string the configured driver expects."""
    driver = config.driver
    if driver == "mysql":
        return (
            f"{config.username}:{config.password}@tcp({config.host}:{config.port})/"
            f"{config.database}?charset={config.charset}"
            f"&parseTime={config.parse_time}&loc={config.loc}"
        )
    if driver in ("postgres", "postgresql"):
        return (
            f"host={config.host} user={config.username} password={config.password} "
            f"dbname={config.database} port={config.port} "
            "sslmode=disable TimeZone=Asia/Bangkok"
        )
    if driver in _SQLITE_DRIVERS:
        return config.database
    raise UnsupportedDriverError(driver)


class DatabaseManager:
    """Owns an open database connection and its configuration."""

    def __init__(self, connection: sqlite3.Connection, config: DatabaseConfig) -> None:
        self.connection = connection
        self.config = config

    def close(self) -> None:
        """Close the underlying connection."""
        self.connection.close()

    def ping(self) -> None:
        """Check that the connection is usable; raises if it is not."""
        self.connection.execute("SELECT 1").fetchone()

    def __enter__(self) -> DatabaseManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def init_database(config: DatabaseConfig) -> DatabaseManager:
    """Open a connection for ``config`` and return its manager."""
    dsn = build_dsn(config)
    if config.driver not in _SQLITE_DRIVERS:
        raise ConnectionError(
            f"failed to connect to database: no {config.driver} driver is available"
        )
    try:
        connection = sqlite3.connect(dsn, check_same_thread=False)
    except sqlite3.Error as exc:
        raise ConnectionError(f"failed to connect to database: {exc}") from exc
    print(f"✅ Database connected: {config.driver}")
    return DatabaseManager(connection, config)