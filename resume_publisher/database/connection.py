from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from resume_publisher.config.settings import Settings


def _conninfo(settings: Settings, host: str, port: int) -> str:
    return (
        f"host={host} "
        f"port={port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


class Database:
    """Connection pools for the primary and an optional read replica.

    Writes always go to the primary. ``replica()`` falls back to the primary when
    no replica host is configured.
    """

    def __init__(
        self,
        primary_pool: ConnectionPool,
        replica_pool: ConnectionPool | None = None,
    ) -> None:
        self._primary_pool = primary_pool
        self._replica_pool = replica_pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Open pools from settings."""
        primary = ConnectionPool(
            _conninfo(settings, settings.db_host, settings.db_port),
            min_size=1,
            max_size=10,
        )
        replica = None
        if settings.db_replica_host:
            replica = ConnectionPool(
                _conninfo(settings, settings.db_replica_host, settings.db_replica_port),
                min_size=1,
                max_size=10,
            )
        return cls(primary, replica)

    @property
    def has_replica(self) -> bool:
        return self._replica_pool is not None

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection[Any], None, None]:
        """Yield a primary connection. Caller manages commit/rollback."""
        with self._primary_pool.connection() as conn:
            yield conn

    @contextmanager
    def replica(self) -> Generator[psycopg.Connection[Any], None, None]:
        """Yield a replica connection, or a primary one without a replica."""
        pool = self._replica_pool or self._primary_pool
        with pool.connection() as conn:
            yield conn

    def close(self) -> None:
        """Close both pools."""
        self._primary_pool.close()
        if self._replica_pool is not None:
            self._replica_pool.close()
