"""
db/connection.py
----------------
Opens PostgreSQL connections for the repositories.
A new psycopg2 connection is opened for every logical operation and
closed when the operation ends; pooling, if wanted, belongs in front
of the server (e.g. PgBouncer), not here.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2.extensions import connection as PgConnection

from utils.errors import ConfigurationError, DataAccessError
from utils.logger import get_logger, mask_dsn

logger = get_logger(__name__)


class ConnectionFactory(ABC):
    """Creates a fresh, caller-owned database connection."""

    @abstractmethod
    def create_connection(self) -> PgConnection:
        ...


class PostgresConnectionFactory(ConnectionFactory):
    """
    psycopg2-backed connection factory.

    Args:
        dsn: libpq connection string or postgresql:// URL.
        connect_timeout: Seconds to wait for the server, None for the libpq default.

    Raises:
        ConfigurationError: If the DSN is missing or blank.
    """

    def __init__(self, dsn: Optional[str], connect_timeout: Optional[int] = None):
        if not dsn or not dsn.strip():
            raise ConfigurationError("Connection string 'DATABASE_URL' not found.")
        self._dsn = dsn
        self._connect_timeout = connect_timeout

    def create_connection(self) -> PgConnection:
        """
        Open a new connection.

        Raises:
            DataAccessError: If the database is unreachable.
        """
        kwargs = {}
        if self._connect_timeout is not None:
            kwargs["connect_timeout"] = self._connect_timeout
        try:
            return psycopg2.connect(self._dsn, **kwargs)
        except psycopg2.Error as e:
            logger.error(f"Failed to connect to {mask_dsn(self._dsn)}: {e}")
            raise DataAccessError(f"Could not open a database connection: {e}", e) from e


@contextmanager
def open_connection(factory: ConnectionFactory) -> Iterator[PgConnection]:
    """Yield a new connection and close it on every exit path."""
    conn = factory.create_connection()
    try:
        yield conn
    finally:
        conn.close()


class Transaction:
    """
    Explicit transaction scope on one connection.

    Used as a context manager it commits on a clean exit and rolls back
    when the block raises. Statements run through the executor with this
    transaction are neither committed nor rolled back individually.
    """

    def __init__(self, connection: PgConnection):
        self.connection = connection
        self._finished = False

    @property
    def is_active(self) -> bool:
        return not self._finished

    def commit(self) -> None:
        self.connection.commit()
        self._finished = True

    def rollback(self) -> None:
        self.connection.rollback()
        self._finished = True

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._finished:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
