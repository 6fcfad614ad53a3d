"""
db/executor.py
--------------
"Run this SQL on this connection and map the rows" behind one interface,
so repositories can be tested without a live database.

Every operation takes a connection, a SQL string with psycopg2
placeholders (``%(name)s`` or ``%s``), optional parameters, and the
keyword options:

    row_type     how to map each row (see `map_row`)
    transaction  an open `Transaction` on the same connection
    timeout      statement timeout in seconds

Without a transaction each call is committed on success and rolled back
on failure. Driver errors surface as `DataAccessError`.
"""

import asyncio
import dataclasses
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence, Union

import psycopg2
import sqlparse
from psycopg2 import extras
from psycopg2.extensions import connection as PgConnection

from db.connection import Transaction
from utils.errors import DataAccessError, UnexpectedRowCountError
from utils.logger import get_logger

logger = get_logger(__name__)

Params = Union[Mapping[str, Any], Sequence[Any], None]
RowType = Optional[Callable[..., Any]]


def map_row(row: Mapping[str, Any], row_type: RowType = None) -> Any:
    """
    Convert a column-name -> value row into the requested type.

    - None: a plain dict.
    - A dataclass: built from the columns matching its field names.
    - Any other callable (int, str, ...): applied to the first column;
      a NULL stays None.
    """
    if row_type is None:
        return dict(row)
    if dataclasses.is_dataclass(row_type):
        names = {f.name for f in dataclasses.fields(row_type)}
        return row_type(**{k: v for k, v in row.items() if k in names})
    value = next(iter(row.values()), None)
    return None if value is None else row_type(value)


def _to_params(params: Any) -> Params:
    # Entities can be passed straight through, like a named mapping.
    if dataclasses.is_dataclass(params) and not isinstance(params, type):
        return dataclasses.asdict(params)
    return params


def split_statements(sql: str) -> list[str]:
    """Split a batch into statements, dropping comment-only fragments."""
    statements = []
    for statement in sqlparse.split(sql):
        if sqlparse.format(statement, strip_comments=True).strip():
            statements.append(statement)
    return statements


# ── Multi-result reader ───────────────────────────────────


class MultiResultReader(ABC):
    """
    Sequential reader over the result sets of one batched query.
    Each read consumes the next result set.
    """

    @abstractmethod
    def read(self, row_type: RowType = None) -> list:
        ...

    @abstractmethod
    def read_single(self, row_type: RowType = None) -> Any:
        ...

    @abstractmethod
    def read_first(self, row_type: RowType = None) -> Any:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self) -> "MultiResultReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class BufferedMultiResultReader(MultiResultReader):
    """Reader over result sets already fetched into memory."""

    def __init__(self, result_sets: Iterable[list]):
        self._result_sets = list(result_sets)
        self._position = 0
        self._closed = False

    @property
    def remaining(self) -> int:
        return len(self._result_sets) - self._position

    def _next(self) -> list:
        if self._closed:
            raise DataAccessError("The result reader has been closed.")
        if self._position >= len(self._result_sets):
            raise DataAccessError("No more result sets to read.")
        rows = self._result_sets[self._position]
        self._position += 1
        return rows

    def read(self, row_type: RowType = None) -> list:
        return [map_row(r, row_type) for r in self._next()]

    def read_single(self, row_type: RowType = None) -> Any:
        rows = self._next()
        if len(rows) != 1:
            raise UnexpectedRowCountError(f"Expected exactly one row, got {len(rows)}.")
        return map_row(rows[0], row_type)

    def read_first(self, row_type: RowType = None) -> Any:
        rows = self._next()
        if not rows:
            raise UnexpectedRowCountError("Expected at least one row, got 0.")
        return map_row(rows[0], row_type)

    def close(self) -> None:
        self._result_sets = []
        self._position = 0
        self._closed = True


# ── Executor interface ────────────────────────────────────


class QueryExecutor(ABC):
    """
    Capability set over the database driver.

    Subclasses implement the blocking operations; the async variants run
    them on a worker thread so callers on an event loop are not blocked.
    """

    @abstractmethod
    def query(
        self,
        connection: PgConnection,
        sql: str,
        params: Params = None,
        *,
        row_type: RowType = None,
        transaction: Optional[Transaction] = None,
        buffered: bool = True,
        timeout: Optional[float] = None,
    ) -> Union[list, Iterator]:
        """All rows, as a list when buffered, else a lazy iterator."""

    @abstractmethod
    def query_single(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        """Exactly one row, else UnexpectedRowCountError."""

    @abstractmethod
    def query_single_or_default(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        """One row or None; more than one row is an error."""

    @abstractmethod
    def query_first(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        """First row; zero rows is an error."""

    @abstractmethod
    def query_first_or_default(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        """First row or None."""

    @abstractmethod
    def execute(self, connection, sql, params=None, *, transaction=None, timeout=None) -> int:
        """Run a statement and return the affected row count."""

    @abstractmethod
    def execute_scalar(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        """First column of the first row, or None."""

    @abstractmethod
    def query_multiple(self, connection, sql, params=None, *, transaction=None, timeout=None) -> MultiResultReader:
        """Run a batch of statements and return a reader over their result sets."""

    # ── async variants ────────────────────────────────────

    async def query_async(self, connection, sql, params=None, *, row_type=None, transaction=None, buffered=True, timeout=None):
        return await asyncio.to_thread(
            self.query, connection, sql, params,
            row_type=row_type, transaction=transaction, buffered=buffered, timeout=timeout,
        )

    async def query_single_async(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        return await asyncio.to_thread(
            self.query_single, connection, sql, params,
            row_type=row_type, transaction=transaction, timeout=timeout,
        )

    async def query_single_or_default_async(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        return await asyncio.to_thread(
            self.query_single_or_default, connection, sql, params,
            row_type=row_type, transaction=transaction, timeout=timeout,
        )

    async def query_first_async(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        return await asyncio.to_thread(
            self.query_first, connection, sql, params,
            row_type=row_type, transaction=transaction, timeout=timeout,
        )

    async def query_first_or_default_async(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        return await asyncio.to_thread(
            self.query_first_or_default, connection, sql, params,
            row_type=row_type, transaction=transaction, timeout=timeout,
        )

    async def execute_async(self, connection, sql, params=None, *, transaction=None, timeout=None) -> int:
        return await asyncio.to_thread(
            self.execute, connection, sql, params,
            transaction=transaction, timeout=timeout,
        )

    async def execute_scalar_async(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None) -> Any:
        return await asyncio.to_thread(
            self.execute_scalar, connection, sql, params,
            row_type=row_type, transaction=transaction, timeout=timeout,
        )

    async def query_multiple_async(self, connection, sql, params=None, *, transaction=None, timeout=None) -> MultiResultReader:
        return await asyncio.to_thread(
            self.query_multiple, connection, sql, params,
            transaction=transaction, timeout=timeout,
        )


# ── psycopg2 implementation ───────────────────────────────


class PsycopgQueryExecutor(QueryExecutor):
    """QueryExecutor backed by psycopg2 with dict rows."""

    @contextmanager
    def _cursor(
        self,
        connection: PgConnection,
        transaction: Optional[Transaction],
        timeout: Optional[float],
        name: Optional[str] = None,
    ) -> Iterator[Any]:
        if transaction is not None and transaction.connection is not connection:
            raise ValueError("The transaction belongs to a different connection.")
        previous_timeout = None
        try:
            if timeout is not None:
                with connection.cursor() as cur:
                    if transaction is not None:
                        # Restored after the call; the caller may have set its own.
                        cur.execute("SHOW statement_timeout")
                        previous_timeout = cur.fetchone()[0]
                    cur.execute("SET LOCAL statement_timeout = %s", (int(timeout * 1000),))
            with connection.cursor(name=name, cursor_factory=extras.RealDictCursor) as cur:
                yield cur
            if transaction is None:
                connection.commit()
            elif timeout is not None:
                with connection.cursor() as cur:
                    cur.execute("SELECT set_config('statement_timeout', %s, true)", (previous_timeout,))
        except psycopg2.Error as e:
            if transaction is None and not connection.closed:
                connection.rollback()
            raise DataAccessError(str(e).strip(), e) from e
        except Exception:
            if transaction is None and not connection.closed:
                connection.rollback()
            raise

    def _fetch(self, connection, sql, params, transaction, timeout, limit: int) -> list:
        with self._cursor(connection, transaction, timeout) as cur:
            cur.execute(sql, _to_params(params))
            return cur.fetchmany(limit)

    def query(
        self,
        connection,
        sql,
        params=None,
        *,
        row_type=None,
        transaction=None,
        buffered=True,
        timeout=None,
    ):
        if not buffered:
            return self._stream(connection, sql, params, row_type, transaction, timeout)
        with self._cursor(connection, transaction, timeout) as cur:
            cur.execute(sql, _to_params(params))
            return [map_row(r, row_type) for r in cur.fetchall()]

    def _stream(self, connection, sql, params, row_type, transaction, timeout) -> Iterator:
        # Server-side cursor: rows arrive in batches of `itersize` while iterating.
        name = f"stream_{uuid.uuid4().hex}"
        with self._cursor(connection, transaction, timeout, name=name) as cur:
            cur.execute(sql, _to_params(params))
            for row in cur:
                yield map_row(row, row_type)

    def query_single(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None):
        rows = self._fetch(connection, sql, params, transaction, timeout, 2)
        if len(rows) != 1:
            raise UnexpectedRowCountError(
                f"Expected exactly one row, got {'more than one' if rows else 0}."
            )
        return map_row(rows[0], row_type)

    def query_single_or_default(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None):
        rows = self._fetch(connection, sql, params, transaction, timeout, 2)
        if len(rows) > 1:
            raise UnexpectedRowCountError("Expected at most one row, got more than one.")
        return map_row(rows[0], row_type) if rows else None

    def query_first(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None):
        rows = self._fetch(connection, sql, params, transaction, timeout, 1)
        if not rows:
            raise UnexpectedRowCountError("Expected at least one row, got 0.")
        return map_row(rows[0], row_type)

    def query_first_or_default(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None):
        rows = self._fetch(connection, sql, params, transaction, timeout, 1)
        return map_row(rows[0], row_type) if rows else None

    def execute(self, connection, sql, params=None, *, transaction=None, timeout=None) -> int:
        with self._cursor(connection, transaction, timeout) as cur:
            cur.execute(sql, _to_params(params))
            return cur.rowcount

    def execute_scalar(self, connection, sql, params=None, *, row_type=None, transaction=None, timeout=None):
        with self._cursor(connection, transaction, timeout) as cur:
            cur.execute(sql, _to_params(params))
            row = cur.fetchone() if cur.description is not None else None
        if row is None:
            return None
        return map_row(row, row_type or (lambda value: value))

    def query_multiple(self, connection, sql, params=None, *, transaction=None, timeout=None) -> MultiResultReader:
        """
        psycopg2 only exposes the last result set of a batched string, so
        the batch is split into statements that run in order on one cursor.
        Parameters must be named (or None): every statement sees all of them.
        """
        statements = split_statements(sql)
        params = _to_params(params)
        result_sets = []
        with self._cursor(connection, transaction, timeout) as cur:
            for statement in statements:
                cur.execute(statement, params)
                result_sets.append(cur.fetchall() if cur.description is not None else [])
        logger.debug(f"Batch of {len(statements)} statement(s) returned {len(result_sets)} result set(s)")
        return BufferedMultiResultReader(result_sets)
