# autocrud/services/database.py
"""Database connection services.

One pool class per backend, all exposing the same small surface used by
the catalog readers and the execution gateway: ``fetch`` for statements
that return rows, ``execute`` for those that do not, and
``translate_error`` to map driver exceptions onto the execution error
taxonomy.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import aiomysql
import aiosqlite
import asyncpg

from autocrud.models.database import BackendKind, ConnectionDescriptor, ConnectionStatus
from autocrud.utils.exceptions import (
    ConstraintViolationError,
    ExecutionConnectionError,
    ExecutionError,
    ExecutionTimeoutError,
    StatementError,
)

logger = logging.getLogger("database")


@dataclass
class ExecuteResult:
    """Outcome of a statement that returns no rows."""
    rowcount: int
    last_row_id: Optional[int] = None


class DatabasePool(ABC):
    """Backend-neutral connection pool."""

    backend: BackendKind

    def __init__(self, descriptor: ConnectionDescriptor):
        self.descriptor = descriptor

    @abstractmethod
    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a statement and return its rows as ordered dicts."""

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        """Run a statement that returns no rows."""

    @abstractmethod
    async def close(self) -> None:
        """Release every connection held by the pool."""

    @abstractmethod
    def translate_error(self, exc: BaseException) -> ExecutionError:
        """Map a driver exception onto the execution error taxonomy."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the pool has been closed."""

    async def fetchval(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Return the first column of the first row, or None."""
        rows = await self.fetch(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def _translate_common(self, exc: BaseException) -> Optional[ExecutionError]:
        if isinstance(exc, ExecutionError):
            return exc
        if isinstance(exc, asyncio.TimeoutError):
            return ExecutionTimeoutError()
        if isinstance(exc, (ConnectionError, OSError)):
            return ExecutionConnectionError(str(exc) or type(exc).__name__)
        return None


class PostgresPool(DatabasePool):
    """asyncpg-backed pool."""

    backend = BackendKind.POSTGRES

    def __init__(self, descriptor: ConnectionDescriptor, pool: asyncpg.Pool):
        super().__init__(descriptor)
        self._pool = pool

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(sql, *params)
        return [dict(record) for record in records]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        async with self._pool.acquire() as conn:
            status = await conn.execute(sql, *params)
        # Command tags look like "UPDATE 3" or "INSERT 0 1"
        tail = status.rsplit(" ", 1)[-1] if status else ""
        return ExecuteResult(rowcount=int(tail) if tail.isdigit() else 0)

    async def close(self) -> None:
        await self._pool.close()

    @property
    def is_closed(self) -> bool:
        return self._pool.is_closing()

    def translate_error(self, exc: BaseException) -> ExecutionError:
        common = self._translate_common(exc)
        if common is not None:
            return common
        if isinstance(exc, asyncpg.exceptions.IntegrityConstraintViolationError):
            return ConstraintViolationError(
                getattr(exc, "detail", None) or str(exc),
                constraint=getattr(exc, "constraint_name", None),
                column=getattr(exc, "column_name", None),
                table=getattr(exc, "table_name", None)
            )
        if isinstance(exc, asyncpg.exceptions.QueryCanceledError):
            return ExecutionTimeoutError(str(exc))
        if isinstance(exc, (
            asyncpg.exceptions.ConnectionDoesNotExistError,
            asyncpg.exceptions.PostgresConnectionError,
            asyncpg.exceptions.InterfaceError,
        )):
            return ExecutionConnectionError(str(exc))
        return StatementError(str(exc), sqlstate=getattr(exc, "sqlstate", None))


# MySQL client/server error numbers
_MYSQL_CONNECTION_ERRORS = frozenset({2002, 2003, 2006, 2013, 2055})
_MYSQL_TIMEOUT_ERRORS = frozenset({1205, 3024})
_MYSQL_KEY_RE = re.compile(r"for key '([^']+)'")
_MYSQL_COLUMN_RE = re.compile(r"Column '([^']+)'")


class MySQLPool(DatabasePool):
    """aiomysql-backed pool; statements run in autocommit mode."""

    backend = BackendKind.MYSQL

    def __init__(self, descriptor: ConnectionDescriptor, pool: aiomysql.Pool):
        super().__init__(descriptor)
        self._pool = pool

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cur:
                await cur.execute(sql, tuple(params) or None)
                rows = await cur.fetchall()
        return [dict(row) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        async with self._pool.acquire() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, tuple(params) or None)
                return ExecuteResult(rowcount=cur.rowcount, last_row_id=cur.lastrowid or None)

    async def close(self) -> None:
        self._pool.close()
        await self._pool.wait_closed()

    @property
    def is_closed(self) -> bool:
        return self._pool._closed

    def translate_error(self, exc: BaseException) -> ExecutionError:
        common = self._translate_common(exc)
        if common is not None:
            return common
        code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
        message = exc.args[1] if len(exc.args) > 1 else str(exc)
        if isinstance(exc, aiomysql.IntegrityError):
            key = _MYSQL_KEY_RE.search(message)
            column = _MYSQL_COLUMN_RE.search(message)
            return ConstraintViolationError(
                message,
                constraint=key.group(1) if key else None,
                column=column.group(1) if column else None
            )
        if code in _MYSQL_TIMEOUT_ERRORS:
            return ExecutionTimeoutError(message)
        if code in _MYSQL_CONNECTION_ERRORS or isinstance(exc, aiomysql.InterfaceError):
            return ExecutionConnectionError(message)
        return StatementError(message, sqlstate=str(code) if code is not None else None)


_SQLITE_CONSTRAINT_RE = re.compile(r"constraint failed: ([\w.]+)")


class SQLitePool(DatabasePool):
    """A single aiosqlite connection serialized behind an asyncio lock.

    SQLite allows one writer at a time, so a real pool buys nothing; the
    lock keeps statements from interleaving on the shared connection.
    """

    backend = BackendKind.SQLITE

    def __init__(self, descriptor: ConnectionDescriptor, conn: aiosqlite.Connection):
        super().__init__(descriptor)
        self._conn = conn
        self._lock = asyncio.Lock()
        self._closed = False

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        async with self._lock:
            async with self._conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        return [dict(zip(row.keys(), tuple(row))) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        async with self._lock:
            async with self._conn.execute(sql, tuple(params)) as cursor:
                return ExecuteResult(rowcount=cursor.rowcount, last_row_id=cursor.lastrowid)

    async def close(self) -> None:
        self._closed = True
        await self._conn.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def translate_error(self, exc: BaseException) -> ExecutionError:
        common = self._translate_common(exc)
        if common is not None:
            return common
        message = str(exc)
        if isinstance(exc, aiosqlite.IntegrityError):
            match = _SQLITE_CONSTRAINT_RE.search(message)
            table = column = None
            if match and "." in match.group(1):
                table, column = match.group(1).split(".", 1)
            return ConstraintViolationError(message, column=column, table=table)
        if isinstance(exc, aiosqlite.OperationalError) and "locked" in message:
            return ExecutionTimeoutError(message)
        if isinstance(exc, ValueError) and "closed" in message:
            return ExecutionConnectionError(message)
        return StatementError(message)


async def create_pool(descriptor: ConnectionDescriptor) -> DatabasePool:
    """Create a connection pool for the descriptor's backend.

    Args:
        descriptor: Connection descriptor.

    Returns:
        A backend-specific pool.
    """
    options = descriptor.pool
    logger.info(
        "Creating %s pool: min=%d, max=%d",
        descriptor.backend.display_name, options.min_size, options.max_size
    )

    if descriptor.backend == BackendKind.POSTGRES:
        pool = await asyncpg.create_pool(
            dsn=descriptor.build_dsn(),
            min_size=options.min_size,
            max_size=options.max_size,
            ssl=descriptor.ssl if descriptor.ssl else None,
            command_timeout=options.command_timeout
        )
        return PostgresPool(descriptor, pool)

    if descriptor.backend == BackendKind.MYSQL:
        descriptor.build_dsn()  # raises on missing connection parts
        pool = await aiomysql.create_pool(
            host=descriptor.host,
            port=descriptor.port or 3306,
            user=descriptor.user,
            password=descriptor.password or "",
            db=descriptor.database,
            minsize=options.min_size,
            maxsize=options.max_size,
            autocommit=True,
            connect_timeout=options.command_timeout
        )
        return MySQLPool(descriptor, pool)

    conn = await aiosqlite.connect(
        descriptor.sqlite_database,
        timeout=options.command_timeout,
        isolation_level=None
    )
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON")
    return SQLitePool(descriptor, conn)


async def test_connection(pool: DatabasePool) -> ConnectionStatus:
    """Test if a database connection is available.

    Args:
        pool: The connection pool to test.

    Returns:
        The connection status, with the round-trip latency when connected.
    """
    descriptor = pool.descriptor
    if descriptor.backend == BackendKind.SQLITE:
        database = descriptor.sqlite_database
    else:
        database = descriptor.database or ""
    status = ConnectionStatus(backend=descriptor.backend, database=database, connected=False)
    try:
        start_time = time.perf_counter()
        await pool.fetchval("SELECT 1")
        latency_ms = (time.perf_counter() - start_time) * 1000
        return status.model_copy(update={"connected": True, "latency_ms": latency_ms})
    except Exception as e:
        return status.model_copy(update={"error": str(e)})


async def close_pool(pool: DatabasePool) -> None:
    """Close a connection pool.

    Args:
        pool: The connection pool to close.
    """
    await pool.close()
