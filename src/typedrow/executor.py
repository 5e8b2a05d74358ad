"""
Executor protocol and DB-API 2.0 adapter.

The mapping engine never touches a driver directly.  Everything it needs
from a database goes through the narrow :class:`Executor` protocol: run a
statement, fetch rows as dicts, fetch one row, scan one row into a tuple,
or stream rows through a callback.

Manifesto:
    Connection pooling, transactions and timeouts belong to the
    application.  The executor is the seam where the engine hands over a
    finished statement and gets plain Python values back.

    - **Structural:** any object with the right methods is an Executor
    - **Plain rows:** ``dict`` keyed by column name, nothing driver-specific
    - **Logged and redacted:** every statement at debug level, masked args
    - **Wrapped failures:** driver exceptions become ExecutionError

Architecture:
    ::

        crud.insert(executor, user)
              │
              ▼
        ┌─────────────────────────────────────────────────────────────┐
        │ Executor protocol                                           │
        │   dialect                 → profile name ("postgres", ...)  │
        │   execute(sql, args)      → ExecResult(rowcount, last id,   │
        │                                        out values)          │
        │   query_all(sql, args)    → list[dict]                      │
        │   query_row(sql, args)    → dict  (NotFound / MultipleRows) │
        │   get_into(sql, args)     → tuple (NotFound)                │
        │   query_do(sql, args, fn) → None                            │
        └─────────────────────────────────────────────────────────────┘
              │
              ▼
        DBAPIExecutor(sqlite3.connect(...), "sqlite3")   or any custom class

Examples:
    >>> import sqlite3
    >>> ex = DBAPIExecutor(sqlite3.connect(":memory:"), "sqlite3")
    >>> ex.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)").rowcount
    -1
    >>> ex.execute("INSERT INTO t (name) VALUES (?)", ["a"]).last_insert_id
    1
    >>> ex.query_row("SELECT id, name FROM t WHERE id = ?", [1])
    {'id': 1, 'name': 'a'}

Guardrails:
    ❌ DON'T: Open or commit connections inside the executor
    ✅ DO: Pass in a connection (or transaction) the application owns

    ❌ DON'T: Log raw args
    ✅ DO: ``redact(args)`` so sensitive positions are masked

Tags:
    executor, protocol, dbapi, sqlite3, logging, redaction, typedrow

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from typing import Any, Callable, NamedTuple, Protocol, Sequence, runtime_checkable

from typedrow.dialect import get_profile
from typedrow.errors import (
    ExecutionError,
    MultipleRowsError,
    RecordNotFoundError,
    TypedRowError,
    ValidationError,
)
from typedrow.logging import Logger, get_logger, redact
from typedrow.settings import get_settings
from typedrow.statements import OutParam

Row = dict[str, Any]


class ExecResult(NamedTuple):
    rowcount: int = -1
    last_insert_id: int | None = None
    out_values: tuple[Any, ...] = ()


@runtime_checkable
class Executor(Protocol):
    """Minimal statement-execution interface used by :mod:`typedrow.crud`."""

    dialect: str

    def execute(self, query: str, args: Sequence[Any] = ()) -> ExecResult:
        """Run a statement that returns no rows."""
        ...

    def query_all(self, query: str, args: Sequence[Any] = ()) -> list[Row]:
        """All rows as dicts (empty list when none)."""
        ...

    def query_row(self, query: str, args: Sequence[Any] = ()) -> Row:
        """Exactly one row; RecordNotFoundError / MultipleRowsError otherwise."""
        ...

    def get_into(self, query: str, args: Sequence[Any] = ()) -> tuple[Any, ...]:
        """First row as a tuple; RecordNotFoundError when there is none."""
        ...

    def query_do(self, query: str, args: Sequence[Any], handler: Callable[[Row], Any]) -> None:
        """Call ``handler`` once per row, in order."""
        ...


class DBAPIExecutor:
    """Executor over any DB-API 2.0 connection.

    The connection's lifecycle (commit, rollback, close) stays with the
    caller.  Oracle ``RETURNING ... INTO`` out-parameters are bound with
    ``cursor.var()`` when the driver cursor provides it.

    Args:
        connection: DB-API 2.0 connection
        dialect: Profile name; defaults to ``TypedRowSettings.dialect``
        logger: Logger for statement events; defaults to the library logger
        log_queries: Log each statement (default from settings)
        log_args: Include redacted args in statement logs (default from settings)
    """

    def __init__(
        self,
        connection: Any,
        dialect: str | None = None,
        *,
        logger: Logger | None = None,
        log_queries: bool | None = None,
        log_args: bool | None = None,
    ):
        settings = get_settings()
        self.connection = connection
        self.dialect = get_profile(dialect or settings.dialect).name
        self._logger = logger
        self.log_queries = settings.log_queries if log_queries is None else log_queries
        self.log_args = settings.log_args if log_args is None else log_args

    @property
    def logger(self) -> Logger:
        return self._logger if self._logger is not None else get_logger()

    # -- Internals ---------------------------------------------------------

    def _log(self, event: str, query: str, args: Sequence[Any], **kw: Any) -> None:
        if not self.log_queries:
            return
        if self.log_args:
            kw["args"] = redact(args)
        self.logger.debug(event, query=query, dialect=self.dialect, **kw)

    def _bind(self, cursor: Any, args: Sequence[Any]) -> tuple[list[Any], list[tuple[OutParam, Any]]]:
        bound: list[Any] = []
        outs: list[tuple[OutParam, Any]] = []
        for arg in args:
            if isinstance(arg, OutParam):
                if not hasattr(cursor, "var"):
                    raise ValidationError(
                        f"driver cursor {type(cursor).__name__} does not support output parameters"
                    ).with_context(dialect=self.dialect)
                var = cursor.var(arg.type)
                outs.append((arg, var))
                bound.append(var)
            else:
                bound.append(arg)
        return bound, outs

    def _fail(self, exc: Exception, query: str, args: Sequence[Any], operation: str) -> ExecutionError:
        kw: dict[str, Any] = {"error": str(exc)}
        if self.log_args:
            kw["args"] = redact(args)
        self.logger.error("query_failed", query=query, dialect=self.dialect, **kw)
        return ExecutionError(
            f"{operation} failed: {exc}",
            cause=exc,
        ).with_context(dialect=self.dialect, operation=operation)

    def _run(self, query: str, args: Sequence[Any], operation: str, consume: Callable[[Any], Any]) -> Any:
        cursor = self.connection.cursor()
        try:
            bound, outs = self._bind(cursor, args)
            try:
                cursor.execute(query, bound)
                result = consume(cursor)
            except TypedRowError:
                raise
            except Exception as exc:
                raise self._fail(exc, query, args, operation) from exc
            for out, var in outs:
                value = var.getvalue()
                out.value = value[0] if isinstance(value, list) and value else value
            return result
        finally:
            cursor.close()

    @staticmethod
    def _columns(cursor: Any) -> list[str]:
        return [desc[0] for desc in (cursor.description or ())]

    # -- Protocol ----------------------------------------------------------

    def execute(self, query: str, args: Sequence[Any] = ()) -> ExecResult:
        self._log("query_executed", query, args)
        result = self._run(
            query,
            args,
            "execute",
            lambda cursor: ExecResult(cursor.rowcount, getattr(cursor, "lastrowid", None)),
        )
        outs = tuple(a.value for a in args if isinstance(a, OutParam))
        return result._replace(out_values=outs) if outs else result

    def query_all(self, query: str, args: Sequence[Any] = ()) -> list[Row]:
        self._log("query_all", query, args)

        def consume(cursor: Any) -> list[Row]:
            columns = self._columns(cursor)
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

        return self._run(query, args, "query_all", consume)

    def query_row(self, query: str, args: Sequence[Any] = ()) -> Row:
        self._log("query_row", query, args)

        def consume(cursor: Any) -> list[Row]:
            columns = self._columns(cursor)
            return [dict(zip(columns, row)) for row in cursor.fetchmany(2)]

        rows = self._run(query, args, "query_row", consume)
        if not rows:
            raise RecordNotFoundError().with_context(dialect=self.dialect, operation="query_row")
        if len(rows) > 1:
            self.logger.error("multiple_rows_returned", query=query, dialect=self.dialect)
            raise MultipleRowsError(count=len(rows)).with_context(dialect=self.dialect, operation="query_row")
        return rows[0]

    def get_into(self, query: str, args: Sequence[Any] = ()) -> tuple[Any, ...]:
        self._log("get_into", query, args)
        row = self._run(query, args, "get_into", lambda cursor: cursor.fetchone())
        if row is None:
            self.logger.debug("no_rows_found", query=query, dialect=self.dialect)
            raise RecordNotFoundError().with_context(dialect=self.dialect, operation="get_into")
        return tuple(row)

    def query_do(self, query: str, args: Sequence[Any], handler: Callable[[Row], Any]) -> None:
        self._log("query_do", query, args)
        cursor = self.connection.cursor()
        try:
            try:
                cursor.execute(query, list(args))
                columns = self._columns(cursor)
            except Exception as exc:
                raise self._fail(exc, query, args, "query_do") from exc
            while True:
                try:
                    row = cursor.fetchone()
                except Exception as exc:
                    raise self._fail(exc, query, args, "query_do") from exc
                if row is None:
                    break
                handler(dict(zip(columns, row)))
        finally:
            cursor.close()


__all__ = ["Row", "ExecResult", "Executor", "DBAPIExecutor"]
