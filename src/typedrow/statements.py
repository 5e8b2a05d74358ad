"""INSERT / UPDATE statement rendering.

Turns column/value lists produced by :mod:`typedrow.serialize` into a
:class:`Statement`: final SQL text for one dialect, its positional
arguments, and a :class:`StatementMode` telling the caller how the
generated key (if any) comes back.

    >>> stmt = build_insert("postgres", "users", ["name", "email"], ["John", "j@x.io"], "id")
    >>> stmt.sql
    'INSERT INTO "users" ("name", "email") VALUES ($1, $2) RETURNING "id"'
    >>> stmt.mode
    <StatementMode.RETURNING: 'returning'>

    >>> build_update("postgres", "users", ["name"], ["Jane"], ["updated_at"], ["id"], [7]).sql
    'UPDATE "users" SET "name" = $1, "updated_at" = CURRENT_TIMESTAMP WHERE "id" = $2'

Tags:
    sql, insert, update, returning, statements, typedrow

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple, Sequence

from typedrow.dialect import DialectProfile, ReturningStyle, get_profile
from typedrow.errors import ValidationError


class StatementMode(str, Enum):
    """How to run a statement and where the generated key comes from."""

    EXEC = "exec"                      # execute; nothing to read back
    RETURNING = "returning"            # query one row; key is in the row
    LAST_INSERT_ID = "last_insert_id"  # execute; key is ExecResult.last_insert_id
    OUT_PARAM = "out_param"            # execute; key is ExecResult.out_values[0]


@dataclass
class OutParam:
    """Output bind argument (Oracle ``RETURNING ... INTO :n``).

    The executor fills ``value`` after the statement ran.
    """

    type: type = int
    value: Any = None


class Statement(NamedTuple):
    sql: str
    args: list[Any]
    mode: StatementMode = StatementMode.EXEC


def build_insert(
    dialect: str | DialectProfile | None,
    table: str,
    columns: Sequence[str],
    values: Sequence[Any],
    primary_column: str | None = None,
) -> Statement:
    """Render a parameterized INSERT.

    With ``primary_column`` set, the statement returns the generated key
    the way the dialect supports: a ``RETURNING`` suffix (PostgreSQL,
    SQLite), ``OUTPUT INSERTED`` before ``VALUES`` (SQL Server),
    ``RETURNING ... INTO`` with an :class:`OutParam` appended to the
    arguments (Oracle), or last-insert-id (MySQL).

    Raises:
        ValidationError: No columns, or columns/values length mismatch.
        IdentifierError: Unsafe table or column name.
    """
    if not columns:
        raise ValidationError("insert requires at least one column")
    if len(columns) != len(values):
        raise ValidationError(f"insert has {len(columns)} columns but {len(values)} values")

    profile = get_profile(dialect)
    quoted_table = profile.quote(table)
    column_list = ", ".join(profile.quote(c) for c in columns)
    placeholder_list = ", ".join(profile.placeholders(len(values)))
    args = list(values)

    if primary_column is None:
        return Statement(f"INSERT INTO {quoted_table} ({column_list}) VALUES ({placeholder_list})", args)

    style = profile.returning_style
    if style is ReturningStyle.NONE:
        mode = StatementMode.LAST_INSERT_ID if profile.supports_last_insert_id else StatementMode.EXEC
        return Statement(f"INSERT INTO {quoted_table} ({column_list}) VALUES ({placeholder_list})", args, mode)

    returning = profile.returning_clause(primary_column)
    if style is ReturningStyle.OUTPUT_BEFORE_VALUES:
        sql = f"INSERT INTO {quoted_table} ({column_list}){returning} VALUES ({placeholder_list})"
        return Statement(sql, args, StatementMode.RETURNING)
    if style is ReturningStyle.INTO_OUT_PARAM:
        into = profile.placeholder(len(args) + 1)
        sql = f"INSERT INTO {quoted_table} ({column_list}) VALUES ({placeholder_list}){returning} INTO {into}"
        return Statement(sql, args + [OutParam(int)], StatementMode.OUT_PARAM)
    sql = f"INSERT INTO {quoted_table} ({column_list}) VALUES ({placeholder_list}){returning}"
    return Statement(sql, args, StatementMode.RETURNING)


def build_update(
    dialect: str | DialectProfile | None,
    table: str,
    columns: Sequence[str],
    values: Sequence[Any],
    auto_timestamp_columns: Sequence[str],
    key_columns: Sequence[str],
    key_values: Sequence[Any],
) -> Statement:
    """Render a parameterized UPDATE keyed by ``key_columns``.

    Bound SET targets come first, then auto-timestamp columns set to the
    dialect's timestamp function (no argument), then the WHERE keys.

    Raises:
        ValidationError: Nothing to set, no key columns, or length mismatch.
        IdentifierError: Unsafe table or column name.
    """
    if not columns and not auto_timestamp_columns:
        raise ValidationError("update requires at least one column to set")
    if not key_columns:
        raise ValidationError("update requires at least one key column")
    if len(columns) != len(values):
        raise ValidationError(f"update has {len(columns)} columns but {len(values)} values")
    if len(key_columns) != len(key_values):
        raise ValidationError(f"update has {len(key_columns)} key columns but {len(key_values)} key values")

    profile = get_profile(dialect)
    position = 1
    set_clauses = []
    for col in columns:
        set_clauses.append(f"{profile.quote(col)} = {profile.placeholder(position)}")
        position += 1
    for col in auto_timestamp_columns:
        set_clauses.append(f"{profile.quote(col)} = {profile.timestamp_function}")

    where_clauses = []
    for col in key_columns:
        where_clauses.append(f"{profile.quote(col)} = {profile.placeholder(position)}")
        position += 1

    sql = (
        f"UPDATE {profile.quote(table)} SET {', '.join(set_clauses)} "
        f"WHERE {' AND '.join(where_clauses)}"
    )
    return Statement(sql, list(values) + list(key_values), StatementMode.EXEC)


# Whole keywords only.
_RETURNING_KEYWORD = re.compile(r"\b(?:RETURNING|OUTPUT)\b", re.IGNORECASE)
_RETURNING_ONLY = re.compile(r"\bRETURNING\b", re.IGNORECASE)


def add_returning_into(dialect: str | DialectProfile | None, sql: str, args: Sequence[Any]) -> Statement:
    """Rewrite a hand-written INSERT so its generated key can be read back.

    For Oracle, ``... RETURNING id`` gains ``INTO :n`` and an
    :class:`OutParam`; a query that already has ``INTO`` only gains the
    out-parameter.  Other dialects run ``RETURNING``/``OUTPUT`` queries as
    row-returning and everything else through last-insert-id.

    Raises:
        ValidationError: The dialect needs a RETURNING/OUTPUT clause and
            the query has none.
    """
    profile = get_profile(dialect)
    if _RETURNING_KEYWORD.search(sql) is None:
        if not profile.supports_last_insert_id:
            raise ValidationError(
                f"insert_and_get_id requires a RETURNING or OUTPUT clause for {profile.name}; "
                "only mysql and sqlite3 support last-insert-id"
            )
        return Statement(sql, list(args), StatementMode.LAST_INSERT_ID)

    if profile.returning_style is not ReturningStyle.INTO_OUT_PARAM:
        return Statement(sql, list(args), StatementMode.RETURNING)

    match = _RETURNING_ONLY.search(sql)
    if match is None:
        raise ValidationError("insert_and_get_id Oracle query must contain a RETURNING clause")
    tail = sql[match.end():].lstrip()
    if " INTO " in f" {tail.upper()} ":
        return Statement(sql, list(args) + [OutParam(int)], StatementMode.OUT_PARAM)
    returning_column = tail.split()[0] if tail.split() else ""
    if not returning_column:
        raise ValidationError("insert_and_get_id Oracle RETURNING clause names no column")
    rewritten = f"{sql[:match.end()]} {returning_column} INTO {profile.placeholder(len(args) + 1)}"
    return Statement(rewritten, list(args) + [OutParam(int)], StatementMode.OUT_PARAM)


__all__ = [
    "StatementMode",
    "OutParam",
    "Statement",
    "build_insert",
    "build_update",
    "add_returning_into",
]
