"""
Typed CRUD - thin orchestration over serialize, statements and executor.

Each function sequences the engine for one operation against any
:class:`~typedrow.executor.Executor`.  There is no SQL knowledge here
beyond calling the statement builders, and no connection or transaction
handling at all.

Manifesto:
    The caller declares the entity once and then works with objects:

    - **insert** writes the non-zero fields and sets the generated key
    - **update** writes by primary key, only changed fields for
      ``partial_update`` models
    - **load*** fill an entity in place using registered query templates
    - **query*** turn arbitrary SELECTs into typed entities

Architecture:
    ::

        insert(executor, user)
          ├─ serialize_for_insert(user)        → columns, values, mask
          ├─ build_insert(dialect, table, ...) → Statement(sql, args, mode)
          ├─ with redaction_scope(mask):
          │     RETURNING      → executor.query_row(...)   → row[pk]
          │     LAST_INSERT_ID → executor.execute(...)     → last_insert_id
          │     OUT_PARAM      → executor.execute(...)     → out_values[0]
          └─ user.<pk> = converted key

Examples:
    >>> ex = DBAPIExecutor(sqlite3.connect(":memory:"), "sqlite3")
    >>> user = insert(ex, User(name="John", email="john@example.com"))
    >>> user.id
    1
    >>> load(ex, User(id=1)).name
    'John'
    >>> query_one(ex, User, "SELECT id, name FROM users WHERE id = ?", [1]).name
    'John'

Guardrails:
    ❌ DON'T: Call update() on an entity whose primary key is unset
    ✅ DO: insert() first (it sets the key) or load() it

    ❌ DON'T: Put dialect conditionals in application code
    ✅ DO: Let the executor's ``dialect`` drive statement rendering

Tags:
    crud, orchestration, insert, update, load, query, typedrow

Doc-Types:
    - API Reference
    - Usage Guide
"""

from __future__ import annotations

from typing import Any, Sequence, TypeVar

from typedrow import snapshot
from typedrow.convert import convert_integer, convert_value
from typedrow.deserialize import deserialize, deserialize_new, deserialize_rows
from typedrow.errors import ExecutionError, TypedRowError, ValidationError
from typedrow.executor import Executor, Row
from typedrow.fields import FieldDescriptor
from typedrow.logging import redaction_scope
from typedrow.registry import get_model_options, normalize_query_key, query_for
from typedrow.serialize import (
    composite_key_values,
    primary_key_value,
    serialize_for_insert,
    serialize_for_update,
    writable_shape,
)
from typedrow.shape import EntityShape, describe
from typedrow.statements import StatementMode, add_returning_into, build_insert, build_update
from typedrow.types import IntKind, is_zero

T = TypeVar("T")


# -- Helpers -------------------------------------------------------------


def _table_name(shape: EntityShape, operation: str) -> str:
    table = shape.table_name
    if not table:
        raise ValidationError(
            f"{operation} requires {shape.model_name} to define __tablename__"
        ).with_context(model=shape.model_name, operation=operation)
    return table


def _row_value(row: Row, column: str) -> tuple[bool, Any]:
    if column in row:
        return True, row[column]
    lowered = column.lower()
    for key, value in row.items():
        if str(key).lower() == lowered:
            return True, value
    return False, None


def _assign(entity: Any, f: FieldDescriptor, raw: Any) -> None:
    value = convert_value(raw, f.value_type, int_kind=f.int_kind, item_type=f.item_type)
    target = entity
    for attr in f.path[:-1]:
        target = getattr(target, attr)
    setattr(target, f.name, value)


def _template(shape: EntityShape, key: Any, operation: str) -> str:
    query = query_for(shape.entity_type, key)
    if not query:
        raise ValidationError(
            f"{operation} requires a query template for {shape.model_name} keyed by {normalize_query_key(key)!r}"
        ).with_context(model=shape.model_name, operation=operation)
    return query


def _fetch_into(executor: Executor, entity: T, query: str, args: Sequence[Any]) -> T:
    row = executor.query_row(query, list(args))
    return deserialize(row, entity)


# -- Writes --------------------------------------------------------------


def insert(executor: Executor, entity: T) -> T:
    """INSERT ``entity`` and set its primary field from the generated key.

    Zero-valued fields are left out so database defaults apply.

    Raises:
        ValidationError: Joined model, no ``__tablename__``, nothing to insert.
        ExecutionError: The executor failed, or no key came back.
    """
    shape = writable_shape(entity, "insert")
    table = _table_name(shape, "insert")
    payload = serialize_for_insert(entity)
    primary = shape.primary

    stmt = build_insert(
        executor.dialect,
        table,
        payload.columns,
        payload.values,
        primary.column if primary is not None else None,
    )

    key: Any = None
    try:
        with redaction_scope(payload.redaction_mask):
            if stmt.mode is StatementMode.RETURNING:
                row = executor.query_row(stmt.sql, stmt.args)
                found, key = _row_value(row, primary.column)
                if not found:
                    raise ExecutionError(
                        f"insert RETURNING clause did not return primary key column {primary.column}"
                    )
            elif stmt.mode is StatementMode.LAST_INSERT_ID:
                key = executor.execute(stmt.sql, stmt.args).last_insert_id
            elif stmt.mode is StatementMode.OUT_PARAM:
                result = executor.execute(stmt.sql, stmt.args)
                key = result.out_values[0] if result.out_values else stmt.args[-1].value
            else:
                executor.execute(stmt.sql, stmt.args)
    except TypedRowError as exc:
        exc.with_context(model=shape.model_name, operation="insert")
        raise

    if primary is not None:
        if key is None:
            raise ExecutionError("insert did not return a generated key").with_context(
                model=shape.model_name, operation="insert", dialect=executor.dialect
            )
        _assign(entity, primary, key)
    return entity


def insert_and_load(executor: Executor, entity: T) -> T:
    """INSERT then :func:`load`, so database defaults are populated."""
    insert(executor, entity)
    return load(executor, entity)


def insert_and_get_id(executor: Executor, query: str, args: Sequence[Any] = ()) -> int:
    """Run a hand-written INSERT and return the generated id as ``int``.

    ``RETURNING``/``OUTPUT`` queries read the id from the returned row
    (Oracle gains ``INTO :n``); other queries use last-insert-id, which
    only MySQL and SQLite support.

    Raises:
        ValidationError: The dialect needs a RETURNING/OUTPUT clause.
        ExecutionError: No id came back.
    """
    stmt = add_returning_into(executor.dialect, query, args)
    if stmt.mode is StatementMode.RETURNING:
        row = executor.query_row(stmt.sql, stmt.args)
        if len(row) == 1:
            value = next(iter(row.values()))
        else:
            found, value = _row_value(row, "id")
            if not found:
                raise ExecutionError("insert_and_get_id RETURNING/OUTPUT clause did not return an 'id' column")
    else:
        result = executor.execute(stmt.sql, stmt.args)
        if stmt.mode is StatementMode.OUT_PARAM:
            value = result.out_values[0] if result.out_values else stmt.args[-1].value
        else:
            value = result.last_insert_id
    if value is None:
        raise ExecutionError("insert_and_get_id did not return an id").with_context(dialect=executor.dialect)
    return convert_integer(value, IntKind.INT64)


def _update_keys(entity: Any, shape: EntityShape) -> tuple[list[str], list[Any]]:
    if shape.primary is not None:
        return [shape.primary.column], [primary_key_value(entity)]
    if len(shape.composite_groups) == 1:
        group, members = next(iter(shape.composite_groups.items()))
        return [m.column for m in members], composite_key_values(entity, group)
    raise ValidationError(
        f"update requires {shape.model_name} to have a primary field or exactly one composite key"
    ).with_context(model=shape.model_name, operation="update")


def update(executor: Executor, entity: Any) -> None:
    """UPDATE ``entity`` by its primary key.

    For ``partial_update`` models only fields changed since the last load
    are written and the snapshot is refreshed after success.

    Raises:
        ValidationError: Joined model, key unset, or nothing to update.
    """
    shape = writable_shape(entity, "update")
    table = _table_name(shape, "update")
    key_columns, key_values = _update_keys(entity, shape)
    options = get_model_options(shape.entity_type)

    payload = serialize_for_update(entity, changed_only=options.partial_update)
    stmt = build_update(
        executor.dialect,
        table,
        payload.columns,
        payload.values,
        payload.auto_timestamp_columns,
        key_columns,
        key_values,
    )
    try:
        with redaction_scope(payload.redaction_mask):
            executor.execute(stmt.sql, stmt.args)
    except TypedRowError as exc:
        exc.with_context(model=shape.model_name, operation="update")
        raise

    if options.partial_update:
        snapshot.capture(entity)


# -- Loads ---------------------------------------------------------------


def load(executor: Executor, entity: T) -> T:
    """Fill ``entity`` in place using the template registered for its primary field."""
    shape = describe(entity, allow_joined=True)
    if shape.primary is None:
        raise ValidationError(f"load requires {shape.model_name} to have a primary field").with_context(
            model=shape.model_name, operation="load"
        )
    value = primary_key_value(entity)
    query = _template(shape, shape.primary.name, "load")
    return _fetch_into(executor, entity, query, [value])


def load_by_field(executor: Executor, entity: T, field_name: str) -> T:
    """Fill ``entity`` in place by one (usually unique) field."""
    shape = describe(entity, allow_joined=True)
    f = shape.field(field_name)
    if f is None:
        raise ValidationError(f"{shape.model_name} has no field {field_name!r}").with_context(
            model=shape.model_name, operation="load_by_field"
        )
    value = f.get(entity)
    if is_zero(value):
        raise ValidationError(f"field {f.dotted_path} is not set").with_context(
            model=shape.model_name, field=f.dotted_path, operation="load_by_field"
        )
    key = field_name if query_for(shape.entity_type, field_name) else f.dotted_path
    query = _template(shape, key, "load_by_field")
    return _fetch_into(executor, entity, query, [value])


def load_by_composite(executor: Executor, entity: T, group: str) -> T:
    """Fill ``entity`` in place by a composite key.

    Arguments are bound alphabetically by field name, so the template
    must use that order.
    """
    shape = describe(entity, allow_joined=True)
    values = composite_key_values(entity, group)
    members = shape.composite_groups[group]
    query = _template(shape, tuple(m.name for m in members), "load_by_composite")
    return _fetch_into(executor, entity, query, values)


# -- Queries -------------------------------------------------------------


def query_all(executor: Executor, cls: type[T], query: str, args: Sequence[Any] = ()) -> list[T]:
    """Every row as a new ``cls`` (empty list when none)."""
    return deserialize_rows(cls, executor.query_all(query, list(args)))


def query_first(executor: Executor, cls: type[T], query: str, args: Sequence[Any] = ()) -> T | None:
    """First row as a new ``cls``, or None when there are no rows."""
    rows = executor.query_all(query, list(args))
    if not rows:
        return None
    return deserialize_new(cls, rows[0])


def query_one(executor: Executor, cls: type[T], query: str, args: Sequence[Any] = ()) -> T:
    """Exactly one row as a new ``cls``.

    Raises:
        RecordNotFoundError: No rows.
        MultipleRowsError: More than one row.
    """
    return deserialize_new(cls, executor.query_row(query, list(args)))


__all__ = [
    "insert",
    "insert_and_load",
    "insert_and_get_id",
    "update",
    "load",
    "load_by_field",
    "load_by_composite",
    "query_all",
    "query_first",
    "query_one",
]
