"""Deserialization engine - row mapping → entity fields.

Populates an entity from a ``{column: value}`` row as returned by an
:class:`~typedrow.executor.Executor`.  Column lookup is case-insensitive;
every value goes through :func:`typedrow.convert.convert_value`, so
integer fields are range-checked against their declared kind.

Rules:

- a column missing from the row leaves the field untouched;
- ``None`` sets an optional field to ``None`` and leaves a non-optional
  field untouched;
- omit-always fields are populated (omission only applies to writes);
- an absent optional embedded sub-shape is instantiated as soon as one of
  its columns carries a value;
- after a successful load of a ``partial_update`` model a change-tracking
  snapshot is captured.

Example:
    >>> user = deserialize_new(User, {"ID": 7, "name": "John"})
    >>> (user.id, user.name)
    (7, 'John')

Tags:
    typedrow, deserialization, rows, overflow, snapshot

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, TypeVar

from typedrow import snapshot
from typedrow.convert import convert_value
from typedrow.errors import ConversionError, OverflowError, ValidationError
from typedrow.fields import FieldDescriptor
from typedrow.registry import get_model_options
from typedrow.shape import EntityShape, describe

T = TypeVar("T")


def _lookup(row: Mapping[str, Any], f: FieldDescriptor, lowered: dict[str, Any]) -> tuple[bool, Any]:
    for key in (f.column, f.source_column):
        if key in row:
            return True, row[key]
    for key in (f.column.lower(), f.source_column.lower()):
        if key in lowered:
            return True, lowered[key]
    return False, None


def _existing_parent(entity: Any, f: FieldDescriptor) -> Any:
    current = entity
    for attr in f.path[:-1]:
        current = getattr(current, attr)
        if current is None:
            return None
    return current


def _ensure_parent(entity: Any, f: FieldDescriptor, shape: EntityShape) -> Any:
    current = entity
    for depth, attr in enumerate(f.path[:-1], start=1):
        child = getattr(current, attr)
        if child is None:
            embedded = shape.embedded_at(f.path[:depth])
            if embedded is None:
                raise ValidationError(f"no embedded shape at {'.'.join(f.path[:depth])}")
            try:
                child = embedded.entity_type()
            except TypeError as exc:
                raise ValidationError(
                    f"cannot instantiate {embedded.entity_type.__name__}() for {'.'.join(f.path[:depth])}",
                    cause=exc,
                ).with_context(model=shape.model_name, field=f.dotted_path) from exc
            setattr(current, attr, child)
        current = child
    return current


def deserialize(row: Mapping[str, Any], into: T, *, capture_snapshot: bool = True) -> T:
    """Populate ``into`` from ``row`` and return it.

    Raises:
        OverflowError: An integer does not fit its declared kind.
        ConversionError: A value cannot be converted to its field type.
        ShapeError: ``into`` is not a valid entity.
    """
    shape = describe(into, allow_joined=True)
    lowered = {str(key).lower(): value for key, value in row.items()}

    for f in shape.fields:
        found, raw = _lookup(row, f, lowered)
        if not found:
            continue

        if raw is None:
            if not f.optional:
                continue
            parent = _existing_parent(into, f)
            if parent is not None:
                setattr(parent, f.name, None)
            continue

        try:
            value = convert_value(raw, f.value_type, int_kind=f.int_kind, item_type=f.item_type)
        except (ConversionError, OverflowError) as exc:
            exc.with_context(model=shape.model_name, field=f.dotted_path, column=f.column, operation="deserialize")
            raise
        setattr(_ensure_parent(into, f, shape), f.name, value)

    if capture_snapshot and get_model_options(shape.entity_type).partial_update:
        snapshot.capture(into)
    return into


def deserialize_new(cls: type[T], row: Mapping[str, Any], *, capture_snapshot: bool = True) -> T:
    """Create a new ``cls()`` and populate it from ``row``.

    Raises:
        ValidationError: ``cls()`` cannot be called without arguments.
    """
    describe(cls, allow_joined=True)
    try:
        instance = cls()
    except TypeError as exc:
        raise ValidationError(
            f"cannot instantiate {cls.__name__}() for deserialization; every field needs a default",
            cause=exc,
        ).with_context(model=cls.__name__, operation="deserialize") from exc
    return deserialize(row, instance, capture_snapshot=capture_snapshot)


def deserialize_rows(cls: type[T], rows: Iterable[Mapping[str, Any]]) -> list[T]:
    return [deserialize_new(cls, row) for row in rows]


__all__ = ["deserialize", "deserialize_new", "deserialize_rows"]
