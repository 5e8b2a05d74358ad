"""
Serialization engine - entity → (columns, values) for INSERT and UPDATE.

Walks the compiled :class:`~typedrow.shape.EntityShape` in declaration
order and applies each field's policy to decide whether it is written.
The result is plain column/value lists plus a redaction mask; rendering
SQL is left to :mod:`typedrow.statements`.

Manifesto:
    Which columns an INSERT or UPDATE touches is policy, not SQL.  Keeping
    that decision in one place means every dialect writes exactly the same
    set of fields.

    - **Zero means unset:** zero-valued fields are not written
    - **Keys are never SET:** the primary field is excluded from both lists
    - **Timestamps by function:** auto-timestamp columns carry no value
    - **Mask by position:** sensitive values are flagged by index

Architecture:
    ::

        User(id=0, name="John", email="", password="secret")
              │
              ▼  serialize_for_insert
        InsertPayload(columns=["name", "password"],
                      values=["John", "secret"],
                      redaction_mask=(1,))

        partial update (snapshot: name="John")
        user.name = "Jane"
              │
              ▼  serialize_for_update(changed_only=True)
        UpdatePayload(columns=["name"], values=["Jane"],
                      auto_timestamp_columns=["updated_at"], redaction_mask=())

Guardrails:
    ❌ DON'T: Bind the primary key in a SET clause
    ✅ DO: Pass ``primary_key_value(entity)`` as the WHERE argument

    ❌ DON'T: Write joined (read-only) models
    ✅ DO: Register them ``read_only=True`` and only load them

Tags:
    serialization, insert, update, partial-update, redaction, typedrow

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Any, NamedTuple

from typedrow.errors import ValidationError
from typedrow.shape import EntityShape, describe
from typedrow.snapshot import changed_paths
from typedrow.types import is_zero


class InsertPayload(NamedTuple):
    columns: list[str]
    values: list[Any]
    redaction_mask: tuple[int, ...]


class UpdatePayload(NamedTuple):
    columns: list[str]
    values: list[Any]
    auto_timestamp_columns: list[str]
    redaction_mask: tuple[int, ...]


def writable_shape(entity: Any, operation: str) -> EntityShape:
    """Shape of ``entity``, rejecting joined (read-only) models."""
    shape = describe(entity, allow_joined=True)
    if shape.has_joined_columns:
        raise ValidationError(
            f"{operation} cannot be used with joined model {shape.model_name} "
            "(column paths with a table qualifier are read-only)"
        ).with_context(model=shape.model_name, operation=operation)
    return shape


def serialize_for_insert(entity: Any) -> InsertPayload:
    """Columns and values for an INSERT of ``entity``.

    Raises:
        ValidationError: Joined model, or no non-zero insertable field.
    """
    shape = writable_shape(entity, "insert")
    columns: list[str] = []
    values: list[Any] = []
    mask: list[int] = []

    for f in shape.fields:
        if f.is_primary or not f.policy.insertable:
            continue
        if not f.is_present(entity):
            continue
        value = f.get(entity)
        if is_zero(value):
            continue
        if f.column in shape.sensitive_columns:
            mask.append(len(values))
        columns.append(f.column)
        values.append(value)

    if not columns:
        raise ValidationError(
            "insert requires at least one non-zero field to insert"
        ).with_context(model=shape.model_name, operation="insert")
    return InsertPayload(columns, values, tuple(mask))


def serialize_for_update(entity: Any, changed_only: bool = False) -> UpdatePayload:
    """SET columns and values for an UPDATE of ``entity``.

    With ``changed_only`` and a snapshot, a field is written exactly when
    it differs from the snapshot (including changes *to* zero).  Without a
    snapshot it falls back to skipping zero values.  Auto-timestamp
    columns are always returned.

    Raises:
        ValidationError: Joined model, or nothing to set.
    """
    shape = writable_shape(entity, "update")
    changed = changed_paths(entity) if changed_only else None

    columns: list[str] = []
    values: list[Any] = []
    auto_columns: list[str] = []
    mask: list[int] = []

    for f in shape.fields:
        if f.is_primary or not f.policy.updatable:
            continue
        if f.policy.auto_timestamp_on_update:
            if f.column not in auto_columns:
                auto_columns.append(f.column)
            continue
        if not f.is_present(entity):
            continue
        value = f.get(entity)
        if changed is not None:
            if f.dotted_path not in changed:
                continue
        elif is_zero(value):
            continue
        if f.column in shape.sensitive_columns:
            mask.append(len(values))
        columns.append(f.column)
        values.append(value)

    if not columns and not auto_columns:
        raise ValidationError(
            "update requires at least one non-zero field to update"
        ).with_context(model=shape.model_name, operation="update")
    return UpdatePayload(columns, values, auto_columns, tuple(mask))


def primary_key_value(entity: Any) -> Any:
    """Value of the primary field.

    Raises:
        ValidationError: No primary field, or it is unset (zero).
    """
    shape = describe(entity, allow_joined=True)
    if shape.primary is None:
        raise ValidationError(f"model {shape.model_name} has no primary field").with_context(
            model=shape.model_name
        )
    value = shape.primary.get(entity)
    if is_zero(value):
        raise ValidationError(
            f"primary key field {shape.primary.dotted_path} is not set"
        ).with_context(model=shape.model_name, field=shape.primary.dotted_path, column=shape.primary.column)
    return value


def composite_key_values(entity: Any, group: str) -> list[Any]:
    """Values of a composite key, ordered alphabetically by field name.

    Raises:
        ValidationError: Unknown group, or any member unset (zero).
    """
    shape = describe(entity, allow_joined=True)
    members = shape.composite_groups.get(group)
    if not members:
        raise ValidationError(
            f"model {shape.model_name} has no composite key {group!r}"
        ).with_context(model=shape.model_name)
    values = []
    for f in members:
        value = f.get(entity)
        if is_zero(value):
            raise ValidationError(
                f"composite key field {f.dotted_path} is not set"
            ).with_context(model=shape.model_name, field=f.dotted_path, column=f.column)
        values.append(value)
    return values


__all__ = [
    "InsertPayload",
    "UpdatePayload",
    "writable_shape",
    "serialize_for_insert",
    "serialize_for_update",
    "primary_key_value",
    "composite_key_values",
]
