"""
Entity shape compiler - declared dataclass → immutable field table.

Reads an entity's dataclass declaration once, resolves its type hints,
flattens embedded sub-dataclasses and produces an :class:`EntityShape`: the
ordered :class:`~typedrow.fields.FieldDescriptor` table every other
component consumes as plain data.  Shapes are cached per type for the
lifetime of the process.

Manifesto:
    Reflection is expensive and annotation strings are easy to get wrong.
    Doing both exactly once, at a single seam, means:

    - **One parse:** metadata is turned into FieldPolicy once, never per call
    - **Fail early:** malformed declarations raise ShapeError before first use
    - **Immutable output:** shapes are frozen and safe to share across threads
    - **Path identity:** embedded fields keep their full attribute path

Architecture:
    ::

        @dataclass class Order                  EntityShape(Order)
        ┌───────────────────────────┐           ┌──────────────────────────────┐
        │ id: int  role=primary     │           │ id        ("id",)       PK   │
        │ total: UInt32             │ ───────▶  │ total     ("total",)  uint32 │
        │ audit: Audit  (embedded)  │  compile  │ created   ("audit","created")│
        │   created: str            │   once    │ by        ("audit","by")     │
        │   by: str  sensitive      │           │ sensitive_columns = {"by"}   │
        └───────────────────────────┘           └──────────────────────────────┘

    Checks, in order: (a) not a dataclass, (b) ``table.column`` path outside
    a read-only context, (c) more than one primary field, (d) composite
    group with fewer than two members; then identifier syntax, duplicate
    columns within one flat level, and "no persisted fields".

Examples:
    >>> @dataclass
    ... class User:
    ...     __tablename__ = "users"
    ...     id: int = column(role="primary")
    ...     name: str = ""
    >>> shape = describe(User)
    >>> [f.column for f in shape.fields]
    ['id', 'name']
    >>> shape.primary.name
    'id'
    >>> shape.table_name
    'users'

Guardrails:
    ❌ DON'T: Re-read ``dataclasses.fields()`` in hot paths
    ✅ DO: Use ``describe(cls).fields``

    ❌ DON'T: Key per-field state by column name
    ✅ DO: Key it by ``descriptor.path`` (columns can collide when flattened)

Tags:
    shape, reflection, dataclasses, metadata, cache, typedrow

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import collections.abc
import dataclasses
import re
import threading
import types
import typing
from dataclasses import dataclass
from functools import cached_property
from types import MappingProxyType
from typing import Annotated, Any, Mapping, Union, get_args, get_origin

from typedrow.errors import ShapeError
from typedrow.fields import (
    EXCLUDED_COLUMN,
    METADATA_KEY,
    FieldDescriptor,
    Role,
    parse_policy,
    parse_role,
)
from typedrow.types import DEFAULT_INT_KIND, IntKind

_COLUMN_PATH_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


@dataclass(frozen=True)
class EmbeddedShape:
    """An embedded sub-dataclass on the path of one or more fields."""

    path: tuple[str, ...]
    entity_type: type
    optional: bool


@dataclass(frozen=True, eq=False)
class EntityShape:
    """Compiled, immutable metadata for one entity type."""

    entity_type: type
    fields: tuple[FieldDescriptor, ...]
    primary: FieldDescriptor | None
    composite_groups: Mapping[str, tuple[FieldDescriptor, ...]]
    embedded: tuple[EmbeddedShape, ...]
    has_joined_columns: bool
    sensitive_columns: frozenset[str]

    @property
    def model_name(self) -> str:
        return self.entity_type.__name__

    @cached_property
    def table_name(self) -> str | None:
        """Table name from the ``__tablename__`` class attribute, resolved on first use."""
        name = getattr(self.entity_type, "__tablename__", None)
        if callable(name):
            name = name()
        return str(name) if name else None

    @cached_property
    def by_path(self) -> Mapping[str, FieldDescriptor]:
        return MappingProxyType({f.dotted_path: f for f in self.fields})

    @property
    def columns(self) -> list[str]:
        return [f.column for f in self.fields]

    @property
    def unique_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if f.role is Role.UNIQUE)

    def field(self, name: str) -> FieldDescriptor | None:
        """Look a field up by dotted path, or by attribute name when unambiguous."""
        found = self.by_path.get(name)
        if found is not None:
            return found
        matches = [f for f in self.fields if f.name == name]
        return matches[0] if len(matches) == 1 else None

    def fields_for_column(self, column_name: str) -> tuple[FieldDescriptor, ...]:
        lowered = column_name.lower()
        return tuple(f for f in self.fields if f.column.lower() == lowered)

    def embedded_at(self, path: tuple[str, ...]) -> EmbeddedShape | None:
        for emb in self.embedded:
            if emb.path == path:
                return emb
        return None


# =========================================================================
# Type analysis
# =========================================================================


@dataclass(frozen=True)
class TypeInfo:
    base: Any
    optional: bool = False
    int_kind: IntKind | None = None
    item_type: Any = None


def _strip_annotated(hint: Any) -> tuple[Any, IntKind | None]:
    kind = None
    while get_origin(hint) is Annotated:
        args = get_args(hint)
        for extra in args[1:]:
            if isinstance(extra, IntKind):
                kind = extra
        hint = args[0]
    return hint, kind


def analyse_type(hint: Any) -> TypeInfo:
    """Reduce a resolved type hint to (base type, optional, int kind, item type)."""
    hint, kind = _strip_annotated(hint)
    optional = False

    origin = get_origin(hint)
    if origin is Union or origin is types.UnionType:
        args = get_args(hint)
        members = [a for a in args if a is not type(None)]
        optional = len(members) < len(args)
        if len(members) == 1:
            hint, inner_kind = _strip_annotated(members[0])
            kind = kind or inner_kind
        else:
            hint = Any

    item_type = None
    origin = get_origin(hint)
    if origin in _SEQUENCE_ORIGINS:
        args = get_args(hint)
        item_type = args[0] if args else Any
        hint = list if origin in (collections.abc.Sequence,) else origin
    elif origin in _MAPPING_ORIGINS:
        hint = dict
    elif hint in (list, tuple, set, frozenset):
        item_type = Any

    if hint is bool:
        kind = None
    elif hint is int and kind is None:
        kind = DEFAULT_INT_KIND
    elif hint is not int:
        kind = None

    return TypeInfo(base=hint, optional=optional, int_kind=kind, item_type=item_type)


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _resolve_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as exc:
        raise ShapeError(
            f"cannot resolve type hints of {cls.__name__}: {exc}",
            model=cls.__name__,
            cause=exc,
        ) from exc


# =========================================================================
# Compiler
# =========================================================================


def _collect(
    cls: type,
    prefix: tuple[str, ...],
    out: list[FieldDescriptor],
    embedded: list[EmbeddedShape],
    stack: tuple[type, ...],
) -> None:
    hints = _resolve_hints(cls)
    for f in dataclasses.fields(cls):
        if f.name.startswith("_"):
            continue
        meta = f.metadata.get(METADATA_KEY) or {}
        if not isinstance(meta, Mapping):
            meta = {}
        raw_column = meta.get("column")
        if raw_column == EXCLUDED_COLUMN:
            continue

        info = analyse_type(hints.get(f.name, f.type))
        path = prefix + (f.name,)

        if raw_column is None and _is_dataclass_type(info.base):
            if info.base in stack:
                raise ShapeError(
                    f"entity {stack[0].__name__} embeds {info.base.__name__} recursively at {'.'.join(path)}",
                    model=stack[0].__name__,
                )
            embedded.append(EmbeddedShape(path=path, entity_type=info.base, optional=info.optional))
            _collect(info.base, path, out, embedded, stack + (info.base,))
            continue

        source_column = str(raw_column) if raw_column is not None else f.name
        role, group = parse_role(meta.get("role"))
        out.append(
            FieldDescriptor(
                name=f.name,
                column=source_column.rsplit(".", 1)[-1],
                path=path,
                role=role,
                group=group,
                policy=parse_policy(meta),
                value_type=info.base,
                optional=info.optional,
                int_kind=info.int_kind,
                item_type=info.item_type,
                joined="." in source_column,
                source_column=source_column,
            )
        )


def compile_shape(entity: Any, *, allow_joined: bool = False) -> EntityShape:
    """Compile a fresh :class:`EntityShape` (uncached).

    Raises:
        ShapeError: If the declaration is malformed.
    """
    cls = entity if isinstance(entity, type) else type(entity)
    model_name = getattr(cls, "__name__", repr(cls))

    # (a) must be a dataclass
    if not _is_dataclass_type(cls):
        raise ShapeError(f"entity {model_name} must be a dataclass", model=model_name)

    fields: list[FieldDescriptor] = []
    embedded: list[EmbeddedShape] = []
    _collect(cls, (), fields, embedded, (cls,))

    # (b) table-qualified column paths are only allowed for read-only models
    joined = [f for f in fields if f.joined]
    if joined and not allow_joined:
        raise ShapeError(
            f"entity {model_name} has joined column paths; register it read-only to use them",
            model=model_name,
            problems=[f"{f.dotted_path} -> {f.source_column}" for f in joined],
        )

    # (c) at most one primary field
    primaries = [f for f in fields if f.role is Role.PRIMARY]
    if len(primaries) > 1:
        raise ShapeError(
            f"entity {model_name} declares multiple primary fields: "
            f"{', '.join(f.dotted_path for f in primaries)} (only one allowed)",
            model=model_name,
        )

    # (d) composite groups need two or more members
    groups: dict[str, list[FieldDescriptor]] = {}
    for f in fields:
        if f.role is Role.COMPOSITE:
            groups.setdefault(f.group or "", []).append(f)
    problems = []
    for name, members in groups.items():
        if not name:
            problems.append(f"composite role without a group name on {', '.join(m.dotted_path for m in members)}")
        elif len(members) < 2:
            problems.append(
                f"composite key {name!r} has only {len(members)} field(s): "
                f"{', '.join(m.dotted_path for m in members)} (at least 2 required)"
            )
    if problems:
        raise ShapeError(f"entity {model_name} has invalid composite keys", model=model_name, problems=problems)

    for f in fields:
        if not _COLUMN_PATH_RE.match(f.source_column):
            problems.append(f"{f.dotted_path}: invalid column name {f.source_column!r}")
    seen: dict[tuple[tuple[str, ...], str], FieldDescriptor] = {}
    for f in fields:
        key = (f.path[:-1], f.column.lower())
        if key in seen:
            problems.append(f"duplicate column {f.column!r} on {seen[key].dotted_path} and {f.dotted_path}")
        else:
            seen[key] = f
    if problems:
        raise ShapeError(f"entity {model_name} has invalid columns", model=model_name, problems=problems)

    if not fields:
        raise ShapeError(f"entity {model_name} has no persisted fields", model=model_name)

    # Colliding flattened columns share redaction: one sensitive declaration
    # masks the column everywhere it is bound.
    sensitive = frozenset(f.column for f in fields if f.policy.sensitive)

    ordered_groups = {
        name: tuple(sorted(members, key=lambda d: d.name))
        for name, members in groups.items()
    }

    return EntityShape(
        entity_type=cls,
        fields=tuple(fields),
        primary=primaries[0] if primaries else None,
        composite_groups=MappingProxyType(ordered_groups),
        embedded=tuple(embedded),
        has_joined_columns=bool(joined),
        sensitive_columns=sensitive,
    )


# =========================================================================
# Cache
# =========================================================================

_shape_cache: dict[type, EntityShape] = {}
_shape_lock = threading.Lock()


def describe(entity: Any, *, allow_joined: bool = False) -> EntityShape:
    """Return the cached :class:`EntityShape` for an entity type or instance.

    Shapes are compiled outside the lock and published with ``setdefault``,
    so readers only ever see complete shapes.
    """
    cls = entity if isinstance(entity, type) else type(entity)
    shape = _shape_cache.get(cls)
    if shape is None:
        compiled = compile_shape(cls, allow_joined=allow_joined)
        with _shape_lock:
            shape = _shape_cache.setdefault(cls, compiled)
    if shape.has_joined_columns and not allow_joined:
        raise ShapeError(
            f"entity {shape.model_name} has joined column paths; register it read-only to use them",
            model=shape.model_name,
            problems=[f"{f.dotted_path} -> {f.source_column}" for f in shape.fields if f.joined],
        )
    return shape


def clear_shape_cache() -> None:
    """Drop all cached shapes (for testing)."""
    with _shape_lock:
        _shape_cache.clear()


__all__ = [
    "EntityShape",
    "EmbeddedShape",
    "TypeInfo",
    "analyse_type",
    "compile_shape",
    "describe",
    "clear_shape_cache",
]
