"""Model registry and validator.

Manifesto:
    A model should be checked once, at import time, and then trusted.
    Registration validates the declaration, records per-type options and
    the query templates used by ``load*``, and makes all of that available
    as immutable values.

    - **Validate once:** every problem in a declaration is reported together
    - **Idempotent:** registering the same type with the same options is a no-op
    - **Explicit queries:** templates are keyed by field name(s), not by
      method naming conventions

Example:
    >>> @register_model(partial_update=True)
    ... @dataclass
    ... class User:
    ...     __tablename__ = "users"
    ...     __queries__ = {"id": "SELECT id, name FROM users WHERE id = $1"}
    ...     id: int = column(role="primary")
    ...     name: str = ""
    >>> get_model_options(User).partial_update
    True
    >>> query_for(User, "id")
    'SELECT id, name FROM users WHERE id = $1'

State machine (per type)::

    UNREGISTERED ──register──▶ VALIDATING ──ok──▶ REGISTERED
                                    │
                                    └──ShapeError──▶ REJECTED

Tags:
    typedrow, registry, validation, model-options, query-templates

Doc-Types:
    api-reference
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from typedrow.errors import ShapeError
from typedrow.fields import FieldDescriptor
from typedrow.logging import get_logger
from typedrow.shape import EntityShape, describe

#: A query-template key: one field name, or a tuple of names (composite).
QueryKey = Union[str, tuple[str, ...]]

QUERIES_ATTRIBUTE = "__queries__"


class RegistrationState(str, Enum):
    UNREGISTERED = "unregistered"
    VALIDATING = "validating"
    REGISTERED = "registered"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ModelOptions:
    """Per-type flags, fixed at registration."""

    partial_update: bool = False
    read_only: bool = False


@dataclass(frozen=True, eq=False)
class Registration:
    """Everything known about a registered model."""

    model: type
    shape: EntityShape
    options: ModelOptions = ModelOptions()
    queries: Mapping[QueryKey, str] = field(default_factory=lambda: MappingProxyType({}))

    def query_for(self, key: str | Iterable[str]) -> str | None:
        return self.queries.get(normalize_query_key(key))


# Global model registry
_registrations: dict[type, Registration] = {}
_states: dict[type, RegistrationState] = {}
_lock = threading.RLock()


def normalize_query_key(key: str | Iterable[str]) -> QueryKey:
    """Single names stay strings; several names become an alphabetical tuple."""
    if isinstance(key, str):
        return key
    names = tuple(sorted(str(k) for k in key))
    if len(names) == 1:
        return names[0]
    return names


def _collect_queries(cls: type, queries: Mapping[Any, str] | None) -> dict[QueryKey, str]:
    merged: dict[QueryKey, str] = {}
    for source in (getattr(cls, QUERIES_ATTRIBUTE, None), queries):
        if not source:
            continue
        for key, template in dict(source).items():
            merged[normalize_query_key(key)] = template
    return merged


def _has_template(queries: Mapping[QueryKey, str], f: FieldDescriptor) -> bool:
    return f.name in queries or f.dotted_path in queries


def _validate(
    cls: type,
    options: ModelOptions,
    queries: Mapping[QueryKey, str],
) -> EntityShape:
    shape = describe(cls, allow_joined=options.read_only)
    model_name = shape.model_name
    problems: list[str] = []

    if shape.primary is None and not shape.composite_groups:
        problems.append("a primary field or a composite key is required")

    for f in dataclasses.fields(cls):
        if f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            problems.append(f"field {f.name} needs a default (entities are created with {model_name}())")

    params = getattr(cls, "__dataclass_params__", None)
    if params is not None and params.frozen:
        problems.append("frozen dataclasses cannot be populated in place")

    if options.read_only and options.partial_update:
        problems.append("read-only models cannot enable partial_update")
    if options.partial_update and not hasattr(cls, "__weakref__"):
        problems.append("partial_update needs weak-referenceable instances (add weakref_slot=True)")

    if shape.primary is not None and not _has_template(queries, shape.primary):
        problems.append(f"primary field {shape.primary.name} has no query template")
    for f in shape.unique_fields:
        if not _has_template(queries, f):
            problems.append(f"unique field {f.name} has no query template")
    for group, members in shape.composite_groups.items():
        if normalize_query_key([m.name for m in members]) not in queries:
            problems.append(f"composite key {group!r} has no query template")

    for key, template in queries.items():
        names = (key,) if isinstance(key, str) else key
        unknown = [n for n in names if shape.field(n) is None]
        if unknown:
            problems.append(f"query template {key!r} names unknown field(s): {', '.join(unknown)}")
        if not isinstance(template, str) or not template.strip():
            problems.append(f"query template {key!r} must be a non-empty string")

    if problems:
        raise ShapeError(f"validation failed for model {model_name}", model=model_name, problems=problems)
    return shape


def validate_model(
    cls: type,
    *,
    read_only: bool = False,
    queries: Mapping[Any, str] | None = None,
) -> None:
    """Validate ``cls`` without registering it.

    Raises:
        ShapeError: Listing every problem found.
    """
    _validate(cls, ModelOptions(read_only=read_only), _collect_queries(cls, queries))


def register_model(
    cls: type | None = None,
    *,
    partial_update: bool = False,
    read_only: bool = False,
    queries: Mapping[Any, str] | None = None,
) -> Any:
    """Validate and register an entity type.  Usable as a decorator.

    Args:
        partial_update: UPDATE sends only fields changed since last load.
        read_only: Allow ``table.column`` paths; writes are rejected.
        queries: Field name (or tuple of names) → SQL template, merged
            over the class's ``__queries__``.

    Raises:
        ShapeError: Invalid declaration, or the type is already registered
            with different options.
    """
    if cls is None:
        def decorator(target: type) -> type:
            return register_model(
                target, partial_update=partial_update, read_only=read_only, queries=queries
            )

        return decorator

    options = ModelOptions(partial_update=partial_update, read_only=read_only)
    normalized = _collect_queries(cls, queries)

    with _lock:
        existing = _registrations.get(cls)
        if existing is not None:
            if existing.options == options and dict(existing.queries) == normalized:
                return cls
            raise ShapeError(
                f"model {cls.__name__} is already registered with different options",
                model=cls.__name__,
            )

        _states[cls] = RegistrationState.VALIDATING
        try:
            shape = _validate(cls, options, normalized)
        except ShapeError as exc:
            _states[cls] = RegistrationState.REJECTED
            get_logger().error(
                "model_registration_failed",
                model=getattr(cls, "__name__", repr(cls)),
                error=str(exc),
            )
            raise

        _registrations[cls] = Registration(
            model=cls,
            shape=shape,
            options=options,
            queries=MappingProxyType(normalized),
        )
        _states[cls] = RegistrationState.REGISTERED
    return cls


def get_registration(cls: type) -> Registration | None:
    with _lock:
        return _registrations.get(cls)


def get_model_options(cls: type) -> ModelOptions:
    """Options of a registered type; defaults for anything else."""
    with _lock:
        registration = _registrations.get(cls)
    return registration.options if registration is not None else ModelOptions()


def registration_state(cls: type) -> RegistrationState:
    with _lock:
        return _states.get(cls, RegistrationState.UNREGISTERED)


def registered_models() -> list[type]:
    """Registered types, in registration order (a copy)."""
    with _lock:
        return list(_registrations)


def query_for(cls: type, key: str | Iterable[str]) -> str | None:
    """Query template registered for ``key``, or None."""
    registration = get_registration(cls)
    if registration is None:
        return _collect_queries(cls, None).get(normalize_query_key(key))
    return registration.query_for(key)


def clear_registry() -> None:
    """Clear registry (for testing)."""
    with _lock:
        _registrations.clear()
        _states.clear()


__all__ = [
    "QueryKey",
    "QUERIES_ATTRIBUTE",
    "RegistrationState",
    "ModelOptions",
    "Registration",
    "normalize_query_key",
    "validate_model",
    "register_model",
    "get_registration",
    "get_model_options",
    "registration_state",
    "registered_models",
    "query_for",
    "clear_registry",
]
