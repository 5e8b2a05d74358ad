"""Field annotation surface and compiled field metadata.

Entities are plain dataclasses.  Column mapping and per-field policies are
declared through dataclass field metadata under the ``"typedrow"`` key,
usually via the :func:`column` helper::

    @dataclass
    class User:
        __tablename__ = "users"

        id: int = column(role="primary")
        name: str = ""
        email: str = column("email_address", default="")
        password: str = column(default="", sensitive=True)
        created_at: str = column(default="", insertable=False, updatable=False)
        updated_at: str = column(default="", auto_timestamp_on_update=True)

Recognised keys: ``column``, ``role``, ``omit``, ``insertable``,
``updatable``, ``auto_timestamp_on_update``, ``sensitive``.  Unknown keys
are ignored.  The raw metadata is parsed exactly once, by the shape
compiler, into a :class:`FieldPolicy` / :class:`FieldDescriptor`.

Tags:
    typedrow, fields, metadata, annotations, policy

Doc-Types:
    api-reference
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from typedrow.types import IntKind

#: Dataclass metadata key holding typedrow annotations.
METADATA_KEY = "typedrow"

#: ``column`` value that excludes a field from every operation.
EXCLUDED_COLUMN = "-"

_MISSING: Any = dataclasses.MISSING


class Role(str, Enum):
    """Key role of a field."""

    ORDINARY = "ordinary"
    PRIMARY = "primary"
    UNIQUE = "unique"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class FieldPolicy:
    """Per-field write and logging policy."""

    omit_always: bool = False
    omit_on_insert: bool = False
    omit_on_update: bool = False
    auto_timestamp_on_update: bool = False
    sensitive: bool = False

    @property
    def insertable(self) -> bool:
        return not (self.omit_always or self.omit_on_insert)

    @property
    def updatable(self) -> bool:
        return not (self.omit_always or self.omit_on_update)


@dataclass(frozen=True)
class FieldDescriptor:
    """Compiled metadata for one persisted field.

    ``path`` is the attribute path from the root entity; it is the identity
    of the field.  ``column`` alone is not unique once embedded shapes are
    flattened.
    """

    name: str
    column: str
    path: tuple[str, ...]
    role: Role = Role.ORDINARY
    group: str | None = None
    policy: FieldPolicy = FieldPolicy()
    value_type: Any = Any
    optional: bool = False
    int_kind: IntKind | None = None
    item_type: Any = None
    joined: bool = False
    source_column: str = ""

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)

    @property
    def is_primary(self) -> bool:
        return self.role is Role.PRIMARY

    def get(self, entity: Any) -> Any:
        """Read this field from ``entity``; ``None`` if an embedded parent is absent."""
        current = entity
        for attr in self.path:
            if current is None:
                return None
            current = getattr(current, attr)
        return current

    def is_present(self, entity: Any) -> bool:
        """False when an optional embedded parent on the path is ``None``."""
        current = entity
        for attr in self.path[:-1]:
            current = getattr(current, attr)
            if current is None:
                return False
        return True


def parse_role(raw: Any) -> tuple[Role, str | None]:
    """Parse a ``role`` annotation value.

    >>> parse_role("primary")
    (<Role.PRIMARY: 'primary'>, None)
    >>> parse_role("composite:user_post")
    (<Role.COMPOSITE: 'composite'>, 'user_post')
    """
    if raw is None or raw == "":
        return Role.ORDINARY, None
    if isinstance(raw, Role):
        return raw, None
    text = str(raw).strip()
    lowered = text.lower()
    if lowered == "primary":
        return Role.PRIMARY, None
    if lowered == "unique":
        return Role.UNIQUE, None
    if lowered.startswith("composite:"):
        return Role.COMPOSITE, text.split(":", 1)[1].strip()
    if lowered == "composite":
        return Role.COMPOSITE, ""
    return Role.ORDINARY, None


def parse_policy(meta: Mapping[str, Any]) -> FieldPolicy:
    """Build a :class:`FieldPolicy` from raw annotation metadata."""
    omit = bool(meta.get("omit", False))
    return FieldPolicy(
        omit_always=omit,
        omit_on_insert=omit or meta.get("insertable", True) is False,
        omit_on_update=omit or meta.get("updatable", True) is False,
        auto_timestamp_on_update=bool(meta.get("auto_timestamp_on_update", False)),
        sensitive=bool(meta.get("sensitive", False)),
    )


def column(
    name: str | None = None,
    *,
    role: str | None = None,
    omit: bool = False,
    insertable: bool = True,
    updatable: bool = True,
    auto_timestamp_on_update: bool = False,
    sensitive: bool = False,
    default: Any = _MISSING,
    default_factory: Any = _MISSING,
    **field_kwargs: Any,
) -> Any:
    """Declare a mapped dataclass field.

    Args:
        name: Column name (defaults to the attribute name).  ``"table.col"``
            marks a joined, read-only column; ``"-"`` excludes the field.
        role: ``"primary"``, ``"unique"`` or ``"composite:<group>"``.
        omit: Never written (still read on load).
        insertable: ``False`` keeps the field out of INSERT.
        updatable: ``False`` keeps the field out of UPDATE.
        auto_timestamp_on_update: UPDATE sets the column to the dialect's
            current-timestamp function instead of a bound value.
        sensitive: Redact the bound value in query logs.
        default: Field default.  Defaults to ``None`` when neither
            ``default`` nor ``default_factory`` is given.
        default_factory: Field default factory.
    """
    meta: dict[str, Any] = {}
    if name is not None:
        meta["column"] = name
    if role is not None:
        meta["role"] = role
    if omit:
        meta["omit"] = True
    if not insertable:
        meta["insertable"] = False
    if not updatable:
        meta["updatable"] = False
    if auto_timestamp_on_update:
        meta["auto_timestamp_on_update"] = True
    if sensitive:
        meta["sensitive"] = True

    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[METADATA_KEY] = meta

    if default is _MISSING and default_factory is _MISSING:
        default = None
    if default_factory is not _MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata, **field_kwargs)
    return dataclasses.field(default=default, metadata=metadata, **field_kwargs)


__all__ = [
    "METADATA_KEY",
    "EXCLUDED_COLUMN",
    "Role",
    "FieldPolicy",
    "FieldDescriptor",
    "parse_role",
    "parse_policy",
    "column",
]
