"""Change-tracking snapshots for partial updates.

After an entity of a ``partial_update=True`` model is loaded (or
successfully updated), a deep copy of its persisted field values is kept
in a side table.  The next UPDATE compares the entity against that copy
and writes only what differs.

Nothing is stored on the entity itself.  The side table is keyed by
``id(entity)`` and each entry is dropped by a ``weakref.finalize`` hook
when the entity is garbage collected.

State machine (per instance)::

    NO_SNAPSHOT ──load──▶ SYNCED(s1) ──update ok──▶ SYNCED(s2)
                              │
                              └──update fails──▶ SYNCED(s1)

One in-flight write per entity instance is assumed; concurrent mutation
of the same instance is not guarded.

Tags:
    typedrow, snapshot, change-tracking, partial-update, weakref

Doc-Types:
    api-reference
"""

from __future__ import annotations

import copy
import threading
import weakref
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

from typedrow.errors import ValidationError
from typedrow.shape import EntityShape, describe


@dataclass(frozen=True, eq=False)
class Snapshot:
    """Field values (by dotted path) as of the last sync."""

    values: Mapping[str, Any]
    _ref: Callable[[], Any]

    def owner(self) -> Any:
        return self._ref()


_snapshots: dict[int, Snapshot] = {}
_lock = threading.Lock()


def _take_values(shape: EntityShape, entity: Any) -> dict[str, Any]:
    values = {}
    for f in shape.fields:
        if f.is_primary or not f.is_present(entity):
            continue
        values[f.dotted_path] = copy.deepcopy(f.get(entity))
    return values


def _discard_key(key: int) -> None:
    with _lock:
        _snapshots.pop(key, None)


def capture(entity: Any) -> Snapshot:
    """Record the current persisted values of ``entity`` (primary excluded).

    Raises:
        ValidationError: Instances of the type cannot be weakly referenced
            (``__slots__`` without ``__weakref__``).
    """
    shape = describe(entity, allow_joined=True)
    try:
        ref: Callable[[], Any] = weakref.ref(entity)
    except TypeError as exc:
        raise ValidationError(
            f"cannot snapshot {shape.model_name}: instances do not support weak references"
        ).with_context(model=shape.model_name, operation="snapshot") from exc
    values = MappingProxyType(_take_values(shape, entity))
    key = id(entity)

    snap = Snapshot(values=values, _ref=ref)
    with _lock:
        previous = _snapshots.get(key)
        _snapshots[key] = snap
    if previous is None or previous.owner() is not entity:
        weakref.finalize(entity, _discard_key, key)
    return snap


def get_snapshot(entity: Any) -> Snapshot | None:
    with _lock:
        snap = _snapshots.get(id(entity))
    if snap is None or snap.owner() is not entity:
        return None
    return snap


def has_snapshot(entity: Any) -> bool:
    return get_snapshot(entity) is not None


def discard(entity: Any) -> None:
    """Forget the snapshot of ``entity`` (back to NO_SNAPSHOT)."""
    with _lock:
        snap = _snapshots.get(id(entity))
        if snap is not None and snap.owner() is entity:
            del _snapshots[id(entity)]


def changed_paths(entity: Any) -> set[str] | None:
    """Dotted paths whose value differs from the snapshot; None without one.

    A path present on only one side (an optional embedded parent set or
    cleared since the snapshot) counts as changed.
    """
    snap = get_snapshot(entity)
    if snap is None:
        return None
    shape = describe(entity, allow_joined=True)
    current = _take_values(shape, entity)
    original = snap.values
    changed = {path for path, value in current.items() if path not in original or original[path] != value}
    changed.update(path for path in original if path not in current)
    return changed


def changed_fields(entity: Any) -> set[str] | None:
    """Column names of the changed fields; None without a snapshot."""
    paths = changed_paths(entity)
    if paths is None:
        return None
    by_path = describe(entity, allow_joined=True).by_path
    return {by_path[p].column for p in paths if p in by_path}


def clear_snapshots() -> None:
    """Drop every snapshot (for testing)."""
    with _lock:
        _snapshots.clear()


__all__ = [
    "Snapshot",
    "capture",
    "get_snapshot",
    "has_snapshot",
    "discard",
    "changed_paths",
    "changed_fields",
    "clear_snapshots",
]
