"""Scalar conversion from raw driver values into declared field types.

Drivers hand back whatever their wire protocol produced: ``int`` for one
backend, ``Decimal`` or ``str`` for another, ``bytes`` for a third.  The
functions here turn those into the declared Python type, and for integers
they enforce the declared :class:`~typedrow.types.IntKind` range exactly.

Integer rules (:func:`convert_integer`):

- the source's mathematical value must fit the destination range exactly;
- a negative value into an unsigned kind is rejected regardless of
  magnitude;
- integral ``float``/``Decimal`` values are accepted, fractional ones raise
  :class:`~typedrow.errors.ConversionError`;
- ``str``/``bytes`` are parsed as base-10 integers.

    >>> convert_integer(255, IntKind.UINT8)
    255
    >>> convert_integer("-128", IntKind.INT8)
    -128
    >>> convert_integer(256, IntKind.UINT8)
    Traceback (most recent call last):
    ...
    typedrow.errors.OverflowError: typedrow: cannot convert int 256 to uint8: value out of range [0, 255]

Tags:
    typedrow, conversion, overflow, deserialization, numeric

Doc-Types:
    api-reference
"""

from __future__ import annotations

import enum
import json
import math
import re
import uuid
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from typedrow.errors import ConversionError, OverflowError
from typedrow.types import DEFAULT_INT_KIND, IntKind

_INT_TEXT_RE = re.compile(r"^[+-]?\d+$")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

_TRUE_TEXT = frozenset({"t", "true", "1", "yes", "y", "on"})
_FALSE_TEXT = frozenset({"f", "false", "0", "no", "n", "off"})


def _source_name(value: Any) -> str:
    return type(value).__name__


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConversionError(f"cannot decode {_source_name(value)} as utf-8 text", cause=exc) from exc
    return None


# =========================================================================
# Integers
# =========================================================================


def _check_range(number: int, kind: IntKind, source: str, original: Any) -> int:
    if number < 0 and not kind.signed:
        raise OverflowError(
            f"cannot convert negative {source} {original!r} to {kind}",
            source_type=source,
            target_type=str(kind),
            value=original,
        )
    if not kind.fits(number):
        raise OverflowError(
            f"cannot convert {source} {original!r} to {kind}: "
            f"value out of range [{kind.min_value}, {kind.max_value}]",
            source_type=source,
            target_type=str(kind),
            value=original,
        )
    return number


def convert_integer(value: Any, kind: IntKind = DEFAULT_INT_KIND) -> int:
    """Convert ``value`` to an ``int`` that fits ``kind`` exactly.

    Raises:
        OverflowError: The value does not fit ``kind``.
        ConversionError: Fractional, non-finite, unparsable or unsupported.
    """
    source = _source_name(value)

    if isinstance(value, bool):
        return _check_range(int(value), kind, source, value)
    if isinstance(value, int):
        return _check_range(value, kind, source, value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ConversionError(f"cannot convert {source} {value!r} to {kind}: not an integral value")
        return _check_range(int(value), kind, source, value)
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise ConversionError(f"cannot convert {source} {value!r} to {kind}: not an integral value")
        return _check_range(int(value), kind, source, value)

    text = _as_text(value)
    if text is not None:
        stripped = text.strip()
        if not _INT_TEXT_RE.match(stripped):
            raise ConversionError(f"cannot parse {source} {text!r} as a base-10 integer for {kind}")
        return _check_range(int(stripped, 10), kind, source, value)

    raise ConversionError(f"cannot convert {source} to {kind}")


# =========================================================================
# Other scalars
# =========================================================================


def convert_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    text = _as_text(value)
    if text is not None:
        lowered = text.strip().lower()
        if lowered in _TRUE_TEXT:
            return True
        if lowered in _FALSE_TEXT:
            return False
        raise ConversionError(f"cannot parse {text!r} as bool")
    raise ConversionError(f"cannot convert {_source_name(value)} to bool")


def convert_float(value: Any) -> float:
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    text = _as_text(value)
    if text is not None:
        try:
            return float(text.strip())
        except ValueError as exc:
            raise ConversionError(f"cannot parse {text!r} as float", cause=exc) from exc
    raise ConversionError(f"cannot convert {_source_name(value)} to float")


def convert_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (bool, int)):
        return Decimal(int(value))
    if isinstance(value, float):
        return Decimal(repr(value))
    text = _as_text(value)
    if text is not None:
        try:
            return Decimal(text.strip())
        except InvalidOperation as exc:
            raise ConversionError(f"cannot parse {text!r} as Decimal", cause=exc) from exc
    raise ConversionError(f"cannot convert {_source_name(value)} to Decimal")


def convert_str(value: Any) -> str:
    text = _as_text(value)
    if text is not None:
        return text
    return str(value)


def convert_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise ConversionError(f"cannot convert {_source_name(value)} to bytes")


def _parse_datetime(text: str) -> datetime:
    candidate = text.strip()
    if not candidate:
        raise ConversionError("cannot parse an empty string as datetime")
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    # fromisoformat accepts at most microseconds
    candidate = _FRACTION_RE.sub(r"\1", candidate)
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ConversionError(f"cannot parse {text!r} as datetime", cause=exc) from exc


def convert_datetime(value: Any) -> datetime:
    """datetime, date, ISO-8601 or ``YYYY-MM-DD HH:MM:SS[.ffffff]`` text."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    text = _as_text(value)
    if text is not None:
        return _parse_datetime(text)
    raise ConversionError(f"cannot convert {_source_name(value)} to datetime")


def convert_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _as_text(value)
    if text is not None:
        return _parse_datetime(text).date()
    raise ConversionError(f"cannot convert {_source_name(value)} to date")


# =========================================================================
# Containers
# =========================================================================


def _split_pg_array(text: str) -> list[str]:
    inner = text.strip()[1:-1].strip()
    if not inner:
        return []
    parts = []
    for part in inner.split(","):
        part = part.strip()
        if len(part) >= 2 and part[0] == part[-1] == '"':
            part = part[1:-1]
        parts.append(part)
    return parts


def convert_list(value: Any, item_type: Any = Any) -> list[Any]:
    """Sequence, JSON array text, or PostgreSQL ``{a,b}`` literal → list."""
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        text = _as_text(value)
        if text is None:
            raise ConversionError(f"cannot convert {_source_name(value)} to list")
        stripped = text.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            try:
                items = json.loads(stripped)
            except ValueError as exc:
                raise ConversionError(f"cannot parse {text!r} as a JSON array", cause=exc) from exc
        elif stripped.startswith("{") and stripped.endswith("}"):
            items = _split_pg_array(stripped)
        elif not stripped:
            items = []
        else:
            raise ConversionError(f"cannot parse {text!r} as an array")

    if item_type is Any or item_type is None:
        return items
    converted = []
    for i, item in enumerate(items):
        try:
            converted.append(convert_value(item, item_type))
        except ConversionError as exc:
            raise ConversionError(f"element {i}: {exc.message}", cause=exc) from exc
    return converted


def convert_dict(value: Any) -> dict[Any, Any]:
    """Mapping or JSON object text → dict."""
    if isinstance(value, Mapping):
        return dict(value)
    text = _as_text(value)
    if text is not None:
        try:
            parsed = json.loads(text)
        except ValueError as exc:
            raise ConversionError(f"cannot parse {text!r} as a JSON object", cause=exc) from exc
        if not isinstance(parsed, dict):
            raise ConversionError(f"JSON value {text!r} is not an object")
        return parsed
    raise ConversionError(f"cannot convert {_source_name(value)} to dict")


# =========================================================================
# Dispatch
# =========================================================================


def convert_value(
    value: Any,
    value_type: Any,
    *,
    int_kind: IntKind | None = None,
    item_type: Any = None,
) -> Any:
    """Convert ``value`` into ``value_type``.

    Anything without a dedicated converter is accepted only when it is
    already an instance of ``value_type``.
    """
    if value_type is Any or value_type is None or value_type is object:
        return value
    if value_type is bool:
        return convert_bool(value)
    if value_type is int:
        return convert_integer(value, int_kind or DEFAULT_INT_KIND)
    if value_type is float:
        return convert_float(value)
    if value_type is Decimal:
        return convert_decimal(value)
    if value_type is str:
        return convert_str(value)
    if value_type is bytes:
        return convert_bytes(value)
    if value_type is datetime:
        return convert_datetime(value)
    if value_type is date:
        return convert_date(value)
    if value_type in (list, tuple, set, frozenset):
        items = convert_list(value, item_type if item_type is not None else Any)
        return items if value_type is list else value_type(items)
    if value_type is dict:
        return convert_dict(value)
    if isinstance(value_type, type) and issubclass(value_type, enum.Enum):
        if isinstance(value, value_type):
            return value
        try:
            return value_type(value)
        except ValueError as exc:
            raise ConversionError(f"{value!r} is not a valid {value_type.__name__}", cause=exc) from exc
    if value_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            if isinstance(value, (bytes, bytearray)) and len(value) == 16:
                return uuid.UUID(bytes=bytes(value))
            return uuid.UUID(convert_str(value))
        except ValueError as exc:
            raise ConversionError(f"cannot parse {value!r} as UUID", cause=exc) from exc
    if isinstance(value_type, type) and isinstance(value, value_type):
        return value
    type_name = getattr(value_type, "__name__", repr(value_type))
    raise ConversionError(f"cannot convert {_source_name(value)} to {type_name}")


__all__ = [
    "convert_integer",
    "convert_bool",
    "convert_float",
    "convert_decimal",
    "convert_str",
    "convert_bytes",
    "convert_datetime",
    "convert_date",
    "convert_list",
    "convert_dict",
    "convert_value",
]
