"""Integer kinds and zero-value rules.

Python integers are unbounded, so the width and signedness of a column is
declared with ``typing.Annotated``::

    from typedrow.types import Int16, UInt32

    @dataclass
    class Counter:
        id: int = column(role="primary")     # plain int is int64
        hits: UInt32 = 0
        delta: Int16 = 0

The shape compiler reads the :class:`IntKind` marker once; the conversion
layer uses it to enforce exact range checks on every load.

Tags:
    typedrow, types, integers, zero-value

Doc-Types:
    api-reference
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any


class IntKind(Enum):
    """Declared integer width and signedness."""

    INT8 = ("int8", 8, True)
    INT16 = ("int16", 16, True)
    INT32 = ("int32", 32, True)
    INT64 = ("int64", 64, True)
    UINT8 = ("uint8", 8, False)
    UINT16 = ("uint16", 16, False)
    UINT32 = ("uint32", 32, False)
    UINT64 = ("uint64", 64, False)

    def __init__(self, type_name: str, bits: int, signed: bool) -> None:
        self.type_name = type_name
        self.bits = bits
        self.signed = signed

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def fits(self, value: int) -> bool:
        return self.min_value <= value <= self.max_value

    def __str__(self) -> str:
        return self.type_name


Int8 = Annotated[int, IntKind.INT8]
Int16 = Annotated[int, IntKind.INT16]
Int32 = Annotated[int, IntKind.INT32]
Int64 = Annotated[int, IntKind.INT64]
UInt8 = Annotated[int, IntKind.UINT8]
UInt16 = Annotated[int, IntKind.UINT16]
UInt32 = Annotated[int, IntKind.UINT32]
UInt64 = Annotated[int, IntKind.UINT64]

#: Kind assumed for a bare ``int`` annotation.
DEFAULT_INT_KIND = IntKind.INT64


def is_zero(value: Any) -> bool:
    """Zero-value test used to exclude unset fields from writes.

    ``None``, ``False``, numeric zero, ``""`` and ``b""`` are zero.  Containers
    and other objects are zero only when ``None``: an empty list is a value
    the caller set on purpose.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float, Decimal)):
        return value == 0
    if isinstance(value, (str, bytes, bytearray)):
        return len(value) == 0
    return False


__all__ = [
    "IntKind",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    "DEFAULT_INT_KIND",
    "is_zero",
]
