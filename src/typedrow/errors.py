"""
Structured error types for typedrow.

Every failure the mapping engine can produce is a ``TypedRowError``.  The
message of every error starts with the stable prefix ``typedrow: `` so
callers (and log pipelines) can match the origin of a failure reliably,
and every error carries a category plus a structured context describing
which model, field, column or dialect was involved.

Manifesto:
    - **Typed hierarchy:** one class per failure kind, not string matching
    - **Stable prefix:** ``typedrow: `` on every message
    - **Rich context:** model/field/column/dialect travel with the error
    - **Chaining:** driver exceptions are kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        TypedRowError                             │
        │             (category, context, cause, "typedrow: ")            │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ShapeError          ValidationError        OverflowError       │
        │  (SHAPE, fatal at    (VALIDATION)           (OVERFLOW)          │
        │   registration)           │                                      │
        │                      IdentifierError        ConversionError     │
        │                                             (CONVERSION)        │
        │                                                                  │
        │  RecordNotFoundError MultipleRowsError      ExecutionError      │
        │  (NOT_FOUND)         (CARDINALITY)          (DATABASE)          │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ValidationError("update requires the primary key to be set")
    >>> str(err)
    'typedrow: update requires the primary key to be set'
    >>> err.with_context(model="User", field="id").context.model
    'User'

    >>> from typedrow.convert import convert_integer
    >>> from typedrow.types import IntKind
    >>> try:
    ...     convert_integer(300, IntKind.UINT8)
    ... except OverflowError as e:
    ...     e.target_type
    'uint8'

Guardrails:
    ❌ DON'T: Match on message text to detect not-found
    ✅ DO: ``except RecordNotFoundError``

    ❌ DON'T: Swallow driver exceptions
    ✅ DO: Wrap them in ExecutionError with ``cause=``

Tags:
    error-handling, exception-hierarchy, error-context, typedrow

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import builtins
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any

#: Every typedrow error message starts with this prefix.
ERROR_PREFIX = "typedrow: "


class ErrorCategory(str, Enum):
    """Error categories used for classification and routing."""

    SHAPE = "SHAPE"                # Malformed entity declaration
    VALIDATION = "VALIDATION"      # Per-call precondition failed
    OVERFLOW = "OVERFLOW"          # Numeric value does not fit
    CONVERSION = "CONVERSION"      # Value cannot be parsed into field type
    NOT_FOUND = "NOT_FOUND"        # Zero rows where one expected
    CARDINALITY = "CARDINALITY"    # More than one row where one expected
    DATABASE = "DATABASE"          # Executor / driver failure
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set are emitted by :meth:`to_dict`, so the dict can
    be passed straight to a structured logger as keyword arguments.

    Attributes:
        model: Entity class name
        field: Attribute name (dotted path for embedded fields)
        column: Column name
        dialect: Dialect profile name
        operation: Engine operation (``insert``, ``update``, ``load``...)
        metadata: Additional key-value pairs
    """

    model: str | None = None
    field: str | None = None
    column: str | None = None
    dialect: str | None = None
    operation: str | None = None
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["model", "field", "column", "dialect", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TypedRowError(Exception):
    """
    Base exception for all typedrow errors.

    Subclasses set ``default_category``.  The message is normalised to start
    with :data:`ERROR_PREFIX`.

    Examples:
        >>> TypedRowError("boom").message
        'typedrow: boom'
        >>> TypedRowError("typedrow: boom").message
        'typedrow: boom'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        if not message.startswith(ERROR_PREFIX):
            message = ERROR_PREFIX + message
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TypedRowError:
        """Add context fields, returning self for chaining.

        Known keys go to their typed slot; anything else lands in
        ``context.metadata``.
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        ctx = self.context.to_dict()
        if ctx:
            result["context"] = ctx
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ShapeError(TypedRowError):
    """Malformed entity declaration.

    Raised by the shape compiler and the registry.  ``problems`` lists every
    individual issue found, so one registration failure reports them all.
    """

    default_category = ErrorCategory.SHAPE

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        problems: list[str] | None = None,
        **kwargs: Any,
    ):
        self.model = model
        self.problems = list(problems or [])
        if len(self.problems) == 1:
            message = f"{message}: {self.problems[0]}"
        elif self.problems:
            message = message + ":\n  " + "\n  ".join(self.problems)
        super().__init__(message, **kwargs)
        if model is not None:
            self.context.model = model


class ValidationError(TypedRowError):
    """A per-call precondition failed (nothing to write, key unset, joined model)."""

    default_category = ErrorCategory.VALIDATION


class IdentifierError(ValidationError):
    """An identifier is not safe to splice into SQL."""

    def __init__(self, message: str, *, identifier: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.identifier = identifier


class OverflowError(TypedRowError, builtins.OverflowError):
    """A numeric value does not fit the destination integer kind.

    Also an instance of the builtin ``OverflowError`` so generic handlers
    keep working.
    """

    default_category = ErrorCategory.OVERFLOW

    def __init__(
        self,
        message: str,
        *,
        source_type: str = "",
        target_type: str = "",
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.source_type = source_type
        self.target_type = target_type
        self.value = value


class ConversionError(TypedRowError, ValueError):
    """A raw value cannot be converted into the declared field type."""

    default_category = ErrorCategory.CONVERSION


class RecordNotFoundError(TypedRowError):
    """Zero rows where exactly one was expected."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, message: str = "record not found", **kwargs: Any):
        super().__init__(message, **kwargs)


class MultipleRowsError(TypedRowError):
    """More than one row where exactly one was expected."""

    default_category = ErrorCategory.CARDINALITY

    def __init__(self, message: str = "expected exactly one row", *, count: int | None = None, **kwargs: Any):
        if count is not None:
            message = f"{message}, got {count}"
        super().__init__(message, **kwargs)
        self.count = count


class ExecutionError(TypedRowError):
    """The executor (driver) failed to run a statement."""

    default_category = ErrorCategory.DATABASE


def is_typedrow_error(error: BaseException) -> bool:
    """True if ``error`` originated in typedrow."""
    return isinstance(error, TypedRowError) or str(error).startswith(ERROR_PREFIX)


def is_not_found(error: BaseException) -> bool:
    """True if ``error`` (or anything in its cause chain) is a RecordNotFoundError."""
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, RecordNotFoundError):
            return True
        current = current.__cause__
    return False


__all__ = [
    "ERROR_PREFIX",
    "ErrorCategory",
    "ErrorContext",
    "TypedRowError",
    "ShapeError",
    "ValidationError",
    "IdentifierError",
    "OverflowError",
    "ConversionError",
    "RecordNotFoundError",
    "MultipleRowsError",
    "ExecutionError",
    "is_typedrow_error",
    "is_not_found",
]
