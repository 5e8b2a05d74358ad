"""Typedrow -- typed CRUD over plain dataclasses, across five SQL dialects.

Manifesto:
    Application code should declare a row-shaped entity once and then
    insert, update and load it on PostgreSQL, MySQL, SQLite, SQL Server or
    Oracle without writing dialect-specific SQL.  ``typedrow`` is the
    field-mapping and SQL-generation engine that makes that possible; the
    database driver, connections and transactions stay with the caller.

    - **Declare once:** dataclass fields + ``column(...)`` metadata
    - **Validate early:** ``register_model`` rejects malformed shapes
    - **Exact numbers:** integer loads are range-checked per declared width
    - **Partial updates:** snapshots make UPDATE write only what changed

Architecture::

    Layer 1 -- Types & Errors
        errors.py          TypedRowError hierarchy ("typedrow: " prefix)
        types.py           IntKind + Int8..UInt64 aliases, zero-value rule
        fields.py          column() helper, FieldPolicy, FieldDescriptor

    Layer 2 -- Shape
        shape.py           Dataclass → EntityShape compiler + cache
        registry.py        register_model, options, query templates

    Layer 3 -- Engine
        dialect.py         Dialect profiles (placeholders, quoting, returning)
        statements.py      INSERT / UPDATE rendering
        serialize.py       Entity → columns/values (policies, redaction mask)
        convert.py         Raw value → declared type (overflow checks)
        deserialize.py     Row → entity
        snapshot.py        Change tracking for partial updates

    Layer 4 -- Integration
        executor.py        Executor protocol + DB-API 2.0 adapter
        crud.py            insert / update / load / query orchestration
        logging.py         structlog configuration, redaction
        settings.py        pydantic-settings (TYPEDROW_ env prefix)
"""

from typedrow.crud import (
    insert,
    insert_and_get_id,
    insert_and_load,
    load,
    load_by_composite,
    load_by_field,
    query_all,
    query_first,
    query_one,
    update,
)
from typedrow.deserialize import deserialize, deserialize_new
from typedrow.dialect import (
    DialectProfile,
    build_returning_clause,
    generate_placeholder,
    get_profile,
    quote_identifier,
    register_profile,
    timestamp_function,
)
from typedrow.errors import (
    ConversionError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    IdentifierError,
    MultipleRowsError,
    OverflowError,
    RecordNotFoundError,
    ShapeError,
    TypedRowError,
    ValidationError,
)
from typedrow.executor import DBAPIExecutor, ExecResult, Executor
from typedrow.fields import Role, column
from typedrow.logging import configure_logging, get_logger, set_logger
from typedrow.registry import (
    ModelOptions,
    clear_registry,
    get_model_options,
    register_model,
    registered_models,
)
from typedrow.serialize import serialize_for_insert, serialize_for_update
from typedrow.settings import TypedRowSettings, get_settings
from typedrow.shape import EntityShape, describe
from typedrow.types import Int8, Int16, Int32, Int64, IntKind, UInt8, UInt16, UInt32, UInt64

__version__ = "0.1.0"

__all__ = [
    # CRUD
    "insert",
    "insert_and_get_id",
    "insert_and_load",
    "load",
    "load_by_composite",
    "load_by_field",
    "query_all",
    "query_first",
    "query_one",
    "update",
    # Mapping
    "column",
    "Role",
    "describe",
    "EntityShape",
    "register_model",
    "registered_models",
    "get_model_options",
    "ModelOptions",
    "clear_registry",
    "serialize_for_insert",
    "serialize_for_update",
    "deserialize",
    "deserialize_new",
    # Types
    "IntKind",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    # Dialects
    "DialectProfile",
    "get_profile",
    "register_profile",
    "quote_identifier",
    "generate_placeholder",
    "build_returning_clause",
    "timestamp_function",
    # Execution
    "Executor",
    "ExecResult",
    "DBAPIExecutor",
    # Errors
    "TypedRowError",
    "ErrorCategory",
    "ErrorContext",
    "ShapeError",
    "ValidationError",
    "IdentifierError",
    "OverflowError",
    "ConversionError",
    "RecordNotFoundError",
    "MultipleRowsError",
    "ExecutionError",
    # Ambient
    "configure_logging",
    "get_logger",
    "set_logger",
    "TypedRowSettings",
    "get_settings",
    "__version__",
]
