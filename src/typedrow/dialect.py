"""SQL dialect profiles for entity-driven SQL generation.

One immutable :class:`DialectProfile` per SQL family describes everything
the statement builders need to know about a backend: how positional
parameters are written, how identifiers are quoted, how an INSERT hands
back the generated key and which function yields the current timestamp.

Manifesto:
    Entity code must be portable across PostgreSQL, MySQL, SQLite, SQL
    Server and Oracle. Without a profile table, placeholder and quoting
    rules end up as string conditionals scattered through every builder.

    - **One table:** every dialect difference lives in a profile
    - **Pure functions:** rendering depends only on (profile name, input)
    - **Forgiving lookup:** names are case-insensitive, unknown names fall
      back to PostgreSQL
    - **Safe identifiers:** validated before they are spliced into SQL

Architecture::

    ┌──────────────────────────────────────────────────────────────────┐
    │                        Dialect Profiles                           │
    └──────────────────────────────────────────────────────────────────┘

    ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌────────────┐ ┌──────────┐
    │ postgres │ │  mysql   │ │ sqlite3  │ │ sqlserver  │ │  oracle  │
    │ $1, $2   │ │ ?, ?     │ │ ?, ?     │ │ @p1, @p2   │ │ :1, :2   │
    │ "col"    │ │ `col`    │ │ "col"    │ │ [col]      │ │ "COL"    │
    │RETURNING │ │ last id  │ │RETURNING │ │ OUTPUT     │ │RET. INTO │
    └──────────┘ └──────────┘ └──────────┘ └────────────┘ └──────────┘

Examples:
    >>> quote_identifier("POSTGRES", "id")
    '"id"'
    >>> generate_placeholder("mysql", 7)
    '?'
    >>> generate_placeholder("sqlserver", 3)
    '@p3'
    >>> build_returning_clause("oracle", "user_id")
    ' RETURNING "USER_ID"'
    >>> timestamp_function("mssql")
    'GETDATE()'

Guardrails:
    ❌ DON'T: Format placeholders by hand in builders
    ✅ DO: ``get_profile(name).placeholder(position)``

    ❌ DON'T: Splice unvalidated identifiers into SQL
    ✅ DO: ``quote_identifier`` (raises IdentifierError)

Tags:
    dialect, sql, placeholders, quoting, returning, portability, typedrow

Doc-Types:
    - API Reference
    - Database Portability Guide
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from enum import Enum

from typedrow.errors import IdentifierError


class PlaceholderStyle(str, Enum):
    """How positional parameters are written."""

    DOLLAR = "dollar"      # $1
    QMARK = "qmark"        # ?
    AT_P = "at_p"          # @p1
    COLON = "colon"        # :1


class QuoteStyle(str, Enum):
    """How identifiers are quoted."""

    DOUBLE = "double"                  # "x", " doubled
    BACKTICK = "backtick"              # `x`, ` doubled
    BRACKET = "bracket"                # [x], ] rejected
    DOUBLE_UPPER = "double_upper"      # "X", upper-cased


class ReturningStyle(str, Enum):
    """How an INSERT hands back the generated primary key."""

    SUFFIX = "suffix"                  # ... VALUES (...) RETURNING "id"
    OUTPUT_BEFORE_VALUES = "output"    # ... (cols) OUTPUT INSERTED.[id] VALUES (...)
    INTO_OUT_PARAM = "into"            # ... RETURNING "ID" INTO :n
    NONE = "none"                      # last-insert-id


_IDENTIFIER_RE = re.compile(r'^[a-zA-Z0-9_."`]+$')
_DANGEROUS_PATTERNS = (";", "--", "/*", "*/")


def validate_identifier(identifier: str) -> None:
    """Reject identifiers that are unsafe to splice into SQL.

    Raises:
        IdentifierError: Empty, outside ``[A-Za-z0-9_."`]``, or containing
            ``;``, ``--``, ``/*`` or ``*/``.
    """
    if not identifier:
        raise IdentifierError("identifier cannot be empty", identifier=identifier)
    if not _IDENTIFIER_RE.match(identifier):
        raise IdentifierError(
            f"invalid identifier {identifier!r}: identifiers can only contain "
            "alphanumeric characters, underscores, dots, and quote characters",
            identifier=identifier,
        )
    for pattern in _DANGEROUS_PATTERNS:
        if pattern in identifier:
            raise IdentifierError(
                f"invalid identifier {identifier!r}: contains potentially dangerous SQL pattern",
                identifier=identifier,
            )


@dataclass(frozen=True)
class DialectProfile:
    """Immutable description of one SQL family."""

    name: str
    placeholder_style: PlaceholderStyle
    quote_style: QuoteStyle
    returning_style: ReturningStyle
    timestamp_function: str
    supports_last_insert_id: bool = False

    @property
    def supports_returning_or_output(self) -> bool:
        return self.returning_style is not ReturningStyle.NONE

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, position: int) -> str:
        """Placeholder for the 1-based ``position``."""
        style = self.placeholder_style
        if style is PlaceholderStyle.QMARK:
            return "?"
        if style is PlaceholderStyle.AT_P:
            return f"@p{position}"
        if style is PlaceholderStyle.COLON:
            return f":{position}"
        return f"${position}"

    def placeholders(self, count: int, start: int = 1) -> list[str]:
        return [self.placeholder(i) for i in range(start, start + count)]

    # -- Quoting -----------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Validate and quote ``identifier``; dotted names are quoted per part."""
        validate_identifier(identifier)
        return ".".join(self._quote_part(part, identifier) for part in identifier.split("."))

    def _quote_part(self, part: str, identifier: str) -> str:
        if not part:
            raise IdentifierError(f"invalid identifier {identifier!r}: empty name part", identifier=identifier)
        style = self.quote_style
        if style is QuoteStyle.BACKTICK:
            return "`" + part.replace("`", "``") + "`"
        if style is QuoteStyle.BRACKET:
            if "]" in part:
                raise IdentifierError(
                    f"SQL Server identifier cannot contain ']': {identifier}",
                    identifier=identifier,
                )
            return "[" + part + "]"
        escaped = part.replace('"', '""')
        if style is QuoteStyle.DOUBLE_UPPER:
            escaped = escaped.upper()
        return '"' + escaped + '"'

    # -- Returning ---------------------------------------------------------

    def returning_clause(self, primary_column: str) -> str:
        """Fragment that returns ``primary_column`` from an INSERT.

        Oracle's ``INTO :n`` binding is appended by the insert builder,
        since it depends on the argument count.
        """
        if self.returning_style is ReturningStyle.NONE:
            return ""
        quoted = self.quote(primary_column)
        if self.returning_style is ReturningStyle.OUTPUT_BEFORE_VALUES:
            return " OUTPUT INSERTED." + quoted
        return " RETURNING " + quoted


# =========================================================================
# Shipped profiles
# =========================================================================

POSTGRES = DialectProfile(
    name="postgres",
    placeholder_style=PlaceholderStyle.DOLLAR,
    quote_style=QuoteStyle.DOUBLE,
    returning_style=ReturningStyle.SUFFIX,
    timestamp_function="CURRENT_TIMESTAMP",
)

MYSQL = DialectProfile(
    name="mysql",
    placeholder_style=PlaceholderStyle.QMARK,
    quote_style=QuoteStyle.BACKTICK,
    returning_style=ReturningStyle.NONE,
    timestamp_function="NOW()",
    supports_last_insert_id=True,
)

SQLITE = DialectProfile(
    name="sqlite3",
    placeholder_style=PlaceholderStyle.QMARK,
    quote_style=QuoteStyle.DOUBLE,
    returning_style=ReturningStyle.SUFFIX,
    timestamp_function="CURRENT_TIMESTAMP",
    supports_last_insert_id=True,
)

SQLSERVER = DialectProfile(
    name="sqlserver",
    placeholder_style=PlaceholderStyle.AT_P,
    quote_style=QuoteStyle.BRACKET,
    returning_style=ReturningStyle.OUTPUT_BEFORE_VALUES,
    timestamp_function="GETDATE()",
)

ORACLE = DialectProfile(
    name="oracle",
    placeholder_style=PlaceholderStyle.COLON,
    quote_style=QuoteStyle.DOUBLE_UPPER,
    returning_style=ReturningStyle.INTO_OUT_PARAM,
    timestamp_function="CURRENT_TIMESTAMP",
)

#: Profile used for unrecognised driver names.
DEFAULT_PROFILE = POSTGRES

_PROFILES: dict[str, DialectProfile] = {
    "postgres": POSTGRES,
    "postgresql": POSTGRES,  # alias
    "pgx": POSTGRES,  # alias
    "mysql": MYSQL,
    "mariadb": MYSQL,  # alias
    "sqlite3": SQLITE,
    "sqlite": SQLITE,  # alias
    "sqlserver": SQLSERVER,
    "mssql": SQLSERVER,  # alias
    "oracle": ORACLE,
    "godror": ORACLE,  # alias
    "oracledb": ORACLE,  # alias
}
_profiles_lock = threading.Lock()


def get_profile(dialect: str | DialectProfile | None) -> DialectProfile:
    """Look a profile up by driver name (case-insensitive).

    Unknown or empty names return the PostgreSQL profile.

    Example:
        >>> get_profile("MSSQL").name
        'sqlserver'
        >>> get_profile("something-else").name
        'postgres'
    """
    if isinstance(dialect, DialectProfile):
        return dialect
    if not dialect:
        return DEFAULT_PROFILE
    return _PROFILES.get(str(dialect).strip().lower(), DEFAULT_PROFILE)


def register_profile(name: str, profile: DialectProfile) -> None:
    """Register a profile (or alias) under ``name`` (lower-cased automatically)."""
    with _profiles_lock:
        _PROFILES[name.lower()] = profile


def profile_names() -> list[str]:
    """All registered names, aliases included."""
    return sorted(_PROFILES)


# =========================================================================
# Pure functions of (profile name, input)
# =========================================================================


def quote_identifier(dialect: str | DialectProfile | None, identifier: str) -> str:
    return get_profile(dialect).quote(identifier)


def generate_placeholder(dialect: str | DialectProfile | None, position: int) -> str:
    return get_profile(dialect).placeholder(position)


def build_returning_clause(dialect: str | DialectProfile | None, primary_column: str) -> str:
    return get_profile(dialect).returning_clause(primary_column)


def timestamp_function(dialect: str | DialectProfile | None) -> str:
    return get_profile(dialect).timestamp_function


def supports_last_insert_id(dialect: str | DialectProfile | None) -> bool:
    return get_profile(dialect).supports_last_insert_id


__all__ = [
    # Styles
    "PlaceholderStyle",
    "QuoteStyle",
    "ReturningStyle",
    # Profiles
    "DialectProfile",
    "POSTGRES",
    "MYSQL",
    "SQLITE",
    "SQLSERVER",
    "ORACLE",
    "DEFAULT_PROFILE",
    # Lookup
    "get_profile",
    "register_profile",
    "profile_names",
    # Rendering
    "validate_identifier",
    "quote_identifier",
    "generate_placeholder",
    "build_returning_clause",
    "timestamp_function",
    "supports_last_insert_id",
]
