"""
Structured error types for pre-alembic.

Every failure the pre-migration pipeline can raise is a ``PreAlembicError``.
Each one carries a category (for routing/alerting), a free-form context
mapping (resource, platform, statement number, ...) and the chained
underlying exception.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      PreAlembicError                          │
        │            (category, context, cause, to_dict())              │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  UninitializedError       ResolveDbPlatformError              │
        │  (INTERNAL)               (DATABASE)                          │
        │                                                               │
        │  SqlScriptRefError        SqlScriptReadError                  │
        │  SqlScriptVarError        (STORAGE)                           │
        │  ConfigError (CONFIG)                                         │
        │                                                               │
        │  ScriptError (DATABASE)                                       │
        │    ├── ScriptParseError                                       │
        │    └── ScriptStatementFailedError                             │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise bare Exception from the pipeline
    ✅ DO: Raise the matching PreAlembicError subclass

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, pre-alembic

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""

    DATABASE = "DATABASE"         # Connection, driver, statement failures
    STORAGE = "STORAGE"           # Script files that cannot be read
    CONFIG = "CONFIG"             # Bad references, unresolvable placeholders
    INTERNAL = "INTERNAL"         # API misuse, unexpected state


class PreAlembicError(Exception):
    """
    Base exception for all pre-alembic errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``cause`` is also assigned to ``__cause__`` so tracebacks
    show the chained error.

    Examples:
        >>> err = PreAlembicError("boom")
        >>> err.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> err.with_context(resource="default.sql").context
        {'resource': 'default.sql'}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PreAlembicError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SqlScriptRefError("not found").with_context(location="file:x.sql")
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class UninitializedError(PreAlembicError):
    """An accessor was used before ``PreAlembic.execute()`` ran."""

    default_category = ErrorCategory.INTERNAL

    def __init__(self, message: str = "Method must not be invoked prior to execute()", **kwargs: Any):
        super().__init__(message, **kwargs)


class ResolveDbPlatformError(PreAlembicError):
    """The database platform could not be auto-detected from an engine."""

    default_category = ErrorCategory.DATABASE


class SqlScriptReadError(PreAlembicError):
    """A SQL script could not be read (I/O or decoding failure)."""

    default_category = ErrorCategory.STORAGE


class SqlScriptVarError(PreAlembicError):
    """Placeholders in a SQL script are unresolvable or circular."""

    default_category = ErrorCategory.CONFIG


class SqlScriptRefError(PreAlembicError):
    """
    An explicitly listed SQL script reference is invalid or does not exist.

    Only raised for explicit script lists. A folder reference without any
    matching script is not an error; nothing gets executed.
    """

    default_category = ErrorCategory.CONFIG


class ConfigError(PreAlembicError):
    """Missing or invalid configuration (e.g. no database URL)."""

    default_category = ErrorCategory.CONFIG


class ScriptError(PreAlembicError):
    """Base class for failures while parsing or executing a SQL script."""

    default_category = ErrorCategory.DATABASE


class ScriptParseError(ScriptError):
    """The script text could not be split into statements."""


class ScriptStatementFailedError(ScriptError):
    """A single statement of a script failed on the database."""

    def __init__(
        self,
        statement: str,
        statement_number: int,
        resource: str,
        *,
        cause: BaseException | None = None,
    ):
        super().__init__(
            f"Failed to execute SQL script statement #{statement_number} of {resource}: {statement}",
            context={"resource": resource, "statement_number": statement_number},
            cause=cause,
        )
        self.statement = statement
        self.statement_number = statement_number
        self.resource = resource


__all__ = [
    "ErrorCategory",
    "PreAlembicError",
    "UninitializedError",
    "ResolveDbPlatformError",
    "SqlScriptReadError",
    "SqlScriptVarError",
    "SqlScriptRefError",
    "ConfigError",
    "ScriptError",
    "ScriptParseError",
    "ScriptStatementFailedError",
]
