"""SQL script splitting and execution.

Splitting rules (:func:`split_sql_script`):

* separators, ``--`` line comments and ``/* */`` block comments are only
  recognised outside single and double quotes; ``\\`` escapes the next
  character.
* comments are dropped, whitespace runs outside quotes collapse to a
  single space, statements are trimmed and empty ones dropped.
* a script that never uses the separator is split on newlines instead;
  the separator :data:`EOF_STATEMENT_SEPARATOR` keeps the whole script as
  one statement (useful for procedural blocks).

:class:`ScriptRunner` executes the statements on one AUTOCOMMIT
connection, one at a time, using driver-level SQL so that ``:name`` and
``%`` in scripts are passed through untouched.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from prealembic.errors import ScriptParseError, ScriptStatementFailedError, SqlScriptReadError
from prealembic.logging import get_logger
from prealembic.resources import Resource

logger = get_logger(__name__)

DEFAULT_STATEMENT_SEPARATOR = ";"
FALLBACK_STATEMENT_SEPARATOR = "\n"
EOF_STATEMENT_SEPARATOR = "^^^ END OF SCRIPT ^^^"
DEFAULT_COMMENT_PREFIXES = ("--",)
DEFAULT_BLOCK_COMMENT = ("/*", "*/")

_WHITESPACE = " \r\n\t"


def contains_statement_separator(
    script: str,
    separator: str,
    comment_prefixes: Sequence[str] = DEFAULT_COMMENT_PREFIXES,
    block_comment: tuple[str, str] = DEFAULT_BLOCK_COMMENT,
) -> bool:
    """True if *separator* occurs outside quotes and comments."""
    block_start, block_end = block_comment
    in_single = in_double = in_escape = False
    i = 0
    while i < len(script):
        c = script[i]
        if in_escape:
            in_escape = False
        elif c == "\\":
            in_escape = True
        elif not in_double and c == "'":
            in_single = not in_single
        elif not in_single and c == '"':
            in_double = not in_double
        elif not in_single and not in_double:
            if script.startswith(separator, i):
                return True
            if any(script.startswith(prefix, i) for prefix in comment_prefixes):
                eol = script.find("\n", i)
                if eol == -1:
                    return False
                i = eol
                continue
            if script.startswith(block_start, i):
                end = script.find(block_end, i + len(block_start))
                if end == -1:
                    return False
                i = end + len(block_end)
                continue
        i += 1
    return False


def split_sql_script(
    script: str,
    separator: str = DEFAULT_STATEMENT_SEPARATOR,
    comment_prefixes: Sequence[str] = DEFAULT_COMMENT_PREFIXES,
    block_comment: tuple[str, str] = DEFAULT_BLOCK_COMMENT,
    resource: str = "<string>",
) -> list[str]:
    """Split *script* into individual statements.

    Raises :class:`~prealembic.errors.ScriptParseError` for an
    unterminated block comment.
    """
    if not separator:
        separator = DEFAULT_STATEMENT_SEPARATOR
    if separator != EOF_STATEMENT_SEPARATOR and not contains_statement_separator(
        script, separator, comment_prefixes, block_comment
    ):
        separator = FALLBACK_STATEMENT_SEPARATOR

    block_start, block_end = block_comment
    statements: list[str] = []
    buf: list[str] = []

    def flush() -> None:
        statement = "".join(buf).strip()
        if statement:
            statements.append(statement)
        buf.clear()

    in_single = in_double = in_escape = False
    i = 0
    while i < len(script):
        c = script[i]
        if in_escape:
            in_escape = False
            buf.append(c)
            i += 1
            continue
        if c == "\\":
            in_escape = True
            buf.append(c)
            i += 1
            continue
        if not in_double and c == "'":
            in_single = not in_single
        elif not in_single and c == '"':
            in_double = not in_double

        if not in_single and not in_double:
            if script.startswith(separator, i):
                flush()
                i += len(separator)
                continue
            if any(script.startswith(prefix, i) for prefix in comment_prefixes):
                eol = script.find("\n", i)
                if eol == -1:
                    break
                i = eol
                continue
            if script.startswith(block_start, i):
                end = script.find(block_end, i + len(block_start))
                if end == -1:
                    raise ScriptParseError(
                        f"Missing block comment end delimiter: {block_end}",
                        context={"resource": resource},
                    )
                i = end + len(block_end)
                continue
            if c in _WHITESPACE:
                if buf and buf[-1] != " ":
                    buf.append(" ")
                i += 1
                continue

        buf.append(c)
        i += 1

    flush()
    return statements


@dataclass
class StatementFailure:
    """A statement that failed while ``continue_on_error`` was set."""

    resource: str
    statement_number: int
    statement: str
    error: str


@dataclass
class ScriptRunResult:
    """Outcome of a :meth:`ScriptRunner.run` call."""

    scripts: list[str] = field(default_factory=list)
    statements_executed: int = 0
    failures: list[StatementFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class ScriptRunner:
    """Executes SQL script resources against an engine.

    Parameters
    ----------
    engine
        Target database.
    separator
        Statement separator (default ``;``).
    continue_on_error
        Log failing statements and keep going instead of raising.
    encoding
        Codec used to read script resources.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        separator: str = DEFAULT_STATEMENT_SEPARATOR,
        continue_on_error: bool = False,
        encoding: str = "utf-8",
    ) -> None:
        self.engine = engine
        self.separator = separator
        self.continue_on_error = continue_on_error
        self.encoding = encoding

    def run(self, resources: Sequence[Resource]) -> ScriptRunResult:
        """Execute all *resources* in order and return a summary."""
        result = ScriptRunResult()
        if not resources:
            return result

        with self.engine.connect() as connection:
            connection.execution_options(isolation_level="AUTOCOMMIT", no_parameters=True)
            for resource in resources:
                self._run_script(connection, resource, result)
        return result

    def _run_script(self, connection: Connection, resource: Resource, result: ScriptRunResult) -> None:
        started = time.perf_counter()
        logger.debug("script.executing", script=str(resource))
        try:
            script = resource.read_text(self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise SqlScriptReadError(f'Could not read SQL script "{resource}"', cause=exc) from exc

        result.scripts.append(str(resource))
        statements = split_sql_script(script, self.separator, resource=str(resource))

        for number, statement in enumerate(statements, start=1):
            try:
                connection.exec_driver_sql(statement)
            except SQLAlchemyError as exc:
                if not self.continue_on_error:
                    raise ScriptStatementFailedError(statement, number, str(resource), cause=exc) from exc
                logger.warning(
                    "script.statement_failed",
                    script=str(resource),
                    statement_number=number,
                    statement=statement,
                    error=str(exc.__cause__ or exc),
                )
                result.failures.append(
                    StatementFailure(
                        resource=str(resource),
                        statement_number=number,
                        statement=statement,
                        error=str(exc.__cause__ or exc),
                    )
                )
                continue
            result.statements_executed += 1

        logger.debug(
            "script.executed",
            script=str(resource),
            statements=len(statements),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
