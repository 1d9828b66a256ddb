"""
Pre-migration SQL execution.

``PreAlembic`` runs SQL scripts against a database *before* Alembic
migrations so that prerequisite objects (typically a schema) exist when
the migrations run.

Manifesto:
    Migrations frequently assume a schema that nobody created. Creating
    it inside a migration is too late: Alembic needs the schema for its
    own version table before the first revision runs. A tiny, ordered,
    platform-aware bootstrap step fills that gap.

Architecture::

    execute()
      │
      ├─ 1. platform code   settings.db_platform_code or detect_platform_code(engine)
      ├─ 2. resolve scripts folder: <platform>.sql | default.sql
      │                     explicit: every listed script, must exist
      ├─ 3. substitute      ${name} / ${name:default} against the Environment
      └─ 4. execute         ScriptRunner (separator, continue_on_error)

Script selection, in order of precedence:

1. ``settings.sql_script_references`` when it lists explicit scripts.
   Any script that does not exist raises ``SqlScriptRefError``.
2. A folder reference (the default is ``prealembic/``): the file
   ``<folder><platform>.sql`` if present (e.g. ``postgresql.sql``), else
   ``<folder>default.sql``. Only one of them is executed.

Examples:
    >>> from sqlalchemy import create_engine
    >>> from prealembic import Environment, PreAlembic, get_settings
    >>> pre = PreAlembic(Environment.from_defaults(), create_engine("sqlite://"), get_settings())
    >>> pre.execute()
    >>> pre.db_platform_code
    'sqlite'

Tags:
    pre-alembic, migrations, bootstrap, sql-scripts, alembic
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from prealembic.environment import Environment
from prealembic.errors import SqlScriptReadError, SqlScriptVarError, UninitializedError
from prealembic.logging import LogContext, get_logger
from prealembic.placeholders import AliasingResolver, PlaceholderError, replace_placeholders
from prealembic.platform import detect_platform_code
from prealembic.resources import Resource, ResourceLoader, StringShadowResource, resolve_scripts
from prealembic.scripts import ScriptRunner, ScriptRunResult
from prealembic.settings import PreAlembicSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScriptPlan:
    """What a run would execute: platform, raw scripts and substituted scripts."""

    db_platform_code: str
    unfiltered_resources: list[Resource]
    filtered_resources: list[Resource]


class PreAlembic:
    """Runs pre-migration SQL scripts once against an engine.

    Parameters
    ----------
    environment
        Source for placeholder substitution.  ``None`` disables substitution.
    engine
        Database to initialise.
    settings
        Configuration for this run.
    resource_loader
        Resolves script references.  Defaults to a loader based at cwd.
    """

    def __init__(
        self,
        environment: Environment | None,
        engine: Engine,
        settings: PreAlembicSettings,
        resource_loader: ResourceLoader | None = None,
    ) -> None:
        self.environment = environment
        self._engine = engine
        self.settings = settings
        self.resource_loader = resource_loader or ResourceLoader()

        self._lock = threading.Lock()
        self._has_executed = False
        self._plan: ScriptPlan | None = None
        self._result: ScriptRunResult | None = None
        self._has_executed_scripts = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(self) -> None:
        """Execute the pre-migration scripts.  Only the first call does work.

        Raises
        ------
        ResolveDbPlatformError
            The database platform could not be determined.
        SqlScriptRefError
            An explicitly listed script does not exist.
        SqlScriptReadError
            A script could not be read during substitution.
        SqlScriptVarError
            A placeholder is unresolvable or circular.
        ScriptError
            Parsing or executing a statement failed.
        """
        with self._lock:
            if self._has_executed:
                return
            self._has_executed = True
            self._plan = self.plan()
            with LogContext(platform=self._plan.db_platform_code):
                self._has_executed_scripts = self._execute_scripts(self._plan)

    def plan(self) -> ScriptPlan:
        """Resolve platform and scripts and substitute placeholders, without executing."""
        platform_code = self._resolve_platform_code()
        unfiltered = resolve_scripts(self.settings.sql_script_references, platform_code, self.resource_loader)
        filtered = self._filter_resources(unfiltered)
        return ScriptPlan(platform_code, unfiltered, filtered)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def db_platform_code(self) -> str:
        """Platform code used for this run, detected or configured."""
        return self._executed_plan().db_platform_code

    @property
    def unfiltered_resources(self) -> list[Resource]:
        """Scripts as found, before placeholder substitution."""
        return self._executed_plan().unfiltered_resources

    @property
    def filtered_resources(self) -> list[Resource]:
        """Scripts after placeholder substitution."""
        return self._executed_plan().filtered_resources

    @property
    def has_executed_scripts(self) -> bool:
        """True if at least one script was attempted (successfully or not).

        False when the module is disabled or no script was found.
        """
        self._executed_plan()
        return self._has_executed_scripts

    @property
    def result(self) -> ScriptRunResult | None:
        """Execution summary, ``None`` if nothing was executed."""
        self._executed_plan()
        return self._result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _executed_plan(self) -> ScriptPlan:
        if not self._has_executed or self._plan is None:
            raise UninitializedError()
        return self._plan

    def _resolve_platform_code(self) -> str:
        if self.settings.db_platform_code is not None:
            return self.settings.db_platform_code
        logger.debug("platform.from_engine")
        return detect_platform_code(self._engine)

    def _filter_resources(self, resources: list[Resource]) -> list[Resource]:
        if not resources or self.environment is None:
            return list(resources)

        resolver = AliasingResolver(self.environment)
        encoding = self.settings.sql_script_encoding
        filtered: list[Resource] = []
        for resource in resources:
            try:
                text = resource.read_text(encoding)
            except (OSError, UnicodeDecodeError) as exc:
                raise SqlScriptReadError(f'Could not read SQL script file "{resource}" into memory', cause=exc) from exc
            try:
                filtered_text = replace_placeholders(text, resolver)
            except PlaceholderError as exc:
                raise SqlScriptVarError(f'Could not replace variables in script file "{resource}"', cause=exc) from exc

            if filtered_text != text:
                logger.debug("script.before_substitution", script=str(resource), sql=text)
                logger.debug("script.after_substitution", script=str(resource), sql=filtered_text)
            else:
                logger.debug("script.no_placeholders", script=str(resource))
            filtered.append(StringShadowResource(filtered_text, resource))
        return filtered

    def _execute_scripts(self, plan: ScriptPlan) -> bool:
        if not self.settings.enabled:
            logger.debug("prealembic.disabled")
            return False
        if not plan.filtered_resources:
            logger.debug("prealembic.no_scripts")
            return False

        logger.info("prealembic.executing", scripts=[str(r) for r in plan.filtered_resources])
        runner = ScriptRunner(
            self._engine,
            separator=self.settings.separator,
            continue_on_error=self.settings.continue_on_error,
            encoding=self.settings.sql_script_encoding,
        )
        self._result = runner.run(plan.filtered_resources)
        return True

    def __repr__(self) -> str:
        state = "executed" if self._has_executed else "pending"
        return f"PreAlembic(url={self._engine.url.render_as_string(hide_password=True)!r}, {state})"
