"""
pre-alembic - run SQL scripts before Alembic migrations.

Typical use is creating the schema that migrations (and Alembic's own
version table) live in::

    prealembic/
        postgresql.sql   CREATE SCHEMA IF NOT EXISTS ${alembic.default-schema:app};
        default.sql      CREATE SCHEMA ${alembic.default-schema:app};

- prealembic.core: PreAlembic, the once-only runner
- prealembic.integration: run_pre_alembic() for env.py, upgrade()
- prealembic.settings: PREALEMBIC_* configuration
- prealembic.cli: the ``prealembic`` command
"""

__version__ = "0.1.0"

from prealembic.core import PreAlembic, ScriptPlan
from prealembic.environment import Environment, MapPropertySource
from prealembic.errors import (
    ConfigError,
    PreAlembicError,
    ResolveDbPlatformError,
    ScriptError,
    ScriptParseError,
    ScriptStatementFailedError,
    SqlScriptReadError,
    SqlScriptRefError,
    SqlScriptVarError,
    UninitializedError,
)
from prealembic.integration import run_pre_alembic, upgrade
from prealembic.settings import PreAlembicSettings, clear_settings_cache, get_settings

__all__ = [
    "__version__",
    "PreAlembic",
    "ScriptPlan",
    "Environment",
    "MapPropertySource",
    "PreAlembicSettings",
    "get_settings",
    "clear_settings_cache",
    "run_pre_alembic",
    "upgrade",
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
