"""Alembic integration: run the pre-migration scripts before migrations.

Call :func:`run_pre_alembic` at the top of a project's ``env.py``::

    from alembic import context
    from prealembic.integration import run_pre_alembic

    config = context.config
    if not context.is_offline_mode():
        run_pre_alembic(config)
    ...  # usual run_migrations_offline / run_migrations_online

or use :func:`upgrade` (``prealembic upgrade``) instead of
``alembic upgrade``.  The executed :class:`~prealembic.core.PreAlembic`
is stored in ``config.attributes`` so it runs once per ``Config`` even
when both paths are used.

A ``PreAlembic`` placed in ``config.attributes`` by the application
before the migrations start is used instead of the default one, which
is how an application customises engine, settings or environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Engine

from prealembic.core import PreAlembic
from prealembic.datasource import DefaultEngineProvider
from prealembic.environment import Environment
from prealembic.logging import get_logger
from prealembic.resources import ResourceLoader
from prealembic.settings import PreAlembicSettings, get_settings

logger = get_logger(__name__)

DEFAULT_ATTRIBUTE_KEY = "prealembic"
MIGRATIONS_ENABLED_PROPERTY = "alembic.enabled"


def project_dir(config: Config) -> Path:
    """Directory of the Alembic ini file, or cwd for a file-less config."""
    if config.config_file_name:
        return Path(config.config_file_name).resolve().parent
    return Path.cwd()


def run_pre_alembic(
    config: Config,
    *,
    engine: Engine | None = None,
    settings: PreAlembicSettings | None = None,
    environment: Environment | None = None,
    attribute_key: str = DEFAULT_ATTRIBUTE_KEY,
) -> PreAlembic | None:
    """Execute pre-migration scripts for an Alembic ``Config``.

    Returns the executed ``PreAlembic``, or ``None`` when pre-alembic is
    disabled (``settings.enabled`` false) or migrations are disabled
    (property ``alembic.enabled`` false).
    """
    existing = config.attributes.get(attribute_key)
    if isinstance(existing, PreAlembic):
        logger.debug("prealembic.using_existing", attribute_key=attribute_key)
        existing.execute()
        return existing

    settings = settings or get_settings()
    root = project_dir(config)
    environment = environment or Environment.from_defaults(alembic_config=config, project_root=root)

    if not settings.enabled:
        logger.debug("prealembic.backing_off", reason="prealembic disabled")
        return None
    if not environment.get_bool(MIGRATIONS_ENABLED_PROPERTY, True):
        logger.debug("prealembic.backing_off", reason="migrations disabled")
        return None

    provider = DefaultEngineProvider(settings, alembic_config=config, engine=engine)
    try:
        pre_alembic = PreAlembic(
            environment,
            provider.get_engine(),
            settings,
            resource_loader=ResourceLoader(base_dir=root),
        )
        pre_alembic.execute()
    finally:
        provider.close()

    config.attributes[attribute_key] = pre_alembic
    return pre_alembic


def upgrade(
    config: Config,
    revision: str = "head",
    *,
    sql: bool = False,
    tag: str | None = None,
    **kwargs: Any,
) -> PreAlembic | None:
    """Run the pre-migration scripts, then ``alembic upgrade``.

    ``kwargs`` are passed to :func:`run_pre_alembic`.  In offline mode
    (``sql=True``) no database is touched, so the scripts are skipped.
    """
    pre_alembic = None
    if sql:
        logger.info("prealembic.skipped_offline", revision=revision)
    else:
        pre_alembic = run_pre_alembic(config, **kwargs)
    command.upgrade(config, revision, sql=sql, tag=tag)
    return pre_alembic
