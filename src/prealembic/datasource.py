"""Engine resolution for the pre-migration run.

The pre-migration scripts should hit the same database the migrations
will.  :class:`DefaultEngineProvider` resolves it in this order:

1. an explicitly supplied :class:`~sqlalchemy.engine.Engine`
2. ``settings.url`` (``PREALEMBIC_URL``)
3. the ``DATABASE_URL`` environment variable
4. ``sqlalchemy.url`` of the Alembic config

``settings.user`` / ``settings.password`` replace the credentials of a
URL-derived engine.  Engines created here use ``NullPool`` and are
disposed by :meth:`DefaultEngineProvider.close`.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import pool
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError

from prealembic.errors import ConfigError
from prealembic.logging import get_logger
from prealembic.settings import PreAlembicSettings

if TYPE_CHECKING:
    from alembic.config import Config

logger = get_logger(__name__)


def create_engine(url: str | URL, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite gets ``check_same_thread=False``; everything else is forwarded
    to :func:`sqlalchemy.create_engine`.
    """
    url = make_url(url)
    if url.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return _sa_create_engine(url, echo=echo, **kwargs)


@runtime_checkable
class EngineProvider(Protocol):
    """Tells which engine the pre-migration scripts run against."""

    def get_engine(self) -> Engine: ...


class DefaultEngineProvider:
    """Resolves the migration database (see module docstring)."""

    def __init__(
        self,
        settings: PreAlembicSettings,
        alembic_config: Config | None = None,
        engine: Engine | None = None,
    ) -> None:
        self.settings = settings
        self.alembic_config = alembic_config
        self._engine = engine
        self._owns_engine = False

    def resolve_url(self) -> URL:
        raw = self.settings.url or os.environ.get("DATABASE_URL")
        if not raw and self.alembic_config is not None:
            raw = self.alembic_config.get_main_option("sqlalchemy.url")
        if not raw:
            raise ConfigError("Pre-Alembic database URL missing")
        try:
            url = make_url(raw)
        except ArgumentError as exc:
            raise ConfigError("Invalid database URL for Pre-Alembic", cause=exc) from exc

        if self.settings.user is not None:
            url = url.set(username=self.settings.user)
        if self.settings.password is not None:
            url = url.set(password=self.settings.password)
        return url

    def get_engine(self) -> Engine:
        if self._engine is None:
            url = self.resolve_url()
            logger.debug("engine.created", url=url.render_as_string(hide_password=True))
            self._engine = create_engine(url, poolclass=pool.NullPool)
            self._owns_engine = True
        return self._engine

    def close(self) -> None:
        """Dispose the engine if this provider created it."""
        if self._owns_engine and self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._owns_engine = False
