"""Database platform detection.

Maps the SQLAlchemy dialect of a live connection to a lower-case platform
code (``postgresql``, ``mysql``, ``mariadb``, ``mssql``, ``oracle``,
``sqlite``, ...).  The code picks ``<code>.sql`` in folder mode.

Example::

    from sqlalchemy import create_engine
    from prealembic.platform import detect_platform_code

    detect_platform_code(create_engine("sqlite://"))   # 'sqlite'
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from prealembic.errors import ResolveDbPlatformError
from prealembic.logging import get_logger

logger = get_logger(__name__)

UNSUPPORTED = "unsupported"

#: SQLAlchemy dialect name -> platform code
PLATFORM_CODES: dict[str, str] = {
    "postgresql": "postgresql",
    "cockroachdb": "cockroachdb",
    "redshift": "redshift",
    "mysql": "mysql",
    "mariadb": "mariadb",
    "mssql": "mssql",
    "oracle": "oracle",
    "sqlite": "sqlite",
    "ibm_db_sa": "db2",
    "db2": "db2",
    "sybase": "sybase",
    "firebird": "firebird",
    "informix": "informix",
    "snowflake": "snowflake",
    "hana": "hana",
    "h2": "h2",
    "hsqldb": "hsqldb",
    "derby": "derby",
}


def platform_code_for_dialect(dialect_name: str, *, is_mariadb: bool = False) -> str:
    """Platform code for a dialect name; ``'unsupported'`` when unknown."""
    if is_mariadb:
        return "mariadb"
    return PLATFORM_CODES.get(dialect_name.lower(), UNSUPPORTED)


def detect_platform_code(engine: Engine) -> str:
    """Connect through *engine* and return the platform code of the database.

    The connection is closed again before returning.  Any failure is
    raised as :class:`~prealembic.errors.ResolveDbPlatformError`.
    """
    logger.debug("platform.detecting", url=engine.url.render_as_string(hide_password=True))
    try:
        with engine.connect() as connection:
            dialect = connection.dialect
            code = platform_code_for_dialect(dialect.name, is_mariadb=bool(getattr(dialect, "is_mariadb", False)))
    except SQLAlchemyError as exc:
        raise ResolveDbPlatformError("Could not acquire connection for engine", cause=exc) from exc
    except Exception as exc:
        raise ResolveDbPlatformError(
            "Unexpected error while detecting the database platform for engine", cause=exc
        ) from exc

    logger.debug("platform.detected", platform=code, dialect=engine.dialect.name)
    return code
