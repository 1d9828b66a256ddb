"""
Settings for the pre-migration run.

``PreAlembicSettings`` is a pydantic-settings model read from
``PREALEMBIC_*`` environment variables and ``.env`` files. Through
:func:`get_settings` the files are the project-root cascade of
:class:`~prealembic.loader.EnvCascade` (``.env.base``, ``.env.{profile}``,
``.env.local``, ``.env``), the same files placeholders are read from. A different
prefix yields an independent configuration, which is how one application
runs pre-migration scripts for several databases::

    db1 = get_settings()                           # PREALEMBIC_*
    db2 = get_settings(prefix="DB2_PREALEMBIC_")   # DB2_PREALEMBIC_*

Fields
──────
enabled                : master switch
db_platform_code       : overrides platform auto-detection (any string)
sql_script_references  : one folder reference ("dir/") or explicit scripts
continue_on_error      : keep going past failing statements
separator              : statement separator
sql_script_encoding    : codec used to read scripts
url, user, password    : database used for the pre-migration run
log_level, log_format  : CLI logging setup

Tags:
    settings, configuration, pydantic, environment, pre-alembic
"""

from __future__ import annotations

import codecs
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from prealembic.loader import EnvCascade

DEFAULT_ENV_PREFIX = "PREALEMBIC_"
DEFAULT_SCRIPT_LOCATION = "prealembic/"


class PreAlembicSettings(BaseSettings):
    """Configuration for a single pre-migration run."""

    model_config = SettingsConfigDict(
        env_prefix=DEFAULT_ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Behaviour ────────────────────────────────────────────────
    enabled: bool = True
    db_platform_code: str | None = Field(
        default=None,
        description="Platform code used to pick '<code>.sql'; overrides auto-detection",
    )
    sql_script_references: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [DEFAULT_SCRIPT_LOCATION],
        description="Folder reference ending in '/' or a comma-separated list of scripts",
    )
    continue_on_error: bool = False
    separator: str = ";"
    sql_script_encoding: str = "utf-8"

    # ── Database ─────────────────────────────────────────────────
    url: str | None = None
    user: str | None = None
    password: str | None = None

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"

    @field_validator("sql_script_references", mode="before")
    @classmethod
    def _split_references(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("sql_script_references")
    @classmethod
    def _require_references(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("sql_script_references must not be empty")
        return value

    @field_validator("sql_script_encoding")
    @classmethod
    def _known_codec(cls, value: str) -> str:
        try:
            return codecs.lookup(value).name
        except LookupError as exc:
            raise ValueError(f"Unknown SQL script encoding: {value!r}") from exc

    @field_validator("separator")
    @classmethod
    def _non_empty_separator(cls, value: str) -> str:
        if not value:
            raise ValueError("separator must not be empty")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, PreAlembicSettings] = {}


def get_settings(
    *,
    prefix: str | None = None,
    env_files: list[Path] | None = None,
    profile: str | None = None,
    _force_reload: bool = False,
    **overrides: Any,
) -> PreAlembicSettings:
    """Load and validate a :class:`PreAlembicSettings` instance.

    Parameters
    ----------
    prefix:
        Environment variable prefix.  Defaults to ``PREALEMBIC_``.
    env_files:
        ``.env`` files to read (later files win).  Defaults to the
        cascade found in the project root (see :mod:`prealembic.loader`).
    profile:
        Profile selecting ``.env.{profile}`` in the default cascade.
        Defaults to ``PREALEMBIC_PROFILE``.
    **overrides:
        Explicit field values; these win over environment and files.

    Only the plain default call (no overrides, files or profile) is cached.
    """
    env_prefix = prefix or DEFAULT_ENV_PREFIX
    cacheable = not overrides and env_files is None and profile is None

    if cacheable and not _force_reload and env_prefix in _settings_cache:
        return _settings_cache[env_prefix]

    init_kwargs: dict[str, Any] = dict(overrides)
    init_kwargs["_env_prefix"] = env_prefix
    if env_files is None:
        env_files = EnvCascade.discover(profile=profile).files
    init_kwargs["_env_file"] = env_files or None

    settings = PreAlembicSettings(**init_kwargs)

    if cacheable:
        _settings_cache[env_prefix] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
