"""
Layered property lookup used for placeholder substitution in SQL scripts.

An :class:`Environment` is an ordered stack of property sources; the
first source that knows a name wins. The default stack
(:meth:`Environment.from_defaults`) is::

    explicit overrides
      → Alembic ``-x key=value`` arguments
      → process environment (``os.environ``)
      → ``.env`` files (see :mod:`prealembic.loader`), also environ-style
      → Alembic ini main section, as ``alembic.<option>``

Names are matched *relaxed*: within each dotted segment case, ``-`` and
``_`` are ignored, so ``alembic.default-schema`` finds an ini option
``default_schema`` and an environment variable ``ALEMBIC_DEFAULT_SCHEMA``.

Tags:
    configuration, properties, placeholders, pre-alembic
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from prealembic.loader import EnvCascade

if TYPE_CHECKING:
    from alembic.config import Config


def canonical_name(name: str) -> str:
    """Canonical form of a property name used for relaxed matching."""
    segments = name.strip().split(".")
    return ".".join(seg.lower().replace("-", "").replace("_", "") for seg in segments)


def environ_candidates(name: str) -> list[str]:
    """Environment variable names tried for a dotted property name.

    >>> environ_candidates("alembic.default-schema")
    ['alembic.default-schema', 'ALEMBIC_DEFAULT_SCHEMA', 'ALEMBIC_DEFAULTSCHEMA']
    """
    candidates = [name]
    underscored = name.replace(".", "_").replace("-", "_").upper()
    collapsed = name.replace(".", "_").replace("-", "").upper()
    for candidate in (underscored, collapsed):
        if candidate not in candidates:
            candidates.append(candidate)
    return candidates


class PropertySource:
    """A named source of string properties."""

    def __init__(self, name: str):
        self.name = name

    def get_property(self, name: str) -> str | None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class MapPropertySource(PropertySource):
    """Property source backed by a mapping, matched relaxed."""

    def __init__(self, name: str, mapping: Mapping[str, Any]):
        super().__init__(name)
        self._exact = {str(k): v for k, v in mapping.items()}
        self._relaxed: dict[str, Any] = {}
        for key, value in self._exact.items():
            self._relaxed.setdefault(canonical_name(key), value)

    def get_property(self, name: str) -> str | None:
        if name in self._exact:
            value = self._exact[name]
        else:
            value = self._relaxed.get(canonical_name(name))
        return None if value is None else str(value)


class EnvironPropertySource(PropertySource):
    """Property source over ``os.environ`` (read on every lookup)."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        super().__init__("environ")
        self._environ = environ

    def get_property(self, name: str) -> str | None:
        environ = os.environ if self._environ is None else self._environ
        for candidate in environ_candidates(name):
            if candidate in environ:
                return environ[candidate]
        return None


class DotenvPropertySource(MapPropertySource):
    """Values of an :class:`~prealembic.loader.EnvCascade`.

    ``.env`` files usually hold environment variable names, so a dotted
    name that misses the map is retried as its environment spelling
    (``app.schema`` → ``APP_SCHEMA``), as :class:`EnvironPropertySource` does.
    """

    def __init__(self, cascade: EnvCascade):
        super().__init__("dotenv", cascade.values())
        self.files = list(cascade.files)

    def get_property(self, name: str) -> str | None:
        value = super().get_property(name)
        if value is not None:
            return value
        for candidate in environ_candidates(name)[1:]:
            value = self._exact.get(candidate, self._relaxed.get(canonical_name(candidate)))
            if value is not None:
                return str(value)
        return None


class AlembicConfigPropertySource(MapPropertySource):
    """Main section of an Alembic ``Config``, exposed as ``alembic.<option>``."""

    PREFIX = "alembic."

    def __init__(self, config: Config):
        options: dict[str, str] = {}
        if config.file_config.has_section(config.config_ini_section):
            for key in config.file_config.options(config.config_ini_section):
                options[self.PREFIX + key] = config.get_main_option(key)
        super().__init__(f"alembic:{config.config_ini_section}", options)


def x_arguments(config: Config) -> dict[str, str]:
    """Parse ``-x key=value`` command line arguments of an Alembic ``Config``."""
    raw: Iterable[str] = getattr(config.cmd_opts, "x", None) or []
    result: dict[str, str] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if sep:
            result[key.strip()] = value
    return result


class Environment:
    """Ordered stack of property sources.

    Example::

        env = Environment([MapPropertySource("cli", {"schema": "app"})])
        env.get_property("schema")          # "app"
        env.get_property("missing", "x")    # "x"
    """

    def __init__(self, sources: Iterable[PropertySource] = ()):
        self._sources: list[PropertySource] = list(sources)

    @property
    def sources(self) -> list[PropertySource]:
        return list(self._sources)

    def add_first(self, source: PropertySource) -> None:
        self._sources.insert(0, source)

    def add_last(self, source: PropertySource) -> None:
        self._sources.append(source)

    def get_property(self, name: str, default: str | None = None) -> str | None:
        for source in self._sources:
            value = source.get_property(name)
            if value is not None:
                return value
        return default

    def contains(self, name: str) -> bool:
        return self.get_property(name) is not None

    def get_bool(self, name: str, default: bool) -> bool:
        value = self.get_property(name)
        if value is None:
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")

    @classmethod
    def from_defaults(
        cls,
        overrides: Mapping[str, Any] | None = None,
        *,
        alembic_config: Config | None = None,
        project_root: Path | None = None,
        profile: str | None = None,
    ) -> Environment:
        """Build the default layering (see module docstring)."""
        sources: list[PropertySource] = []
        if overrides:
            sources.append(MapPropertySource("overrides", overrides))
        if alembic_config is not None:
            xargs = x_arguments(alembic_config)
            if xargs:
                sources.append(MapPropertySource("alembic-x", xargs))
        sources.append(EnvironPropertySource())

        cascade = EnvCascade.discover(project_root, profile)
        if cascade:
            sources.append(DotenvPropertySource(cascade))

        if alembic_config is not None:
            sources.append(AlembicConfigPropertySource(alembic_config))
        return cls(sources)

    def __repr__(self) -> str:
        return f"Environment({self._sources!r})"
