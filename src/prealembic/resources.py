"""
SQL script resources and their resolution.

Script references are strings:

==========================  ==============================================
``file:sql/default.sql``    file system path (relative to ``base_dir``)
``sql/default.sql``         same, without the scheme
``package:myapp/sql/x.sql`` file inside an importable package
``file:sql/*.sql``          glob in the last segment, sorted by filename
==========================  ==============================================

Two resolution modes (:func:`resolve_scripts`):

* **folder** - a single reference ending in ``/`` or ``\\``: the first
  existing of ``<folder><platform>.sql`` and ``<folder>default.sql`` is
  used. Neither existing is not an error; there is simply nothing to run.
* **explicit** - every reference must exist, in listed order, otherwise
  :class:`~prealembic.errors.SqlScriptRefError`.
"""

from __future__ import annotations

import fnmatch
import importlib.resources
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from prealembic.errors import SqlScriptRefError
from prealembic.logging import get_logger

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable

logger = get_logger(__name__)

FILE_PREFIX = "file:"
PACKAGE_PREFIX = "package:"
DEFAULT_SCRIPT_NAME = "default.sql"

_GLOB_CHARS = ("*", "?", "[")


class Resource(ABC):
    """A readable SQL script."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Reference string this resource was created from."""

    @property
    @abstractmethod
    def filename(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @abstractmethod
    def exists(self) -> bool: ...

    @abstractmethod
    def read_text(self, encoding: str = "utf-8") -> str: ...

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.location!r})"


class FileResource(Resource):
    """Script on the file system.  Exists only if it is a regular file."""

    def __init__(self, path: Path | str, location: str | None = None):
        self.path = Path(path)
        self._location = location or f"{FILE_PREFIX}{self.path}"

    @property
    def location(self) -> str:
        return self._location

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def description(self) -> str:
        return f"file [{self.path.resolve()}]"

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.path.read_text(encoding=encoding)


class PackageResource(Resource):
    """Script shipped inside an importable package."""

    def __init__(self, package: str, path: str, traversable: Traversable | None = None):
        self.package = package
        self.path = path.strip("/")
        self._traversable = traversable

    def _target(self) -> Traversable:
        if self._traversable is None:
            root = importlib.resources.files(self.package)
            self._traversable = root.joinpath(*self.path.split("/")) if self.path else root
        return self._traversable

    @property
    def location(self) -> str:
        return f"{PACKAGE_PREFIX}{self.package}/{self.path}"

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def description(self) -> str:
        return f"package resource [{self.package}/{self.path}]"

    def exists(self) -> bool:
        return self._target().is_file()

    def read_text(self, encoding: str = "utf-8") -> str:
        return self._target().read_text(encoding=encoding)


class StringShadowResource(Resource):
    """In-memory script text that stands in for an original resource.

    Filename, description and location are those of ``original``; the
    content is the substituted text.
    """

    def __init__(self, content: str, original: Resource):
        self.content = content
        self.original = original

    @property
    def location(self) -> str:
        return self.original.location

    @property
    def filename(self) -> str:
        return self.original.filename

    @property
    def description(self) -> str:
        return self.original.description

    def exists(self) -> bool:
        return True

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.content


def _has_glob(segment: str) -> bool:
    return any(ch in segment for ch in _GLOB_CHARS)


def is_folder_reference(references: Sequence[str]) -> bool:
    """True for exactly one reference ending in ``/`` or ``\\``."""
    return len(references) == 1 and references[0].endswith(("/", "\\"))


class ResourceLoader:
    """Turns reference strings into :class:`Resource` objects.

    Parameters
    ----------
    base_dir
        Directory that relative file references resolve against.
        Defaults to the current working directory at lookup time.
    """

    def __init__(self, base_dir: Path | str | None = None):
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def _file_path(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = (self.base_dir or Path.cwd()) / path
        return path

    def get_resource(self, location: str) -> Resource:
        """Single resource for *location* (no glob expansion).

        Backslashes are treated as path separators.
        """
        cleaned = location.replace("\\", "/")
        if cleaned.startswith(PACKAGE_PREFIX):
            package, _, path = cleaned[len(PACKAGE_PREFIX):].partition("/")
            if not package:
                raise SqlScriptRefError(f'Resource "{location}" is invalid or cannot be found')
            return PackageResource(package, path)
        raw = cleaned[len(FILE_PREFIX):] if cleaned.startswith(FILE_PREFIX) else cleaned
        return FileResource(self._file_path(raw), location=location)

    def get_resources(self, location: str) -> list[Resource]:
        """Resources for *location*, expanding a glob in the last segment."""
        head, _, tail = location.replace("\\", "/").rpartition("/")
        if not _has_glob(tail):
            return [self.get_resource(location)]

        if location.startswith(PACKAGE_PREFIX):
            folder = self.get_resource(f"{head}/")
            if not isinstance(folder, PackageResource):
                raise SqlScriptRefError(f'Resource "{location}" is invalid or cannot be found')
            try:
                directory = folder._target()
                entries = [e for e in directory.iterdir() if e.is_file()] if directory.is_dir() else []
            except (ModuleNotFoundError, TypeError) as exc:
                raise SqlScriptRefError(
                    f'Resource "{location}" is invalid or cannot be found', cause=exc
                ) from exc
            matches = sorted((e for e in entries if fnmatch.fnmatch(e.name, tail)), key=lambda e: e.name)
            base = folder.path
            return [
                PackageResource(folder.package, f"{base}/{e.name}" if base else e.name, traversable=e)
                for e in matches
            ]

        scheme = FILE_PREFIX if location.startswith(FILE_PREFIX) else ""
        head, sep, tail = location[len(scheme):].replace("\\", "/").rpartition("/")
        directory = self._file_path(head or sep or ".")
        if not directory.is_dir():
            return []
        matches = sorted((p for p in directory.glob(tail) if p.is_file()), key=lambda p: p.name)
        return [FileResource(p, location=f"{scheme}{head}{sep}{p.name}") for p in matches]


def _exists(resource: Resource, location: str) -> bool:
    try:
        return resource.exists()
    except (ModuleNotFoundError, TypeError, OSError) as exc:
        raise SqlScriptRefError(f'Resource "{location}" is invalid or cannot be found', cause=exc) from exc


def resolve_scripts(
    references: Sequence[str],
    platform_code: str,
    loader: ResourceLoader | None = None,
) -> list[Resource]:
    """Resolve script references to the resources that should be executed."""
    loader = loader or ResourceLoader()

    if is_folder_reference(references):
        folder = references[0]
        for candidate in (f"{folder}{platform_code}.sql", f"{folder}{DEFAULT_SCRIPT_NAME}"):
            resource = loader.get_resource(candidate)
            if _exists(resource, candidate):
                logger.debug("scripts.resolved", location=candidate)
                return [resource]
        logger.debug("scripts.none_found", folder=folder, platform=platform_code)
        return []

    resolved: list[Resource] = []
    for location in references:
        for resource in loader.get_resources(location):
            if not _exists(resource, location):
                raise SqlScriptRefError(f'Resource "{location}" is invalid or cannot be found').with_context(
                    location=location
                )
            resolved.append(resource)
    return resolved
