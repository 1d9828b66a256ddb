"""
``.env`` file cascade shared by settings and placeholder lookup.

Files are looked up in the project root (the nearest directory holding
``pyproject.toml``, ``.git``, ``alembic.ini`` or ``setup.py``)::

    .env.base  →  .env.{profile}  →  .env.local  →  .env

Later files override earlier ones. The profile comes from the caller or
``PREALEMBIC_PROFILE``.

:class:`EnvCascade` is consumed twice: its ``files`` become the
``_env_file`` list of :class:`~prealembic.settings.PreAlembicSettings`,
and its ``values()`` back the ``dotenv`` layer of
:class:`~prealembic.environment.Environment`. Both see the same files.

Tags:
    configuration, env-files, pre-alembic
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

PROFILE_VARIABLE = "PREALEMBIC_PROFILE"
ROOT_MARKERS = ("pyproject.toml", ".git", "alembic.ini", "setup.py")

# Dotted and dashed keys are allowed so .env files can hold property names
_KEY_RE = re.compile(r"[A-Za-z_][\w.\-]*")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


def find_project_root(start: Path | None = None) -> Path:
    """Nearest directory at or above *start* (default cwd) with a root marker.

    Returns *start* itself when no directory qualifies.
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if any((directory / marker).exists() for marker in ROOT_MARKERS):
            return directory
    return current


def discover_env_files(project_root: Path | None = None, profile: str | None = None) -> list[Path]:
    """Existing cascade files under *project_root*, in load order."""
    root = (project_root or find_project_root()).resolve()
    profile = profile or os.environ.get(PROFILE_VARIABLE)
    names = [".env.base", f".env.{profile}" if profile else None, ".env.local", ".env"]
    return [root / name for name in names if name and (root / name).is_file()]


def _unquote(raw: str) -> str:
    quote = raw[0]
    if quote == "'":
        end = raw.find("'", 1)
        return raw[1:end] if end != -1 else raw

    chars: list[str] = []
    i = 1
    while i < len(raw):
        c = raw[i]
        if c == "\\" and i + 1 < len(raw):
            chars.append(_ESCAPES.get(raw[i + 1], "\\" + raw[i + 1]))
            i += 2
            continue
        if c == '"':
            return "".join(chars)
        chars.append(c)
        i += 1
    # unterminated: keep the text as written
    return raw


def _parse_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export "):].lstrip()

    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not _KEY_RE.fullmatch(key):
        return None

    value = value.strip()
    if value[:1] in ("'", '"'):
        return key, _unquote(value)
    comment = value.find(" #")
    return key, value[:comment].rstrip() if comment != -1 else value


def parse_env_file(path: Path) -> dict[str, str]:
    """``{key: value}`` of one ``.env`` file.

    Supports ``export`` prefixes, ``#`` comments (whole-line, or inline
    after whitespace for unquoted values), single quotes (literal) and
    double quotes (``\\n``, ``\\t``, ``\\"`` and ``\\\\`` escapes).
    Lines that are not assignments are skipped.
    """
    pairs = (_parse_line(line) for line in path.read_text(encoding="utf-8").splitlines())
    return dict(pair for pair in pairs if pair is not None)


def load_env_files(files: list[Path]) -> dict[str, str]:
    """Merge several ``.env`` files; later files win."""
    merged: dict[str, str] = {}
    for path in files:
        merged.update(parse_env_file(path))
    return merged


@dataclass(frozen=True)
class EnvCascade:
    """The ``.env`` files in effect for one project root and profile."""

    root: Path
    profile: str | None = None
    files: list[Path] = field(default_factory=list)

    @classmethod
    def discover(cls, project_root: Path | None = None, profile: str | None = None) -> EnvCascade:
        root = (project_root or find_project_root()).resolve()
        profile = profile or os.environ.get(PROFILE_VARIABLE)
        return cls(root, profile, discover_env_files(root, profile))

    def values(self) -> dict[str, str]:
        return load_env_files(self.files)

    def __bool__(self) -> bool:
        return bool(self.files)
