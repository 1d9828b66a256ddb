"""
Shared pytest fixtures and configuration for pre-alembic tests.

This module provides:
- Isolation from the developer's environment (``PREALEMBIC_*``,
  ``DATABASE_URL``, ``.env`` files in cwd, cached settings)
- SQLite engines in ``tmp_path``
- Script folders for folder-mode resolution
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

# Ensure prealembic package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prealembic.settings import clear_settings_cache



# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """
    Run every test in an empty working directory with no pre-alembic
    configuration in the process environment.
    """
    for key in list(os.environ):
        if key.startswith(("PREALEMBIC_", "DB2_PREALEMBIC_", "ALEMBIC_")) or key == "DATABASE_URL":
            monkeypatch.delenv(key, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    clear_settings_cache()
    yield workdir
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


@pytest.fixture
def engine(db_url: str) -> Generator[Engine, None, None]:
    """File-backed SQLite engine, disposed after the test."""
    eng = create_engine(db_url)
    yield eng
    eng.dispose()


@pytest.fixture
def table_names():
    """Return a function listing the tables of a SQLite engine."""

    def _table_names(eng: Engine) -> set[str]:
        with eng.connect() as conn:
            rows = conn.exec_driver_sql("SELECT name FROM sqlite_master WHERE type = 'table'")
            return {row[0] for row in rows}

    return _table_names


# =============================================================================
# Script Fixtures
# =============================================================================


@pytest.fixture
def script_dir(tmp_path: Path) -> Path:
    """
    Folder with a platform script and a default script::

        scripts/sqlite.sql    CREATE TABLE ${table.name:people} ...
        scripts/default.sql   CREATE TABLE fallback ...
    """
    d = tmp_path / "scripts"
    d.mkdir()
    (d / "sqlite.sql").write_text(
        "-- platform script\n"
        "CREATE TABLE ${table.name:people} (id INTEGER PRIMARY KEY, name TEXT);\n"
        "INSERT INTO ${table.name:people} (name) VALUES ('ada');\n"
    )
    (d / "default.sql").write_text("CREATE TABLE fallback (id INTEGER);\n")
    return d
