"""Tests for PreAlembic, the once-only pre-migration runner."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from prealembic.core import PreAlembic, ScriptPlan
from prealembic.environment import Environment, MapPropertySource
from prealembic.errors import (
    ScriptStatementFailedError,
    SqlScriptReadError,
    SqlScriptRefError,
    SqlScriptVarError,
    UninitializedError,
)
from prealembic.placeholders import PlaceholderError
from prealembic.resources import ResourceLoader, StringShadowResource
from prealembic.settings import PreAlembicSettings


def env(**props: str) -> Environment:
    return Environment([MapPropertySource("test", props)])


@pytest.fixture
def loader(script_dir: Path) -> ResourceLoader:
    return ResourceLoader(base_dir=script_dir.parent)


def make(engine: Engine, loader: ResourceLoader, environment: Environment | None = None, **settings) -> PreAlembic:
    settings.setdefault("sql_script_references", ["scripts/"])
    return PreAlembic(
        env() if environment is None else environment,
        engine,
        PreAlembicSettings(**settings),
        resource_loader=loader,
    )


def count_rows(engine: Engine, table: str) -> int:
    with engine.connect() as conn:
        return conn.exec_driver_sql(f"SELECT COUNT(*) FROM {table}").scalar()


# ── before execute() ──────────────────────────────────────────────────


class TestUninitialized:
    @pytest.mark.parametrize(
        "accessor",
        ["db_platform_code", "unfiltered_resources", "filtered_resources", "has_executed_scripts", "result"],
    )
    def test_accessors_raise(self, engine: Engine, loader: ResourceLoader, accessor: str):
        pre = make(engine, loader)
        with pytest.raises(UninitializedError, match="prior to execute"):
            getattr(pre, accessor)

    def test_engine_always_available(self, engine: Engine, loader: ResourceLoader):
        assert make(engine, loader).engine is engine

    def test_plan_does_not_execute(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader)
        plan = pre.plan()
        assert isinstance(plan, ScriptPlan)
        assert plan.db_platform_code == "sqlite"
        assert [r.filename for r in plan.unfiltered_resources] == ["sqlite.sql"]
        assert "CREATE TABLE people" in plan.filtered_resources[0].read_text()
        assert "people" not in table_names(engine)
        with pytest.raises(UninitializedError):
            pre.db_platform_code


# ── execute() ─────────────────────────────────────────────────────────


class TestExecute:
    def test_detected_platform_script(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader)
        pre.execute()

        assert pre.db_platform_code == "sqlite"
        assert pre.has_executed_scripts is True
        assert [r.filename for r in pre.unfiltered_resources] == ["sqlite.sql"]
        assert all(isinstance(r, StringShadowResource) for r in pre.filtered_resources)
        assert "people" in table_names(engine)
        assert pre.result is not None
        assert pre.result.statements_executed == 2

    def test_placeholder_from_environment(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader, env(**{"table.name": "persons"}))
        pre.execute()
        assert "CREATE TABLE persons" in pre.filtered_resources[0].read_text()
        assert "${table.name:people}" in pre.unfiltered_resources[0].read_text()
        assert count_rows(engine, "persons") == 1
        assert "people" not in table_names(engine)

    def test_runs_only_once(self, engine: Engine, loader: ResourceLoader):
        pre = make(engine, loader)
        pre.execute()
        pre.execute()
        assert count_rows(engine, "people") == 1

    def test_concurrent_execute_runs_once(self, engine: Engine, loader: ResourceLoader):
        pre = make(engine, loader)
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: pre.execute(), range(8)))
        assert count_rows(engine, "people") == 1

    def test_configured_platform_code(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader, db_platform_code="postgresql")
        pre.execute()
        assert pre.db_platform_code == "postgresql"
        assert [r.filename for r in pre.filtered_resources] == ["default.sql"]
        assert "fallback" in table_names(engine)

    def test_platform_code_is_free_form(self, engine: Engine, loader: ResourceLoader, script_dir: Path, table_names):
        (script_dir / "my-own-db.sql").write_text("CREATE TABLE custom_platform (id INTEGER);")
        pre = make(engine, loader, db_platform_code="my-own-db")
        pre.execute()
        assert "custom_platform" in table_names(engine)

    def test_disabled(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader, enabled=False)
        pre.execute()
        assert pre.has_executed_scripts is False
        assert pre.db_platform_code == "sqlite"
        assert pre.result is None
        assert "people" not in table_names(engine)

    def test_no_scripts_found(self, engine: Engine, tmp_path: Path):
        pre = make(engine, ResourceLoader(base_dir=tmp_path), sql_script_references=["empty/"])
        pre.execute()
        assert pre.has_executed_scripts is False
        assert pre.unfiltered_resources == []
        assert pre.filtered_resources == []

    def test_explicit_scripts(self, engine: Engine, loader: ResourceLoader, table_names):
        pre = make(engine, loader, sql_script_references=["scripts/default.sql", "scripts/sqlite.sql"])
        pre.execute()
        assert [r.filename for r in pre.filtered_resources] == ["default.sql", "sqlite.sql"]
        assert {"fallback", "people"} <= table_names(engine)

    def test_explicit_missing_script(self, engine: Engine, loader: ResourceLoader):
        pre = make(engine, loader, sql_script_references=["scripts/default.sql", "scripts/nope.sql"])
        with pytest.raises(SqlScriptRefError):
            pre.execute()

    def test_no_environment_means_no_filtering(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_text("CREATE TABLE raw_table (v TEXT DEFAULT '${kept}');")
        pre = PreAlembic(None, engine, PreAlembicSettings(sql_script_references=["scripts/"]), loader)
        pre.execute()
        assert pre.filtered_resources == pre.unfiltered_resources
        assert "${kept}" in pre.filtered_resources[0].read_text()

    def test_version_table_schema_alias(self, engine: Engine, script_dir: Path, loader: ResourceLoader, table_names):
        (script_dir / "sqlite.sql").write_text("CREATE TABLE ${alembic.version-table-schema}_versions (id INTEGER);")
        pre = make(engine, loader, env(**{"alembic.default-schema": "app"}))
        pre.execute()
        assert "app_versions" in table_names(engine)

    def test_continue_on_error(self, engine: Engine, script_dir: Path, loader: ResourceLoader, table_names):
        (script_dir / "sqlite.sql").write_text("DROP TABLE does_not_exist;\nCREATE TABLE survivor (id INTEGER);")
        pre = make(engine, loader, continue_on_error=True)
        pre.execute()
        assert pre.has_executed_scripts is True
        assert len(pre.result.failures) == 1
        assert "survivor" in table_names(engine)

    def test_statement_failure_propagates(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_text("DROP TABLE does_not_exist;")
        with pytest.raises(ScriptStatementFailedError):
            make(engine, loader).execute()

    def test_custom_separator(self, engine: Engine, script_dir: Path, loader: ResourceLoader, table_names):
        (script_dir / "sqlite.sql").write_text("CREATE TABLE s1 (id INTEGER)\n/\nCREATE TABLE s2 (id INTEGER)\n/\n")
        make(engine, loader, separator="/").execute()
        assert {"s1", "s2"} <= table_names(engine)


# ── substitution errors ───────────────────────────────────────────────


class TestSubstitutionErrors:
    def test_unresolvable_placeholder(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_text("CREATE SCHEMA ${nobody.set.this};")
        with pytest.raises(SqlScriptVarError, match="Could not replace variables") as exc_info:
            make(engine, loader).execute()
        assert isinstance(exc_info.value.__cause__, PlaceholderError)

    def test_circular_placeholder(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_text("SELECT '${a}';")
        with pytest.raises(SqlScriptVarError):
            make(engine, loader, env(a="${b}", b="${a}")).execute()

    def test_undecodable_script(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_bytes("SELECT 'café';".encode("latin-1"))
        with pytest.raises(SqlScriptReadError, match="Could not read SQL script file"):
            make(engine, loader).execute()

    def test_configured_encoding(self, engine: Engine, script_dir: Path, loader: ResourceLoader):
        (script_dir / "sqlite.sql").write_bytes("CREATE TABLE enc (v TEXT DEFAULT 'café');".encode("latin-1"))
        pre = make(engine, loader, sql_script_encoding="latin-1")
        pre.execute()
        assert "café" in pre.filtered_resources[0].read_text()


class TestRepr:
    def test_repr(self, engine: Engine, loader: ResourceLoader):
        pre = make(engine, loader)
        assert "pending" in repr(pre)
        pre.execute()
        assert "executed" in repr(pre)
