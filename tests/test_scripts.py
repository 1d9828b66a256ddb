"""Tests for SQL script splitting and the ScriptRunner."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from prealembic.errors import ScriptParseError, ScriptStatementFailedError, SqlScriptReadError
from prealembic.resources import FileResource, StringShadowResource
from prealembic.scripts import (
    EOF_STATEMENT_SEPARATOR,
    ScriptRunner,
    contains_statement_separator,
    split_sql_script,
)


def write(path: Path, text: str) -> FileResource:
    path.write_text(text, encoding="utf-8")
    return FileResource(path)


# ── contains_statement_separator ─────────────────────────────────────


class TestContainsStatementSeparator:
    @pytest.mark.parametrize(
        ("script", "expected"),
        [
            ("SELECT 1;", True),
            ("SELECT ';'", False),
            ('SELECT ";"', False),
            ("-- a;b\nSELECT 1", False),
            ("/* ; */ SELECT 1", False),
            ("SELECT 1 -- trailing;", False),
        ],
    )
    def test_detection(self, script: str, expected: bool):
        assert contains_statement_separator(script, ";") is expected


# ── split_sql_script ─────────────────────────────────────────────────


class TestSplitSqlScript:
    def test_basic(self):
        script = "CREATE TABLE a (id INT);\nINSERT INTO a VALUES (1);"
        assert split_sql_script(script) == ["CREATE TABLE a (id INT)", "INSERT INTO a VALUES (1)"]

    def test_separator_inside_quotes(self):
        script = "INSERT INTO t VALUES ('a;b');SELECT \"x;y\";"
        assert split_sql_script(script) == ["INSERT INTO t VALUES ('a;b')", 'SELECT "x;y"']

    def test_escaped_quote(self):
        script = "SELECT 'it\\'s;';SELECT 2"
        assert split_sql_script(script) == ["SELECT 'it\\'s;'", "SELECT 2"]

    def test_comments_removed(self):
        script = "-- header\nSELECT 1; /* block ; */ SELECT 2;"
        assert split_sql_script(script) == ["SELECT 1", "SELECT 2"]

    def test_whitespace_collapsed(self):
        assert split_sql_script("SELECT\n  1,\n\t2;") == ["SELECT 1, 2"]

    def test_whitespace_in_quotes_kept(self):
        assert split_sql_script("SELECT 'a   b';") == ["SELECT 'a   b'"]

    def test_empty_statements_dropped(self):
        assert split_sql_script(";;SELECT 1;;  ;") == ["SELECT 1"]

    def test_newline_fallback(self):
        script = "CREATE TABLE a (id INT)\nCREATE TABLE b (id INT)\n"
        assert split_sql_script(script) == ["CREATE TABLE a (id INT)", "CREATE TABLE b (id INT)"]

    def test_newline_fallback_with_line_comment(self):
        assert split_sql_script("SELECT 1 -- one\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_custom_separator(self):
        script = "SELECT 1\nGO\nSELECT 2\nGO\n"
        assert split_sql_script(script, "GO") == ["SELECT 1", "SELECT 2"]

    def test_eof_separator_keeps_script_whole(self):
        script = "BEGIN\n  x;\n  y;\nEND;"
        assert split_sql_script(script, EOF_STATEMENT_SEPARATOR) == ["BEGIN x; y; END;"]

    def test_empty_script(self):
        assert split_sql_script("") == []
        assert split_sql_script("-- only a comment\n") == []

    def test_unterminated_block_comment(self):
        with pytest.raises(ScriptParseError, match=r"Missing block comment end delimiter: \*/") as exc_info:
            split_sql_script("SELECT 1; /* never closed", resource="a.sql")
        assert exc_info.value.context == {"resource": "a.sql"}


# ── ScriptRunner ─────────────────────────────────────────────────────


class TestScriptRunner:
    def test_executes_statements(self, engine: Engine, tmp_path: Path, table_names):
        resource = write(
            tmp_path / "a.sql",
            "CREATE TABLE notes (v TEXT);\n"
            "INSERT INTO notes (v) VALUES ('100%');\n"
            "INSERT INTO notes (v) VALUES (':not_a_param');\n",
        )
        result = ScriptRunner(engine).run([resource])

        assert result.success
        assert result.statements_executed == 3
        assert result.scripts == [str(resource)]
        assert "notes" in table_names(engine)
        with engine.connect() as conn:
            values = [row[0] for row in conn.exec_driver_sql("SELECT v FROM notes ORDER BY v")]
        assert values == ["100%", ":not_a_param"]

    def test_scripts_run_in_order(self, engine: Engine, tmp_path: Path, table_names):
        first = write(tmp_path / "1.sql", "CREATE TABLE base (id INTEGER);")
        second = write(tmp_path / "2.sql", "CREATE TABLE child (id INTEGER REFERENCES base (id));")
        result = ScriptRunner(engine).run([first, second])
        assert result.statements_executed == 2
        assert {"base", "child"} <= table_names(engine)

    def test_failure_raises_and_keeps_earlier_statements(self, engine: Engine, tmp_path: Path, table_names):
        resource = write(
            tmp_path / "bad.sql",
            "CREATE TABLE kept (id INTEGER);\nINSERT INTO missing_table VALUES (1);\nCREATE TABLE never (id INTEGER);",
        )
        with pytest.raises(ScriptStatementFailedError) as exc_info:
            ScriptRunner(engine).run([resource])

        err = exc_info.value
        assert err.statement_number == 2
        assert err.statement == "INSERT INTO missing_table VALUES (1)"
        assert err.resource == str(resource)
        tables = table_names(engine)
        assert "kept" in tables
        assert "never" not in tables

    def test_continue_on_error(self, engine: Engine, tmp_path: Path, table_names):
        resource = write(
            tmp_path / "bad.sql",
            "INSERT INTO missing_table VALUES (1);\nCREATE TABLE after_failure (id INTEGER);",
        )
        result = ScriptRunner(engine, continue_on_error=True).run([resource])

        assert not result.success
        assert result.statements_executed == 1
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.statement_number == 1
        assert "missing_table" in failure.error
        assert "after_failure" in table_names(engine)

    def test_custom_separator(self, engine: Engine, tmp_path: Path, table_names):
        resource = write(tmp_path / "go.sql", "CREATE TABLE g1 (id INTEGER)\nGO\nCREATE TABLE g2 (id INTEGER)\nGO\n")
        ScriptRunner(engine, separator="GO").run([resource])
        assert {"g1", "g2"} <= table_names(engine)

    def test_encoding(self, engine: Engine, tmp_path: Path):
        path = tmp_path / "latin.sql"
        path.write_bytes("CREATE TABLE t (v TEXT); INSERT INTO t VALUES ('café');".encode("latin-1"))
        ScriptRunner(engine, encoding="latin-1").run([FileResource(path)])
        with engine.connect() as conn:
            assert conn.exec_driver_sql("SELECT v FROM t").scalar() == "café"

    def test_undecodable_script(self, engine: Engine, tmp_path: Path):
        path = tmp_path / "latin.sql"
        path.write_bytes("SELECT 'café';".encode("latin-1"))
        with pytest.raises(SqlScriptReadError):
            ScriptRunner(engine).run([FileResource(path)])

    def test_missing_script(self, engine: Engine, tmp_path: Path):
        with pytest.raises(SqlScriptReadError):
            ScriptRunner(engine).run([FileResource(tmp_path / "gone.sql")])

    def test_string_shadow_resource(self, engine: Engine, tmp_path: Path, table_names):
        original = write(tmp_path / "a.sql", "CREATE TABLE ${name} (id INTEGER);")
        ScriptRunner(engine).run([StringShadowResource("CREATE TABLE shadowed (id INTEGER);", original)])
        assert "shadowed" in table_names(engine)

    def test_no_resources(self, engine: Engine):
        result = ScriptRunner(engine).run([])
        assert result.scripts == []
        assert result.statements_executed == 0
