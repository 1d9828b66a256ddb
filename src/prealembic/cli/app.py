"""
Root Typer application for the ``prealembic`` CLI.

Commands:

    prealembic run       execute the pre-migration scripts
    prealembic show      dry run: platform, scripts and substituted SQL
    prealembic upgrade   pre-migration scripts, then ``alembic upgrade``
"""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path

import typer
from alembic.config import Config
from alembic.util import CommandError
from rich.markup import escape
from typer import Typer

from prealembic import __version__
from prealembic.cli.utils import err_console, fail, load_settings, output_plan, output_run, parse_assignments
from prealembic.core import PreAlembic
from prealembic.datasource import DefaultEngineProvider
from prealembic.environment import Environment
from prealembic.errors import PreAlembicError
from prealembic.integration import upgrade as upgrade_with_pre_alembic
from prealembic.logging import configure_logging
from prealembic.settings import PreAlembicSettings

app = Typer(
    name="prealembic",
    help="pre-alembic: run platform-specific SQL scripts before Alembic migrations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"prealembic {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (default: PREALEMBIC_LOG_LEVEL or INFO)"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines on stderr"),
) -> None:
    """pre-alembic CLI: run SQL scripts before migrations."""
    settings = load_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=json_logs or settings.log_format == "json",
    )


# ── Shared construction ──────────────────────────────────────────────────


def _build(
    *,
    prefix: str | None,
    url: str | None,
    platform: str | None,
    scripts: list[str] | None,
    continue_on_error: bool | None,
    separator: str | None,
    encoding: str | None,
    set_values: list[str] | None,
) -> tuple[PreAlembicSettings, Environment, DefaultEngineProvider]:
    settings = load_settings(
        prefix,
        url=url,
        db_platform_code=platform,
        sql_script_references=scripts or None,
        continue_on_error=continue_on_error,
        separator=separator,
        sql_script_encoding=encoding,
    )
    environment = Environment.from_defaults(parse_assignments(set_values))
    return settings, environment, DefaultEngineProvider(settings)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def run(
    url: str | None = typer.Option(None, "--url", "-u", help="Database URL (default: PREALEMBIC_URL, DATABASE_URL)"),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Platform code instead of auto-detection"),
    scripts: list[str] | None = typer.Option(None, "--script", "-s", help="Script reference (repeatable)"),
    continue_on_error: bool | None = typer.Option(
        None, "--continue-on-error/--stop-on-error", help="Keep going past failing statements"
    ),
    separator: str | None = typer.Option(None, "--separator", help="Statement separator"),
    encoding: str | None = typer.Option(None, "--encoding", help="Script encoding"),
    set_values: list[str] | None = typer.Option(None, "--set", help="Placeholder value key=value (repeatable)"),
    prefix: str | None = typer.Option(None, "--prefix", help="Settings env prefix (default: PREALEMBIC_)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Execute the pre-migration SQL scripts."""
    settings, environment, provider = _build(
        prefix=prefix,
        url=url,
        platform=platform,
        scripts=scripts,
        continue_on_error=continue_on_error,
        separator=separator,
        encoding=encoding,
        set_values=set_values,
    )
    try:
        pre_alembic = PreAlembic(environment, provider.get_engine(), settings)
        pre_alembic.execute()
    except PreAlembicError as exc:
        raise fail(exc) from exc
    finally:
        provider.close()

    output_run(pre_alembic, as_json=json_out)


@app.command()
def show(
    url: str | None = typer.Option(None, "--url", "-u", help="Database URL (default: PREALEMBIC_URL, DATABASE_URL)"),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Platform code instead of auto-detection"),
    scripts: list[str] | None = typer.Option(None, "--script", "-s", help="Script reference (repeatable)"),
    encoding: str | None = typer.Option(None, "--encoding", help="Script encoding"),
    set_values: list[str] | None = typer.Option(None, "--set", help="Placeholder value key=value (repeatable)"),
    prefix: str | None = typer.Option(None, "--prefix", help="Settings env prefix (default: PREALEMBIC_)"),
    sql: bool = typer.Option(True, "--sql/--no-sql", help="Print the substituted SQL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Dry run: show platform and scripts with placeholders substituted."""
    settings, environment, provider = _build(
        prefix=prefix,
        url=url,
        platform=platform,
        scripts=scripts,
        continue_on_error=None,
        separator=None,
        encoding=encoding,
        set_values=set_values,
    )
    try:
        # a configured platform code needs no connection
        engine = provider.get_engine() if settings.db_platform_code is None else None
        plan = PreAlembic(environment, engine, settings).plan()
    except PreAlembicError as exc:
        raise fail(exc) from exc
    finally:
        provider.close()

    output_plan(plan, as_json=json_out, show_sql=sql)


@app.command()
def upgrade(
    revision: str = typer.Argument("head", help="Target revision"),
    config_file: Path = typer.Option(Path("alembic.ini"), "--config", "-c", help="Alembic ini file"),
    name: str = typer.Option("alembic", "--name", "-n", help="Ini section of the Alembic config"),
    x_args: list[str] | None = typer.Option(None, "-x", help="Alembic -x key=value argument (repeatable)"),
    sql: bool = typer.Option(False, "--sql", help="Offline mode: emit SQL instead of running it"),
    tag: str | None = typer.Option(None, "--tag", help="Tag passed to env.py"),
) -> None:
    """Run the pre-migration scripts, then ``alembic upgrade REVISION``."""
    if not config_file.is_file():
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): Alembic config not found: {escape(str(config_file))}")
        raise typer.Exit(code=1)

    config = Config(str(config_file), ini_section=name, cmd_opts=Namespace(x=x_args or []))
    try:
        upgrade_with_pre_alembic(config, revision, sql=sql, tag=tag)
    except (PreAlembicError, CommandError) as exc:
        raise fail(exc) from exc


if __name__ == "__main__":
    app()
