"""
CLI utility helpers: settings loading, output formatting and error exits.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import asdict
from typing import Any

import typer
from alembic.util import CommandError
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from prealembic.core import PreAlembic, ScriptPlan
from prealembic.errors import PreAlembicError
from prealembic.settings import PreAlembicSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Input helpers ────────────────────────────────────────────────────────


def parse_assignments(items: Iterable[str] | None) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a dict.

    Raises ``typer.BadParameter`` for an item without ``=``.
    """
    result: dict[str, str] = {}
    for item in items or ():
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {item!r}")
        result[key.strip()] = value
    return result


def load_settings(prefix: str | None = None, **overrides: Any) -> PreAlembicSettings:
    """Load settings with the non-``None`` overrides applied; exit 1 if invalid."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return get_settings(prefix=prefix, **values)
    except ValidationError as exc:
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): invalid settings\n{escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def fail(exc: BaseException) -> typer.Exit:
    """Print *exc* to stderr and return the ``typer.Exit`` to raise."""
    if isinstance(exc, PreAlembicError):
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
        if exc.cause is not None:
            err_console.print(f"  [dim]caused by:[/dim] {escape(str(exc.cause))}")
    elif isinstance(exc, CommandError):
        err_console.print(f"[bold red]Error[/bold red] (ALEMBIC): {escape(str(exc))}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {escape(str(exc))}")
    return typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def plan_to_dict(plan: ScriptPlan, *, include_sql: bool = False) -> dict[str, Any]:
    scripts = []
    for original, filtered in zip(plan.unfiltered_resources, plan.filtered_resources):
        entry: dict[str, Any] = {"location": original.location, "description": original.description}
        if include_sql:
            entry["sql"] = filtered.read_text()
        scripts.append(entry)
    return {"db_platform_code": plan.db_platform_code, "scripts": scripts}


def run_to_dict(pre_alembic: PreAlembic) -> dict[str, Any]:
    result = pre_alembic.result
    return {
        "db_platform_code": pre_alembic.db_platform_code,
        "has_executed_scripts": pre_alembic.has_executed_scripts,
        "scripts": [r.location for r in pre_alembic.filtered_resources],
        "statements_executed": result.statements_executed if result else 0,
        "failures": [asdict(f) for f in result.failures] if result else [],
    }


def output_plan(plan: ScriptPlan, *, as_json: bool = False, show_sql: bool = True) -> None:
    """Render a dry-run :class:`ScriptPlan`."""
    if as_json:
        console.print_json(json.dumps(plan_to_dict(plan, include_sql=show_sql), default=str))
        return

    console.print(f"[bold]Platform[/bold]: [cyan]{escape(plan.db_platform_code)}[/cyan]")
    if not plan.filtered_resources:
        console.print("[dim]No scripts.[/dim]")
        return
    for resource in plan.filtered_resources:
        console.print(f"\n[bold]{escape(resource.description)}[/bold]")
        if show_sql:
            console.print(Syntax(resource.read_text(), "sql", word_wrap=True))


def output_run(pre_alembic: PreAlembic, *, as_json: bool = False) -> None:
    """Render the outcome of an executed :class:`PreAlembic`."""
    data = run_to_dict(pre_alembic)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    console.print(f"[bold]Platform[/bold]: [cyan]{escape(data['db_platform_code'])}[/cyan]")
    if not data["has_executed_scripts"]:
        console.print("[dim]No scripts executed.[/dim]")
        return

    console.print(
        f"Executed {len(data['scripts'])} script(s), "
        f"{data['statements_executed']} statement(s)"
    )
    if data["failures"]:
        _print_table(data["failures"], title="Failed statements (continued)")


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(escape(str(v)) for v in item.values()))
    console.print(table)
