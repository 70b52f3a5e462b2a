# ruff: noqa: I001
"""CLI for the ``anomaly_detection`` package.

A Typer console interface over :mod:`anomaly_detection.api`. ``DATABASE_URL``
and ``ANOMALY_DETECTION_LOG_LEVEL`` are loaded from a local ``.env`` with
``python-dotenv`` before any command runs. Failures are reported on stderr
with a non-zero exit code.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from .logging_setup import configure_logging
from .models import DetectionReport

app = typer.Typer(
    name="anomaly-detection",
    no_args_is_help=True,
    add_completion=False,
    help="Detect anomalous transactions and manage dismissal rules.",
)
console = Console()
err_console = Console(stderr=True)

# Errors a command reports instead of crashing: configuration (missing
# DATABASE_URL), validation (bad overrides or rule patterns) and database.
_REPORTED_ERRORS = (RuntimeError, ValueError, SQLAlchemyError)

_SEVERITY_STYLE = {"high": "bold red", "medium": "yellow", "low": "cyan"}

DatabaseUrl = Annotated[
    str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
]


def _fail(message: str, err: Exception) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {message}: {err}")
    raise typer.Exit(1)


def _render_report(report: DetectionReport) -> None:
    if not report.anomalies:
        console.print("[green]No anomalies found.[/green]")
        return

    table = Table(title=f"{len(report.anomalies)} anomaly(ies)")
    table.add_column("ID", justify="right")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Transaction")
    table.add_column("Reason")
    for a in report.anomalies:
        style = _SEVERITY_STYLE.get(a.severity, "")
        table.add_row(
            str(a.id),
            f"[{style}]{a.severity}[/{style}]" if style else a.severity,
            a.type,
            a.date.strftime("%Y-%m-%d %H:%M"),
            f"{a.transaction.amount:,.2f}",
            a.transaction.merchant_name or a.transaction.name,
            a.reason,
        )
    console.print(table)
    if report.created_count:
        console.print(f"[cyan]{report.created_count} new anomaly(ies) stored this run.[/cyan]")


@app.command("detect")
def detect_cmd(
    user_id: Annotated[str, typer.Argument(help="User whose transactions are analysed.")],
    *,
    min_amount: Annotated[float | None, typer.Option(help="Ignore smaller amounts.")] = None,
    max_amount: Annotated[float | None, typer.Option(help="Ignore larger amounts.")] = None,
    time_window: Annotated[int | None, typer.Option(help="Lookback in days.")] = None,
    z_score_threshold: Annotated[float | None, typer.Option()] = None,
    new_merchant_threshold: Annotated[float | None, typer.Option()] = None,
    geographic_threshold: Annotated[float | None, typer.Option()] = None,
    hours_window: Annotated[int | None, typer.Option()] = None,
    include_hidden: Annotated[bool, typer.Option(help="Also show hidden anomalies.")] = False,
    include_resolved: Annotated[bool, typer.Option(help="Also show resolved anomalies.")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")] = False,
    database_url: DatabaseUrl = None,
) -> None:
    """Run detection for a user and print the current anomalies."""

    from .api import detect_anomalies

    overrides: dict[str, Any] = {
        k: v
        for k, v in {
            "min_amount": min_amount,
            "max_amount": max_amount,
            "time_window_days": time_window,
            "z_score_threshold": z_score_threshold,
            "new_merchant_threshold": new_merchant_threshold,
            "geographic_threshold": geographic_threshold,
            "hours_window": hours_window,
        }.items()
        if v is not None
    }

    try:
        report = detect_anomalies(
            user_id,
            overrides=overrides or None,
            include_hidden=include_hidden,
            include_resolved=include_resolved,
            database_url=database_url,
        )
    except _REPORTED_ERRORS as e:
        _fail("detection failed", e)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _render_report(report)


@app.command("dismiss-pattern")
def dismiss_pattern_cmd(
    user_id: Annotated[str, typer.Argument()],
    pattern: Annotated[str, typer.Argument(help="Name, merchant, category or 'min-max'.")],
    *,
    pattern_type: Annotated[
        str,
        typer.Option(
            "--type",
            help="exact_name, merchant_name, category, amount_range or free_text.",
        ),
    ] = "free_text",
    reason: Annotated[str | None, typer.Option()] = None,
    anomaly_id: Annotated[
        int | None, typer.Option(help="Also hide this anomaly.")
    ] = None,
    database_url: DatabaseUrl = None,
) -> None:
    """Store a rule that suppresses matching transactions from future results."""

    from .api import dismiss_pattern

    try:
        rule = dismiss_pattern(
            user_id,
            pattern,
            pattern_type,
            reason=reason,
            anomaly_id=anomaly_id,
            database_url=database_url,
        )
    except _REPORTED_ERRORS as e:
        _fail("could not store dismissal rule", e)
    console.print(f"Stored {rule.rule_type} rule {rule.id} for pattern {pattern!r}.")


@app.command("list-rules")
def list_rules_cmd(
    user_id: Annotated[str, typer.Argument()],
    *,
    as_json: Annotated[bool, typer.Option("--json")] = False,
    database_url: DatabaseUrl = None,
) -> None:
    """List a user's dismissal rules, newest first."""

    from .api import list_dismissal_rules

    try:
        rules = list_dismissal_rules(user_id, database_url=database_url)
    except _REPORTED_ERRORS as e:
        _fail("could not load dismissal rules", e)

    if as_json:
        typer.echo(json.dumps([r.to_dict() for r in rules], indent=2))
        return
    if not rules:
        console.print("No dismissal rules.")
        return
    table = Table()
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Pattern")
    table.add_column("Reason")
    for r in rules:
        if r.payload is None:
            table.add_row(str(r.id), r.rule_type, "[red]<unparseable>[/red]", "")
        else:
            table.add_row(str(r.id), r.rule_type, r.payload.pattern, r.payload.reason or "")
    console.print(table)


def _toggle_hidden(anomaly_id: int, hidden: bool, database_url: str | None) -> None:
    from .api import set_anomaly_hidden

    try:
        found = set_anomaly_hidden(anomaly_id, hidden, database_url=database_url)
    except _REPORTED_ERRORS as e:
        _fail("could not update anomaly", e)
    if not found:
        err_console.print(f"[red]Error:[/red] anomaly {anomaly_id} not found")
        raise typer.Exit(1)
    console.print(f"Anomaly {anomaly_id} {'hidden' if hidden else 'visible'}.")


@app.command("hide")
def hide_cmd(anomaly_id: int, database_url: DatabaseUrl = None) -> None:
    """Hide one anomaly from default results."""
    _toggle_hidden(anomaly_id, True, database_url)


@app.command("unhide")
def unhide_cmd(anomaly_id: int, database_url: DatabaseUrl = None) -> None:
    _toggle_hidden(anomaly_id, False, database_url)


@app.command("resolve")
def resolve_cmd(
    anomaly_id: int,
    *,
    resolved_by: Annotated[str | None, typer.Option("--by", help="Who resolved it.")] = None,
    database_url: DatabaseUrl = None,
) -> None:
    """Mark one anomaly as resolved."""

    from .api import resolve_anomaly

    try:
        found = resolve_anomaly(anomaly_id, resolved_by, database_url=database_url)
    except _REPORTED_ERRORS as e:
        _fail("could not resolve anomaly", e)
    if not found:
        err_console.print(f"[red]Error:[/red] anomaly {anomaly_id} not found")
        raise typer.Exit(1)
    console.print(f"Anomaly {anomaly_id} resolved.")


@app.callback()
def _root(
    log_level: Annotated[
        str | None,
        typer.Option(help="Logging level (defaults to ANOMALY_DETECTION_LOG_LEVEL or INFO)."),
    ] = None,
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
