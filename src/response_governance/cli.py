"""
response-governance CLI -- offline reports over telemetry logs.

Commands:
    response-governance metrics-report LOG...   Schema rollout metrics
    response-governance shape-report LOG...     Envelope shape by mode
    response-governance bucket USER_ID          Rollout bucket for a user
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .enforcement.rollout import bucket_for, should_enforce, stable_hash
from .reports import DEFAULT_MAX_ENTRIES, load_entries, summarize_metrics, summarize_shapes
from .telemetry import RESPONSE_SHAPE_TAG, SCHEMA_METRICS_TAG

app = typer.Typer(help="Response governance tooling")
console = Console()

TOP_VIOLATIONS = 15
TOP_ISSUES = 10


def _check_paths(logs: list[Path]) -> None:
    missing = [str(p) for p in logs if not p.is_file()]
    if missing:
        console.print(f"[bold red]Error:[/bold red] log file not found: {', '.join(missing)}")
        raise typer.Exit(1)


def _pct(rate: float) -> str:
    return f"{rate * 100:.1f}%"


# =============================================================================
# METRICS REPORT
# =============================================================================


@app.command("metrics-report")
def metrics_report(
    logs: list[Path] = typer.Argument(..., help="Server log files"),
    last: int = typer.Option(DEFAULT_MAX_ENTRIES, "--last", "-n", help="Max entries to consider"),
):
    """Summarize [SCHEMA METRICS] lines: run, failure and rewrite rates."""
    _check_paths(logs)
    entries = load_entries(logs, SCHEMA_METRICS_TAG)
    if not entries:
        console.print(escape(f"No {SCHEMA_METRICS_TAG} entries found."))
        return

    s = summarize_metrics(entries, max_entries=last)

    table = Table(title=f"Schema Rollout Metrics ({s.total} entries, last {last} max)")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Rate", justify="right")
    for name, count in (
        ("schema_ran", s.schema_ran),
        ("enforcement_active", s.enforcement_active),
        ("schema_failed", s.schema_failed),
        ("rewrite_attempted", s.rewrite_attempted),
        ("rewrite_succeeded", s.rewrite_succeeded),
    ):
        table.add_row(name, str(count), _pct(s.rate(count)))
    if s.rewrite_attempted:
        table.add_row("rewrite_success_rate", "", _pct(s.rewrite_success_rate))
    console.print(table)

    avg_total = f"{s.avg_latency_ms_total:.1f}ms" if s.avg_latency_ms_total is not None else "N/A"
    avg_rewrite = f"{s.avg_latency_ms_rewrite:.1f}ms" if s.avg_latency_ms_rewrite is not None else "N/A"
    console.print(f"avg latency_ms_total: {avg_total}   avg latency_ms_rewrite: {avg_rewrite}")

    if s.violations:
        violations = Table(title="Top violations")
        violations.add_column("Violation")
        violations.add_column("Count", justify="right")
        for code, count in s.violations.most_common(TOP_VIOLATIONS):
            violations.add_row(code, str(count))
        console.print(violations)
    else:
        console.print("[green]No violations recorded.[/green]")

    reasons = Table(title="Skip reasons")
    reasons.add_column("Reason")
    reasons.add_column("Count", justify="right")
    reasons.add_column("Rate", justify="right")
    for reason, count in s.skip_reasons.most_common():
        reasons.add_row(reason, str(count), _pct(s.rate(count)))
    console.print(reasons)


# =============================================================================
# SHAPE REPORT
# =============================================================================


@app.command("shape-report")
def shape_report(
    logs: list[Path] = typer.Argument(..., help="Server log files"),
):
    """Summarize [RESPONSE_SHAPE] lines: modes, playback/UI presence, issues."""
    _check_paths(logs)
    entries = load_entries(logs, RESPONSE_SHAPE_TAG)
    if not entries:
        console.print(escape(f"No {RESPONSE_SHAPE_TAG} entries found."))
        return

    s = summarize_shapes(entries)
    console.print(f"Total responses: {s.total}  (ok: {s.ok}, issues: {s.failed})")

    table = Table(title="Counts by mode")
    table.add_column("Mode", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("audio_action", justify="right")
    table.add_column("ui_action", justify="right")
    for name, mode in sorted(s.modes.items(), key=lambda kv: -kv[1].count):
        table.add_row(name, str(mode.count), f"{mode.audio_rate * 100:.0f}%", f"{mode.ui_rate * 100:.0f}%")
    console.print(table)

    if s.issues:
        issues = Table(title="Top issue codes")
        issues.add_column("Issue")
        issues.add_column("Count", justify="right")
        for code, count in s.issues.most_common(TOP_ISSUES):
            issues.add_row(code, str(count))
        console.print(issues)
    else:
        console.print("[green]No issues detected.[/green]")


# =============================================================================
# BUCKET
# =============================================================================


@app.command()
def bucket(
    user_id: str = typer.Argument(..., help="User id to bucket"),
    pct: float = typer.Option(100, "--pct", help="Rollout percentage (0-100)"),
):
    """Show the stable hash, bucket and enforcement decision for a user."""
    enforced = should_enforce(user_id, pct)
    decision = "[green]enforced[/green]" if enforced else "[yellow]excluded[/yellow]"
    console.print(f"user_id: {user_id}")
    console.print(f"hash:    {stable_hash(user_id)}")
    console.print(f"bucket:  {bucket_for(user_id)}")
    console.print(f"at {pct:g}%: {decision}")


if __name__ == "__main__":
    app()
