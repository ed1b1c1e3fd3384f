"""
Offline aggregation of telemetry log lines.

Reads [SCHEMA METRICS] and [RESPONSE_SHAPE] lines back out of server logs and
summarizes them for the rollout and shape reports in the CLI.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .telemetry import parse_line

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500


def load_entries(paths: Iterable[str | Path], tag: str) -> list[dict[str, Any]]:
    """Parse every ``tag`` line in the given log files, in file order."""
    entries = []
    for path in paths:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                record = parse_line(line, tag)
                if record is not None:
                    entries.append(record)
    logger.debug(f"[Reports] {len(entries)} {tag} entries loaded")
    return entries


def _rate(n: int, total: int) -> float:
    return n / total if total else 0.0


# =============================================================================
# SCHEMA METRICS
# =============================================================================


@dataclass
class MetricsSummary:
    total: int = 0
    schema_ran: int = 0
    enforcement_active: int = 0
    schema_failed: int = 0
    rewrite_attempted: int = 0
    rewrite_succeeded: int = 0
    avg_latency_ms_total: float | None = None
    avg_latency_ms_rewrite: float | None = None
    violations: Counter = field(default_factory=Counter)
    skip_reasons: Counter = field(default_factory=Counter)

    @property
    def rewrite_success_rate(self) -> float:
        return _rate(self.rewrite_succeeded, self.rewrite_attempted)

    def rate(self, count: int) -> float:
        return _rate(count, self.total)


def summarize_metrics(
    entries: list[dict[str, Any]], max_entries: int = DEFAULT_MAX_ENTRIES
) -> MetricsSummary:
    """Aggregate the most recent ``max_entries`` schema-metrics records.

    A request counts as enforcement-active when a rewrite was attempted, or
    when the validator ran without a skip reason.
    """
    window = entries[-max_entries:] if max_entries > 0 else entries
    summary = MetricsSummary(total=len(window))
    latency_total = 0.0
    rewrite_latency = 0.0
    rewrite_latency_count = 0

    for e in window:
        if e.get("schema_ran"):
            summary.schema_ran += 1
        if e.get("schema_failed"):
            summary.schema_failed += 1
        if e.get("rewrite_attempted"):
            summary.rewrite_attempted += 1
            summary.enforcement_active += 1
            if isinstance(e.get("latency_ms_rewrite"), (int, float)):
                rewrite_latency += e["latency_ms_rewrite"]
                rewrite_latency_count += 1
        elif e.get("schema_ran") and not e.get("skip_reason"):
            summary.enforcement_active += 1
        if e.get("rewrite_succeeded"):
            summary.rewrite_succeeded += 1
        if isinstance(e.get("latency_ms_total"), (int, float)):
            latency_total += e["latency_ms_total"]
        for v in e.get("violations") or ():
            summary.violations[v] += 1
        summary.skip_reasons[e.get("skip_reason") or "none"] += 1

    if summary.total:
        summary.avg_latency_ms_total = latency_total / summary.total
    if rewrite_latency_count:
        summary.avg_latency_ms_rewrite = rewrite_latency / rewrite_latency_count
    return summary


# =============================================================================
# RESPONSE SHAPE
# =============================================================================


@dataclass
class ModeShape:
    count: int = 0
    with_audio: int = 0
    with_ui: int = 0

    @property
    def audio_rate(self) -> float:
        return _rate(self.with_audio, self.count)

    @property
    def ui_rate(self) -> float:
        return _rate(self.with_ui, self.count)


@dataclass
class ShapeSummary:
    total: int = 0
    ok: int = 0
    modes: dict[str, ModeShape] = field(default_factory=dict)
    issues: Counter = field(default_factory=Counter)

    @property
    def failed(self) -> int:
        return self.total - self.ok


def summarize_shapes(entries: list[dict[str, Any]]) -> ShapeSummary:
    summary = ShapeSummary(total=len(entries))
    for e in entries:
        mode = summary.modes.setdefault(e.get("mode") or "unknown", ModeShape())
        mode.count += 1
        if e.get("ok"):
            summary.ok += 1
        if e.get("has_audio_action"):
            mode.with_audio += 1
        if e.get("has_ui_action"):
            mode.with_ui += 1
        for code in e.get("top_issues") or ():
            summary.issues[code] += 1
    return summary
