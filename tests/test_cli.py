"""Tests for the report CLI."""

from typer.testing import CliRunner

from response_governance.cli import app
from response_governance.telemetry import RESPONSE_SHAPE_TAG, SCHEMA_METRICS_TAG, format_line

runner = CliRunner()


def test_bucket_enforced():
    result = runner.invoke(app, ["bucket", "bob", "--pct", "25"])
    assert result.exit_code == 0
    assert "97717" in result.output
    assert "bucket:  17" in result.output
    assert "enforced" in result.output


def test_bucket_excluded():
    result = runner.invoke(app, ["bucket", "user-42", "--pct", "25"])
    assert result.exit_code == 0
    assert "bucket:  40" in result.output
    assert "excluded" in result.output


def test_metrics_report(tmp_path):
    log = tmp_path / "server.log"
    log.write_text("\n".join([
        format_line(SCHEMA_METRICS_TAG, {
            "schema_ran": True, "schema_failed": True, "rewrite_attempted": True,
            "rewrite_succeeded": True, "violations": ["sentence_overflow"],
            "latency_ms_total": 12.0, "latency_ms_rewrite": 9.0,
        }),
        format_line(SCHEMA_METRICS_TAG, {"schema_ran": False, "skip_reason": "legacy_mode"}),
    ]))
    result = runner.invoke(app, ["metrics-report", str(log)])
    assert result.exit_code == 0
    assert "sentence_overflow" in result.output
    assert "legacy_mode" in result.output


def test_metrics_report_no_entries(tmp_path):
    log = tmp_path / "empty.log"
    log.write_text("nothing to see\n")
    result = runner.invoke(app, ["metrics-report", str(log)])
    assert result.exit_code == 0
    assert "No [SCHEMA METRICS] entries found." in result.output


def test_shape_report(tmp_path):
    log = tmp_path / "server.log"
    log.write_text("\n".join([
        format_line(RESPONSE_SHAPE_TAG, {"mode": "crisis", "ok": False, "top_issues": ["crisis_has_audio"]}),
        format_line(RESPONSE_SHAPE_TAG, {"mode": "conversation", "ok": True, "top_issues": []}),
    ]))
    result = runner.invoke(app, ["shape-report", str(log)])
    assert result.exit_code == 0
    assert "Total responses: 2" in result.output
    assert "crisis_has_audio" in result.output


def test_missing_log_file(tmp_path):
    result = runner.invoke(app, ["shape-report", str(tmp_path / "nope.log")])
    assert result.exit_code == 1
