"""
Telemetry records emitted as structured log lines.

Each line is a bracketed tag followed by compact JSON, e.g.

    [SCHEMA METRICS] {"requestId": "r1", "schema_ran": true, ...}

The record shapes are the contract with the offline report tool
(`response-governance metrics-report`), which parses the lines back.
"""

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

SCHEMA_METRICS_TAG = "[SCHEMA METRICS]"
RESPONSE_SHAPE_TAG = "[RESPONSE_SHAPE]"
APP_TRACE_TAG = "[APP_TRACE]"
NEXT_MOVE_TAG = "[NEXT_MOVE]"


def _now_ms() -> int:
    return int(time.time() * 1000)


class SchemaMetrics(BaseModel):
    """One record per request describing what schema enforcement did."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str | None = Field(None, alias="requestId")
    user_id: str | None = Field(None, alias="userId")
    schema_ran: bool = False
    schema_failed: bool = False
    rewrite_attempted: bool = False
    rewrite_succeeded: bool = False
    violations: list[str] = Field(default_factory=list)
    severity: str = "low"
    latency_ms_total: float = 0.0
    latency_ms_rewrite: float = 0.0
    skip_reason: str | None = None
    enforcement_pct: float = 100
    ts: int = Field(default_factory=_now_ms)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def format_line(tag: str, payload: dict[str, Any]) -> str:
    return f"{tag} {json.dumps(payload, default=str, separators=(',', ':'))}"


def emit(tag: str, payload: dict[str, Any]) -> str:
    """Log one telemetry line at INFO and return it."""
    line = format_line(tag, payload)
    logger.info(line)
    return line


def parse_line(line: str, tag: str) -> dict[str, Any] | None:
    """Extract the JSON payload following ``tag`` in a log line, if any."""
    idx = line.find(tag)
    if idx == -1:
        return None
    raw = line[idx + len(tag):].strip()
    start = raw.find("{")
    if start == -1:
        return None
    try:
        obj = json.loads(raw[start:])
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None
