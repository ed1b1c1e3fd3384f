"""
Governance configuration -- process-wide, read-only during a request.

Configuration via environment:
  SCHEMA_ENFORCEMENT=1          master switch for contract validation/rewrite
  SCHEMA_ENFORCEMENT_PCT=100    percentage of contract-aware users enforced (0-100)
  SCHEMA_METRICS_LOG=1          emit one [SCHEMA METRICS] line per request
  SCHEMA_REWRITE_TIMEOUT=15     seconds allowed for the single rewrite call
  SCHEMA_REWRITE_MODEL=         model override for the rewrite client
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_ENFORCEMENT_PCT = 100
DEFAULT_REWRITE_TIMEOUT = 15.0

_TRUTHY = ("1", "true", "yes", "on")


def clamp_percentage(percentage: float | int | str | None, default: int = 100) -> float:
    """Coerce a configured percentage into [0, 100]; unparseable values use default."""
    try:
        pct = float(percentage)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return float(default)
    if pct != pct:  # NaN
        return float(default)
    return max(0.0, min(100.0, pct))


def parse_flag(value: Any) -> bool:
    """True for a literal True or a truthy string ("1", "true", "yes", "on")."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return value is True


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return parse_flag(raw)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"[Config] {name} is not a number; using {default}")
        return default


@dataclass(frozen=True)
class GovernanceConfig:
    """Settings for the enforcement pipeline and finalizer."""

    enforcement_enabled: bool = True
    enforcement_pct: float = DEFAULT_ENFORCEMENT_PCT
    metrics_log: bool = True
    rewrite_timeout: float = DEFAULT_REWRITE_TIMEOUT
    rewrite_model: str | None = None

    @classmethod
    def from_env(cls) -> "GovernanceConfig":
        return cls(
            enforcement_enabled=_env_flag("SCHEMA_ENFORCEMENT", True),
            enforcement_pct=clamp_percentage(
                os.environ.get("SCHEMA_ENFORCEMENT_PCT"), default=DEFAULT_ENFORCEMENT_PCT
            ),
            metrics_log=_env_flag("SCHEMA_METRICS_LOG", True),
            rewrite_timeout=_env_float("SCHEMA_REWRITE_TIMEOUT", DEFAULT_REWRITE_TIMEOUT),
            rewrite_model=os.environ.get("SCHEMA_REWRITE_MODEL", "").strip() or None,
        )
