"""Data models for the response contract enforcement pipeline."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import parse_flag

logger = logging.getLogger(__name__)

ContractMode = Literal["micro", "normal", "longform"]
ActivityPolicy = Literal["never", "ifAsked", "always"]
Severity = Literal["low", "med", "high"]

SKIP_CRISIS = "crisis_bypass"
SKIP_ONBOARDING = "onboarding_bypass"
SKIP_LEGACY = "legacy_mode"
SKIP_MISSING_INPUT = "missing_input"


class IntentContract(BaseModel):
    """Per-request structural policy handed in by the intent layer.

    Accepts either camelCase keys (``maxSentences``) or snake_case field
    names. Frozen: one contract lives for exactly one request.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    mode: ContractMode = "micro"
    max_sentences: int = Field(2, ge=0, alias="maxSentences")
    allow_questions: int = Field(1, ge=0, alias="allowQuestions")
    allow_activities: ActivityPolicy = Field("always", alias="allowActivities")
    must_not_truncate: bool = Field(False, alias="mustNotTruncate")
    required_sections: tuple[str, ...] = Field((), alias="requiredSections")

    # Provenance used only by the next-move assertions
    next_move: str | None = Field(None, alias="nextMove")
    primary_mode: str | None = Field(None, alias="primaryMode")
    continuity_required: bool = Field(False, alias="continuityRequired")
    intent_type: str | None = Field(None, alias="intentType")
    music_requested: bool = Field(False, alias="musicRequested")

    @classmethod
    def coerce(cls, raw: Any) -> "IntentContract | None":
        """Build a contract from a model, a flat mapping or the nested
        ``{mode, constraints: {...}}`` shape. Returns None when malformed."""
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            logger.debug(f"[Contract] Ignoring non-mapping contract: {type(raw).__name__}")
            return None

        data = dict(raw)
        constraints = data.pop("constraints", None)
        if isinstance(constraints, Mapping):
            data = {**constraints, **data}
        data = {k: v for k, v in data.items() if v is not None}

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[Contract] Malformed intent contract ({e.error_count()} errors)")
            return None


@dataclass(frozen=True)
class ResponseMeta:
    """Structural features computed once from the final response text."""

    sentence_count: int = 0
    question_count: int = 0
    has_truncation_language: bool = False
    activity_offered: bool = False
    sections_present: frozenset[str] = frozenset()
    char_count: int = 0
    mode_expected: str = "micro"

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode_expected": self.mode_expected,
            "sentence_count": self.sentence_count,
            "question_count": self.question_count,
            "has_truncation_language": self.has_truncation_language,
            "activity_offered": self.activity_offered,
            "sections_present": sorted(self.sections_present),
            "char_count": self.char_count,
        }


@dataclass(frozen=True)
class ValidationContext:
    """Context flags that decide whether the contract is evaluated at all."""

    is_crisis_mode: bool = False
    is_onboarding_active: bool = False
    contract_aware: bool = False

    @classmethod
    def coerce(cls, raw: Any) -> "ValidationContext":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            is_crisis_mode=parse_flag(raw.get("is_crisis_mode", raw.get("isCrisisMode"))),
            is_onboarding_active=parse_flag(
                raw.get("is_onboarding_active", raw.get("isOnboardingActive"))
            ),
            contract_aware=parse_flag(raw.get("contract_aware", raw.get("contractAware"))),
        )


@dataclass
class ValidationResult:
    """Outcome of checking one response against its contract.

    Attributes:
        ok: True when no violations were found (always True when skipped).
        violations: Violation codes, e.g. "sentence_overflow".
        severity: "low" (clean), "med", or "high".
        skipped: True when the contract was never evaluated.
        reason: Why validation was skipped.
    """

    ok: bool = True
    violations: list[str] = field(default_factory=list)
    severity: Severity = "low"
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def bypass(cls, reason: str) -> "ValidationResult":
        return cls(ok=True, violations=[], severity="low", skipped=True, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "ok": self.ok,
            "violations": list(self.violations),
            "severity": self.severity,
            "skipped": self.skipped,
        }
        if self.reason is not None:
            out["reason"] = self.reason
        return out


@dataclass
class RewriteAttempt:
    """The single structural repair attempt made for a request."""

    rewritten_text: str | None = None
    success: bool = False
    latency_ms: float = 0.0
    error: str | None = None
