"""
SchemaValidator -- checks ResponseMeta against the request's IntentContract.

Hard bypasses (first match wins, always ok + skipped):
  1. crisis mode          -> "crisis_bypass"
  2. onboarding active    -> "onboarding_bypass"
  3. not contract-aware   -> "legacy_mode"
  4. no contract or meta  -> "missing_input"

micro/normal contracts check sentence, question and activity budgets.
longform contracts check truncation language and required sections.
"""

import logging
from typing import Any

from .models import (
    SKIP_CRISIS,
    SKIP_LEGACY,
    SKIP_MISSING_INPUT,
    SKIP_ONBOARDING,
    IntentContract,
    ResponseMeta,
    Severity,
    ValidationContext,
    ValidationResult,
)

logger = logging.getLogger(__name__)

SENTENCE_TOLERANCE = 1
HIGH_SEVERITY_COUNT = 3
ACTIVITY_VIOLATION_PREFIX = "activity_offered"


def _severity(violations: list[str]) -> Severity:
    if not violations:
        return "low"
    if any(v.startswith(ACTIVITY_VIOLATION_PREFIX) for v in violations):
        return "high"
    if len(violations) >= HIGH_SEVERITY_COUNT:
        return "high"
    return "med"


def _check_budgets(meta: ResponseMeta, contract: IntentContract) -> list[str]:
    violations = []
    if meta.sentence_count > contract.max_sentences + SENTENCE_TOLERANCE:
        violations.append("sentence_overflow")
    if meta.question_count > contract.allow_questions:
        violations.append("question_overflow")
    if meta.activity_offered:
        if contract.allow_activities == "never":
            violations.append("activity_offered_when_never")
        elif contract.allow_activities == "ifAsked":
            violations.append("activity_offered_unsolicited")
    return violations


def _check_longform(meta: ResponseMeta, contract: IntentContract) -> list[str]:
    violations = []
    if contract.must_not_truncate and meta.has_truncation_language:
        violations.append("truncation_language_in_mustNotTruncate")
    for section in contract.required_sections:
        if section not in meta.sections_present:
            violations.append(f"missing_section: {section}")
    return violations


def validate_response_schema(
    meta: ResponseMeta | None,
    contract: IntentContract | dict | None,
    context: ValidationContext | dict[str, Any] | None = None,
) -> ValidationResult:
    """Validate structural meta against the contract. Never raises.

    Usage:
        result = validate_response_schema(meta, contract, ValidationContext(contract_aware=True))
        if not result.ok:
            attempt = await rewrite_to_schema(generator, text, result, contract)
    """
    ctx = ValidationContext.coerce(context)

    if ctx.is_crisis_mode:
        return ValidationResult.bypass(SKIP_CRISIS)
    if ctx.is_onboarding_active:
        return ValidationResult.bypass(SKIP_ONBOARDING)
    if not ctx.contract_aware:
        return ValidationResult.bypass(SKIP_LEGACY)

    parsed = IntentContract.coerce(contract)
    if parsed is None or not isinstance(meta, ResponseMeta):
        return ValidationResult.bypass(SKIP_MISSING_INPUT)

    if parsed.mode == "longform":
        violations = _check_longform(meta, parsed)
    else:
        violations = _check_budgets(meta, parsed)

    result = ValidationResult(
        ok=not violations,
        violations=violations,
        severity=_severity(violations),
        skipped=False,
    )
    if violations:
        logger.debug(
            f"[SchemaValidator] {len(violations)} violation(s) "
            f"({result.severity}): {', '.join(violations)}"
        )
    return result
