"""
ContractEnforcementPipeline -- gate, validate, rewrite once, re-validate.

Per request:
  1. crisis / onboarding           -> validator bypass (rollout never consulted)
  2. master switch off             -> skipped "enforcement_disabled"
  3. contract-aware with a contract + rollout gate -> skipped "rollout_excluded"
     when out of bucket
  4. compute meta -> validate
  5. on failure: ONE rewrite, recompute meta, re-validate
     - rewrite passes  -> ship the rewritten text
     - otherwise       -> ship the original text with violations flagged
  6. next-move assertions (log-only) and one [SCHEMA METRICS] record

Nothing here raises for bad input. Cancellation of the awaiting task aborts
the in-flight rewrite call.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..config import GovernanceConfig
from ..llm import TextGenerator
from ..telemetry import SCHEMA_METRICS_TAG, SchemaMetrics, emit
from .meta_extractor import compute_meta
from .models import IntentContract, ResponseMeta, RewriteAttempt, ValidationContext, ValidationResult
from .next_move import MoveAssertionResult, assert_next_move
from .rewrite import NO_GENERATOR, rewrite_to_schema
from .rollout import should_enforce
from .schema_validator import validate_response_schema

logger = logging.getLogger(__name__)

SKIP_DISABLED = "enforcement_disabled"
SKIP_ROLLOUT = "rollout_excluded"


def _rewrite_called(attempt: RewriteAttempt | None) -> bool:
    """True when the rewrite actually reached a generator."""
    return attempt is not None and attempt.error != NO_GENERATOR


@dataclass
class EnforcementOutcome:
    """Everything the finalizer needs to know about one enforcement run.

    Attributes:
        text: The text to ship (rewritten only if the rewrite validated).
        meta: Meta of the shipped text.
        validation: Validation of the shipped text (or the bypass result).
        initial_validation: Validation of the original text, before any rewrite.
        rewrite: The single rewrite attempt, if one was made.
        rewrite_accepted: True when the rewritten text passed re-validation.
        next_move: Log-only move assertions.
        metrics: The telemetry record emitted for this request.
    """

    text: str
    meta: ResponseMeta
    validation: ValidationResult
    initial_validation: ValidationResult
    rewrite: RewriteAttempt | None = None
    rewrite_accepted: bool = False
    next_move: MoveAssertionResult = field(default_factory=MoveAssertionResult)
    metrics: SchemaMetrics = field(default_factory=SchemaMetrics)

    def schema_meta(self) -> dict[str, Any]:
        """Diagnostic block attached to the envelope as ``_schema_meta``."""
        block = self.validation.to_dict()
        block["ran"] = not self.initial_validation.skipped
        block["initial_violations"] = list(self.initial_validation.violations)
        block["rewrite_attempted"] = _rewrite_called(self.rewrite)
        block["rewrite_succeeded"] = self.rewrite_accepted
        if self.rewrite is not None and self.rewrite.error:
            block["rewrite_error"] = self.rewrite.error
        if self.initial_validation.skipped:
            block["reason"] = self.initial_validation.reason
        block["enforcement_pct"] = self.metrics.enforcement_pct
        if self.next_move.ran:
            block["next_move_passed"] = self.next_move.passed
            block["next_move_violations"] = self.next_move.codes
        return block


class ContractEnforcementPipeline:
    """Runs the structural contract against one generated response.

    Usage:
        pipeline = ContractEnforcementPipeline(generator=llm, config=GovernanceConfig.from_env())
        outcome = await pipeline.enforce(
            text, contract, ValidationContext(contract_aware=True),
            user_id="user-1", request_id="req-1",
        )
        body = {"message": outcome.text, "_schema_meta": outcome.schema_meta()}
    """

    def __init__(
        self,
        generator: TextGenerator | None = None,
        config: GovernanceConfig | None = None,
    ):
        self._generator = generator
        self._config = config or GovernanceConfig()

    @property
    def config(self) -> GovernanceConfig:
        return self._config

    async def enforce(
        self,
        text: str | None,
        contract: IntentContract | dict | None,
        context: ValidationContext | dict | None = None,
        *,
        user_id: str | None = None,
        request_id: str | None = None,
    ) -> EnforcementOutcome:
        start = time.time()
        text = text if isinstance(text, str) else ""
        ctx = ValidationContext.coerce(context)
        parsed = IntentContract.coerce(contract)
        meta = compute_meta(text, parsed)

        skip_reason = self._gate(ctx, parsed, user_id)
        if skip_reason is not None:
            validation = ValidationResult.bypass(skip_reason)
        else:
            validation = validate_response_schema(meta, parsed, ctx)

        initial = validation
        attempt: RewriteAttempt | None = None
        final_text = text
        accepted = False

        if not validation.ok and not validation.skipped:
            logger.info(
                f"[Enforcement] {request_id or '-'}: {len(validation.violations)} "
                f"violation(s) ({validation.severity}), attempting single rewrite"
            )
            attempt = await rewrite_to_schema(
                self._generator,
                text,
                validation,
                parsed,
                timeout=self._config.rewrite_timeout,
            )
            if attempt.success and attempt.rewritten_text:
                new_meta = compute_meta(attempt.rewritten_text, parsed)
                recheck = validate_response_schema(new_meta, parsed, ctx)
                if recheck.ok:
                    final_text, meta, validation = attempt.rewritten_text, new_meta, recheck
                    accepted = True
                else:
                    logger.warning(
                        f"[Enforcement] {request_id or '-'}: rewrite still violates "
                        f"({', '.join(recheck.violations)}), shipping original"
                    )
            else:
                logger.warning(
                    f"[Enforcement] {request_id or '-'}: rewrite failed ({attempt.error}), "
                    f"shipping original with violations flagged"
                )

        move_result = assert_next_move(
            final_text,
            parsed,
            contract_aware=ctx.contract_aware,
            is_crisis_mode=ctx.is_crisis_mode,
            is_onboarding_active=ctx.is_onboarding_active,
            request_id=request_id,
        )

        metrics = SchemaMetrics(
            request_id=request_id,
            user_id=user_id,
            schema_ran=not initial.skipped,
            schema_failed=not initial.ok,
            rewrite_attempted=_rewrite_called(attempt),
            rewrite_succeeded=accepted,
            violations=list(initial.violations),
            severity=initial.severity,
            latency_ms_total=round((time.time() - start) * 1000, 1),
            latency_ms_rewrite=round(attempt.latency_ms, 1) if attempt else 0.0,
            skip_reason=initial.reason if initial.skipped else None,
            enforcement_pct=self._config.enforcement_pct,
        )
        if self._config.metrics_log:
            emit(SCHEMA_METRICS_TAG, metrics.to_record())

        return EnforcementOutcome(
            text=final_text,
            meta=meta,
            validation=validation,
            initial_validation=initial,
            rewrite=attempt,
            rewrite_accepted=accepted,
            next_move=move_result,
            metrics=metrics,
        )

    def _gate(
        self, ctx: ValidationContext, contract: IntentContract | None, user_id: str | None
    ) -> str | None:
        """Skip reason from config/rollout, or None to let the validator decide.

        Crisis, onboarding, legacy and missing-contract traffic fall through so
        the validator reports its own bypass reason; rollout is only consulted
        after them.
        """
        if ctx.is_crisis_mode or ctx.is_onboarding_active or not ctx.contract_aware:
            return None
        if contract is None:
            return None
        if not self._config.enforcement_enabled:
            return SKIP_DISABLED
        if not should_enforce(user_id, self._config.enforcement_pct):
            return SKIP_ROLLOUT
        return None
