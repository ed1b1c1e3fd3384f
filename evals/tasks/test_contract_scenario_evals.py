"""
Contract Scenario Evals (5 tasks) -- the end-to-end governance behaviours.

CODE-BASED graders over the pipeline, the rollout gate and the finalizer.
"""

import pytest

from evals.graders import CodeGrader
from response_governance.enforcement import (
    ValidationContext,
    compute_meta,
    should_enforce,
    validate_response_schema,
)
from response_governance.envelope import normalize_response_envelope
from response_governance.orchestration import finalize_response

CONTRACT = {"mode": "micro", "maxSentences": 2, "allowQuestions": 1, "allowActivities": "never"}
OVERLONG = (
    "I hear how heavy this week has been. It makes sense you feel drained. "
    "Would you like to try a breathing exercise? Sometimes slowing down helps."
)
AWARE = ValidationContext(contract_aware=True)


class TestValidationVerdicts:
    """Eval: Does the validator flag an overlong activity offer, and respect crisis?"""

    def test_overlong_activity_offer_flagged(self):
        result = validate_response_schema(compute_meta(OVERLONG), CONTRACT, AWARE)
        grade = (
            CodeGrader("overlong_activity_offer")
            .add_check("not_ok", lambda r: r.ok is False)
            .add_check("sentence_overflow", lambda r: "sentence_overflow" in r.violations)
            .add_check("activity_never", lambda r: "activity_offered_when_never" in r.violations)
            .add_check("no_question_overflow", lambda r: "question_overflow" not in r.violations)
            .add_check("high_severity", lambda r: r.severity == "high")
            .grade(result)
        )
        assert grade.passed, grade.failures

    def test_crisis_always_bypasses(self):
        text = " ".join(f"Sentence number {i}." for i in range(10))
        result = validate_response_schema(
            compute_meta(text), CONTRACT, ValidationContext(is_crisis_mode=True, contract_aware=True)
        )
        grade = (
            CodeGrader("crisis_bypass")
            .add_check("ok", lambda r: r.ok)
            .add_check("skipped", lambda r: r.skipped)
            .add_check("reason", lambda r: r.reason == "crisis_bypass")
            .grade(result)
        )
        assert grade.passed, grade.failures


class TestRepair:
    """Eval: Does a single rewrite repair the response without extra calls?"""

    @pytest.mark.asyncio
    async def test_rewrite_repairs_response(self, pipeline, canned_generator):
        outcome = await pipeline.enforce(OVERLONG, CONTRACT, AWARE, user_id="bob", request_id="eval-b")
        grade = (
            CodeGrader("single_rewrite_repair")
            .add_check("shipped_rewrite", lambda o: o.rewrite_accepted)
            .add_check("revalidated_ok", lambda o: o.validation.ok)
            .add_check("two_sentences", lambda o: o.meta.sentence_count == 2)
            .add_check("no_activity", lambda o: not o.meta.activity_offered)
            .add_check("one_call", lambda o: canned_generator.complete.await_count == 1)
            .grade(outcome)
        )
        assert grade.passed, grade.failures


class TestRollout:
    """Eval: Is rollout deterministic with hard 0/100 boundaries?"""

    def test_rollout_decisions(self):
        users = [f"user-{i}" for i in range(200)]
        grade = (
            CodeGrader("rollout_boundaries")
            .add_check("zero_disables_all", lambda u: not any(should_enforce(x, 0) for x in u))
            .add_check("hundred_enables_all", lambda u: all(should_enforce(x, 100) for x in u))
            .add_check("monotonic", lambda u: all(
                should_enforce(x, 60) for x in u if should_enforce(x, 30)
            ))
            .add_check("stable", lambda u: [should_enforce(x, 50) for x in u]
                       == [should_enforce(x, 50) for x in u])
            .add_check("bob_in_25", lambda u: should_enforce("bob", 25))
            .grade(users)
        )
        assert grade.passed, grade.failures


class TestEnvelope:
    """Eval: Are legacy payloads canonicalized and crisis envelopes kept clean?"""

    def test_legacy_payload_normalized(self):
        env = normalize_response_envelope({
            "message": "hi", "response_source": "model", "foo": "bar", "sound_state": "grounding",
        })
        grade = (
            CodeGrader("legacy_normalization")
            .add_check("sound_state_migrated", lambda e: e["sound_state"] == {
                "current": "grounding", "changed": False, "reason": "normalized_legacy",
            })
            .add_check("foo_stripped", lambda e: "foo" not in e and e["_stripped_keys"] == ["foo"])
            .add_check("optional_nulls", lambda e: all(
                e[k] is None for k in ("audio_action", "ui_action", "activity_suggestion", "next_question")
            ))
            .grade(env)
        )
        assert grade.passed, grade.failures

    def test_crisis_with_playback_invalid(self):
        final = finalize_response(
            {
                "message": "You are not alone.",
                "response_source": "crisis",
                "isCrisisMode": True,
                "audio_action": {"type": "play"},
                "ui_action": {"type": "OPEN_SPOTIFY"},
            },
            "eval-crisis",
        )
        grade = (
            CodeGrader("crisis_envelope")
            .add_check("invalid", lambda f: not f.shape.ok)
            .add_check("mode_crisis", lambda f: f.body["_shape_meta"]["mode"] == "crisis")
            .add_check("audio_flagged", lambda f: "crisis_has_audio" in f.shape.codes)
            .add_check("ui_flagged", lambda f: "crisis_has_ui" in f.shape.codes)
            .grade(final)
        )
        assert grade.passed, grade.failures
