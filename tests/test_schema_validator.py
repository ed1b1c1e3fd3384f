"""Tests for contract validation and its bypass order."""

import pytest

from response_governance.enforcement import (
    IntentContract,
    ResponseMeta,
    ValidationContext,
    compute_meta,
    validate_response_schema,
)


class TestBypasses:
    def test_crisis_bypass_ignores_everything(self, micro_contract):
        meta = compute_meta(" ".join(["Sentence here."] * 10), micro_contract)
        result = validate_response_schema(
            meta, micro_contract, ValidationContext(is_crisis_mode=True, contract_aware=True)
        )
        assert result.ok is True
        assert result.skipped is True
        assert result.reason == "crisis_bypass"
        assert result.violations == []

    def test_bypass_order(self, micro_contract):
        meta = compute_meta("Hi.", micro_contract)
        both = ValidationContext(is_crisis_mode=True, is_onboarding_active=True)
        assert validate_response_schema(meta, micro_contract, both).reason == "crisis_bypass"

        onboarding = ValidationContext(is_onboarding_active=True)
        assert validate_response_schema(meta, micro_contract, onboarding).reason == "onboarding_bypass"

        legacy = ValidationContext(contract_aware=False)
        assert validate_response_schema(meta, micro_contract, legacy).reason == "legacy_mode"

    def test_missing_contract_or_meta(self, micro_contract, aware_context):
        meta = compute_meta("Hi.")
        assert validate_response_schema(meta, None, aware_context).reason == "missing_input"
        assert validate_response_schema(None, micro_contract, aware_context).reason == "missing_input"

    def test_malformed_contract_is_missing_input(self, aware_context):
        meta = compute_meta("Hi.")
        result = validate_response_schema(meta, {"mode": "epic"}, aware_context)
        assert result.skipped is True
        assert result.reason == "missing_input"

    def test_context_accepts_camel_case_mapping(self, micro_contract):
        meta = compute_meta("Hi.")
        result = validate_response_schema(meta, micro_contract, {"isCrisisMode": True})
        assert result.reason == "crisis_bypass"

    @pytest.mark.parametrize("raw,expected", [
        ({"isCrisisMode": "false", "contractAware": "true"}, (False, True)),
        ({"isCrisisMode": "TRUE", "contractAware": "0"}, (True, False)),
        ({"isCrisisMode": "no", "contractAware": 1}, (False, False)),
        ({"is_crisis_mode": [], "contract_aware": True}, (False, True)),
    ])
    def test_context_flags_from_strings(self, raw, expected):
        ctx = ValidationContext.coerce(raw)
        assert (ctx.is_crisis_mode, ctx.contract_aware) == expected

    def test_string_false_does_not_bypass(self, micro_contract, overlong_text):
        meta = compute_meta(overlong_text, micro_contract)
        result = validate_response_schema(
            meta, micro_contract, {"isCrisisMode": "false", "isOnboardingActive": "false", "contractAware": True}
        )
        assert result.skipped is False
        assert result.ok is False

    def test_no_context_means_legacy(self, micro_contract):
        result = validate_response_schema(compute_meta("Hi."), micro_contract)
        assert result.reason == "legacy_mode"


class TestBudgets:
    def test_overlong_activity_offer(self, micro_contract, aware_context, overlong_text):
        meta = compute_meta(overlong_text, micro_contract)
        result = validate_response_schema(meta, micro_contract, aware_context)
        assert result.ok is False
        assert result.skipped is False
        assert result.violations == ["sentence_overflow", "activity_offered_when_never"]
        assert result.severity == "high"

    def test_sentence_tolerance_of_one(self, aware_context):
        contract = IntentContract(max_sentences=2, allow_activities="always")
        three = ResponseMeta(sentence_count=3)
        four = ResponseMeta(sentence_count=4)
        assert validate_response_schema(three, contract, aware_context).ok is True
        result = validate_response_schema(four, contract, aware_context)
        assert result.violations == ["sentence_overflow"]
        assert result.severity == "med"

    def test_question_overflow(self, aware_context):
        contract = IntentContract(allow_questions=0)
        result = validate_response_schema(ResponseMeta(question_count=1), contract, aware_context)
        assert result.violations == ["question_overflow"]

    @pytest.mark.parametrize("policy,expected", [
        ("never", ["activity_offered_when_never"]),
        ("ifAsked", ["activity_offered_unsolicited"]),
        ("always", []),
    ])
    def test_activity_policy(self, aware_context, policy, expected):
        contract = IntentContract(allow_activities=policy)
        result = validate_response_schema(ResponseMeta(activity_offered=True), contract, aware_context)
        assert result.violations == expected

    def test_three_violations_is_high(self, aware_context):
        contract = {"mode": "normal", "maxSentences": 1, "allowQuestions": 0, "allowActivities": "ifAsked"}
        meta = ResponseMeta(sentence_count=5, question_count=2, activity_offered=True, mode_expected="normal")
        result = validate_response_schema(meta, contract, aware_context)
        assert len(result.violations) == 3
        assert result.severity == "high"

    def test_clean_is_low(self, micro_contract, aware_context, compliant_text):
        result = validate_response_schema(compute_meta(compliant_text), micro_contract, aware_context)
        assert result.ok is True
        assert result.severity == "low"
        assert result.violations == []


class TestLongform:
    def test_truncation_only_when_must_not_truncate(self, aware_context):
        meta = ResponseMeta(has_truncation_language=True, mode_expected="longform")
        strict = IntentContract(mode="longform", must_not_truncate=True)
        lenient = IntentContract(mode="longform")
        assert validate_response_schema(meta, strict, aware_context).violations == [
            "truncation_language_in_mustNotTruncate"
        ]
        assert validate_response_schema(meta, lenient, aware_context).ok is True

    def test_missing_sections(self, aware_context):
        contract = {"mode": "longform", "requiredSections": ["ingredients", "steps"]}
        meta = ResponseMeta(sections_present=frozenset({"ingredients"}), mode_expected="longform")
        result = validate_response_schema(meta, contract, aware_context)
        assert result.violations == ["missing_section: steps"]
        assert result.severity == "med"

    def test_longform_ignores_sentence_budget(self, aware_context):
        contract = IntentContract(mode="longform", max_sentences=1)
        result = validate_response_schema(ResponseMeta(sentence_count=40), contract, aware_context)
        assert result.ok is True


class TestContractParsing:
    def test_nested_constraints_shape(self):
        contract = IntentContract.coerce({
            "mode": "normal",
            "constraints": {"maxSentences": 4, "allowQuestions": 2, "allowActivities": "ifAsked"},
        })
        assert contract.mode == "normal"
        assert contract.max_sentences == 4
        assert contract.allow_questions == 2
        assert contract.allow_activities == "ifAsked"

    def test_defaults_and_null_values(self):
        contract = IntentContract.coerce({"mode": "micro", "maxSentences": None})
        assert contract.max_sentences == 2
        assert contract.allow_questions == 1
        assert contract.allow_activities == "always"

    def test_negative_budget_rejected(self):
        assert IntentContract.coerce({"maxSentences": -1}) is None

    def test_non_mapping_rejected(self):
        assert IntentContract.coerce("micro") is None
        assert IntentContract.coerce(None) is None


def test_validation_is_idempotent(micro_contract, aware_context, overlong_text):
    meta = compute_meta(overlong_text, micro_contract)
    first = validate_response_schema(meta, micro_contract, aware_context)
    second = validate_response_schema(meta, micro_contract, aware_context)
    assert first == second
