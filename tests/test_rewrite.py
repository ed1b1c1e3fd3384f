"""Tests for the single structural rewrite."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from response_governance.enforcement import (
    ValidationResult,
    build_rewrite_prompt,
    compute_meta,
    rewrite_to_schema,
    validate_response_schema,
)
from response_governance.llm import CacheablePrompt, LLMError


@pytest.fixture
def failed_validation(micro_contract, aware_context, overlong_text):
    meta = compute_meta(overlong_text, micro_contract)
    return validate_response_schema(meta, micro_contract, aware_context)


class TestRewritePrompt:
    def test_rules_per_violation(self, micro_contract, overlong_text):
        prompt = build_rewrite_prompt(
            overlong_text, ["sentence_overflow", "activity_offered_when_never"], micro_contract
        )
        assert isinstance(prompt, CacheablePrompt)
        assert "1. Limit to 2 sentences maximum." in prompt.context
        assert "2. Remove any suggestion of activities" in prompt.context
        assert "Do NOT add new ideas" in prompt.context
        assert "<ORIGINAL_MESSAGE>" in prompt.user_message
        assert overlong_text in prompt.user_message

    def test_repeated_codes_collapse(self, micro_contract):
        prompt = build_rewrite_prompt("x", ["question_overflow", "question_overflow"], micro_contract)
        assert prompt.context.count("question mark") == 1
        assert "2." not in prompt.context

    def test_missing_section_rule(self, micro_contract):
        prompt = build_rewrite_prompt("x", ["missing_section: steps"], micro_contract)
        assert 'Include a "steps" section.' in prompt.context


class TestRewriteToSchema:
    @pytest.mark.asyncio
    async def test_success_makes_exactly_one_call(
        self, mock_generator, failed_validation, micro_contract, overlong_text, compliant_text
    ):
        attempt = await rewrite_to_schema(mock_generator, overlong_text, failed_validation, micro_contract)
        assert attempt.success is True
        assert attempt.rewritten_text == compliant_text
        assert attempt.error is None
        mock_generator.complete.assert_awaited_once()
        _, kwargs = mock_generator.complete.call_args
        assert kwargs == {"temperature": 0.3, "max_tokens": 400}

    @pytest.mark.asyncio
    async def test_no_generator(self, failed_validation, micro_contract, overlong_text):
        attempt = await rewrite_to_schema(None, overlong_text, failed_validation, micro_contract)
        assert attempt.success is False
        assert attempt.error == "no_generator"

    @pytest.mark.asyncio
    async def test_no_rewrite_needed(self, mock_generator, micro_contract):
        for validation in (ValidationResult(), ValidationResult.bypass("crisis_bypass")):
            attempt = await rewrite_to_schema(mock_generator, "Hi.", validation, micro_contract)
            assert attempt.error == "no_rewrite_needed"
        mock_generator.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_short_output_is_empty_rewrite(self, failed_validation, micro_contract, overlong_text):
        generator = AsyncMock()
        generator.complete.return_value = "  ok.  "
        attempt = await rewrite_to_schema(generator, overlong_text, failed_validation, micro_contract)
        assert attempt.success is False
        assert attempt.error == "empty_rewrite"
        assert attempt.rewritten_text is None

    @pytest.mark.asyncio
    async def test_provider_error_is_reported_not_raised(
        self, failed_validation, micro_contract, overlong_text
    ):
        generator = AsyncMock()
        generator.complete.side_effect = LLMError("RateLimitError: slow down", retryable=True)
        attempt = await rewrite_to_schema(generator, overlong_text, failed_validation, micro_contract)
        assert attempt.success is False
        assert attempt.error == "RateLimitError: slow down"
        generator.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout(self, failed_validation, micro_contract, overlong_text):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return "never"

        generator = AsyncMock()
        generator.complete.side_effect = slow
        attempt = await rewrite_to_schema(
            generator, overlong_text, failed_validation, micro_contract, timeout=0.01
        )
        assert attempt.success is False
        assert attempt.error == "timeout"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, failed_validation, micro_contract, overlong_text):
        started = asyncio.Event()

        async def hang(*args, **kwargs):
            started.set()
            await asyncio.sleep(5)
            return "never"

        generator = AsyncMock()
        generator.complete.side_effect = hang
        task = asyncio.ensure_future(
            rewrite_to_schema(generator, overlong_text, failed_validation, micro_contract)
        )
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
