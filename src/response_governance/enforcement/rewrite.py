"""
Schema Rewrite -- the single structural repair attempt for contract-aware traffic.

One call, never retried, never stacked with any tone or style repair pass.
Structure-focused: sentence budget, question budget, activity removal,
truncation phrases, missing sections. The instruction forbids adding new
ideas; meaning and emotional tone must be preserved.

Failures (no generator, timeout, empty output, provider error) come back as
RewriteAttempt(success=False, error=...). Task cancellation is NOT caught:
if the enclosing request is cancelled, the in-flight call is aborted.
"""

import asyncio
import logging
import time

from ..llm import CacheablePrompt, TextGenerator
from ..security.prompt_guard import wrap_user_content
from .models import IntentContract, RewriteAttempt, ValidationResult

logger = logging.getLogger(__name__)

REWRITE_TEMPERATURE = 0.3
REWRITE_MAX_TOKENS = 400
REWRITE_TIMEOUT_SECONDS = 15.0
MIN_REWRITE_LENGTH = 5
NO_GENERATOR = "no_generator"

EDITOR_SYSTEM_PROMPT = (
    "You are a text editor. Rewrite the message to comply with the given "
    "constraints. Keep the same voice, tone, and meaning. Do not add new content."
)


def _rules_for(violations: list[str], contract: IntentContract) -> list[str]:
    """Map each violation code to one concrete, non-expansive editing rule."""
    rules: list[str] = []

    for v in violations:
        if v.startswith("sentence_overflow"):
            rules.append(
                f"Limit to {contract.max_sentences} sentences maximum. "
                f"Merge or cut sentences to fit."
            )
        elif v.startswith("question_overflow"):
            rules.append(
                f"Use at most {contract.allow_questions} question mark(s). "
                f"Remove or convert extra questions to statements."
            )
        elif v.startswith("activity_offered"):
            rules.append(
                "Remove any suggestion of activities, exercises, or techniques. "
                "Do not offer breathing exercises, grounding, or similar."
            )
        elif v.startswith("truncation_language"):
            rules.append(
                'Remove shortcut phrases like "in short", "to keep it brief", '
                '"long story short", "anyway". Deliver the full content naturally.'
            )
        elif v.startswith("missing_section"):
            section = v.split(": ", 1)[1] if ": " in v else "required"
            rules.append(f'Include a "{section}" section.')

    # Repeated codes collapse to one rule
    return list(dict.fromkeys(rules))


def build_rewrite_prompt(
    text: str, violations: list[str], contract: IntentContract
) -> CacheablePrompt:
    """Build the constrained repair instruction for the given violations."""
    rules = _rules_for(violations, contract)
    constraint_block = "\n".join(f"{i}. {r}" for i, r in enumerate(rules, 1))

    return CacheablePrompt(
        system=EDITOR_SYSTEM_PROMPT,
        context=(
            "Rewrite the following message to comply with these constraints. "
            "Do NOT add new ideas or information. Preserve the original meaning "
            "and emotional tone exactly.\n\n"
            f"CONSTRAINTS:\n{constraint_block}"
        ),
        user_message=(
            f"{wrap_user_content(text, label='ORIGINAL_MESSAGE')}\n\n"
            "REWRITTEN MESSAGE (text only, no quotes, no explanation):"
        ),
    )


async def rewrite_to_schema(
    generator: TextGenerator | None,
    text: str,
    validation: ValidationResult,
    contract: IntentContract | dict | None,
    *,
    timeout: float = REWRITE_TIMEOUT_SECONDS,
    temperature: float = REWRITE_TEMPERATURE,
    max_tokens: int = REWRITE_MAX_TOKENS,
) -> RewriteAttempt:
    """Attempt one schema-compliant rewrite of ``text``.

    Only meaningful for ok=False, skipped=False validation results; anything
    else returns immediately without calling the generator.
    """
    if generator is None:
        return RewriteAttempt(error=NO_GENERATOR)
    if validation.ok or validation.skipped:
        return RewriteAttempt(error="no_rewrite_needed")

    parsed = IntentContract.coerce(contract) or IntentContract()
    prompt = build_rewrite_prompt(text or "", validation.violations, parsed)

    start = time.time()
    try:
        output = await asyncio.wait_for(
            generator.complete(prompt, temperature=temperature, max_tokens=max_tokens),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        latency_ms = (time.time() - start) * 1000
        logger.warning(f"[Rewrite] Timed out after {latency_ms:.0f}ms")
        return RewriteAttempt(latency_ms=latency_ms, error="timeout")
    except Exception as e:
        latency_ms = (time.time() - start) * 1000
        logger.warning(f"[Rewrite] Rewrite failed: {type(e).__name__}: {e}")
        return RewriteAttempt(latency_ms=latency_ms, error=str(e) or type(e).__name__)

    latency_ms = (time.time() - start) * 1000
    rewritten = output.strip() if isinstance(output, str) else ""

    if len(rewritten) > MIN_REWRITE_LENGTH:
        logger.info(
            f"[Rewrite] Rewrote {len(text or '')} -> {len(rewritten)} chars "
            f"({latency_ms:.0f}ms)"
        )
        return RewriteAttempt(rewritten_text=rewritten, success=True, latency_ms=latency_ms)

    return RewriteAttempt(latency_ms=latency_ms, error="empty_rewrite")
