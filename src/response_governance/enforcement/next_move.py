"""
Next-move assertions -- log-only checks that the final text matches the
conversational move the intent layer asked for.

No rewrites, no blocking. Results are logged as [NEXT_MOVE] lines and
attached to the pipeline outcome for diagnostics.

Codes:
  first_line_reset              reset/intro phrase opening a continuing thread
  studios_identity_intro        studios turn introducing the assistant itself
  move_mix_clarify              clarify move with >2 sentences or a paragraph break
  move_question_count           question budget of the move not respected
  studios_activity_leak         therapy/activity terms inside a studios response
  conversation_music_offer_leak unrequested music offer in conversation
"""

import re
from dataclasses import dataclass, field

from ..telemetry import NEXT_MOVE_TAG, emit
from .models import IntentContract

RESET_PHRASES = [
    "i'm trace",
    "trace studios",
    "as an ai",
    "to recap",
    "let's",
    "just to clarify",
    "here's what we'll do",
]

IDENTITY_PHRASES = ["i'm trace", "trace studios"]

STUDIOS_LEAK_TERMS = [
    "soundscape",
    "breathing",
    "grounding",
    "exercise",
    "doorway",
    "try this",
    "let's do",
]

MUSIC_OFFER_TERMS = [
    "spotify",
    "rooted playlist",
    "rooted_playlist",
    "low orbit playlist",
    "low_orbit_playlist",
    "first light playlist",
    "first_light_playlist",
    "on spotify",
    "open spotify",
]

# (min, max) questions allowed per move
QUESTION_BUDGETS: dict[str, tuple[int, int]] = {
    "continue": (0, 1),
    "deliver_longform": (0, 1),
    "offer_music": (0, 1),
    "clarify": (1, 1),
    "reflect_then_question": (1, 1),
}

_FIRST_SENTENCE = re.compile(r"^[^.!?\n]+[.!?]?")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass
class MoveViolation:
    code: str
    detail: str
    severity: str  # "high" or "medium"


@dataclass
class MoveAssertionResult:
    ran: bool = False
    passed: bool = True
    violations: list[MoveViolation] = field(default_factory=list)

    @property
    def codes(self) -> list[str]:
        return [v.code for v in self.violations]


def _first_sentence(text: str) -> str:
    match = _FIRST_SENTENCE.match(text)
    if match:
        return match.group(0).strip()
    return text.split("\n", 1)[0].strip()


def _sentence_count(text: str) -> int:
    cleaned = text.replace("...", "…")
    return sum(1 for s in _SENTENCE_BOUNDARY.split(cleaned) if s.strip())


def assert_next_move(
    text: str | None,
    contract: IntentContract | None,
    *,
    contract_aware: bool = False,
    is_crisis_mode: bool = False,
    is_onboarding_active: bool = False,
    request_id: str | None = None,
) -> MoveAssertionResult:
    """Check the final text against the contract's next move. Never raises."""
    result = MoveAssertionResult()

    if not contract_aware or is_crisis_mode or is_onboarding_active:
        return result
    if contract is None or not contract.next_move or not text:
        return result

    result.ran = True
    move = contract.next_move
    primary_mode = contract.primary_mode or "conversation"
    first = _first_sentence(text).lower()
    lowered = text.lower()
    questions = text.count("?")

    if contract.continuity_required and any(p in first for p in RESET_PHRASES):
        result.violations.append(MoveViolation(
            "first_line_reset",
            "First sentence contains a reset phrase while continuity is required",
            "high",
        ))

    if primary_mode == "studios" and not contract.continuity_required:
        if any(p in first for p in IDENTITY_PHRASES):
            result.violations.append(MoveViolation(
                "studios_identity_intro", "Studios first turn introduces the assistant", "high",
            ))

    if move == "clarify":
        sentences = _sentence_count(text)
        if sentences > 2 or "\n\n" in text:
            result.violations.append(MoveViolation(
                "move_mix_clarify",
                f"clarify move produced {sentences} sentences or a paragraph break",
                "medium",
            ))

    budget = QUESTION_BUDGETS.get(move)
    if budget is not None and not budget[0] <= questions <= budget[1]:
        expected = "exactly 1" if budget == (1, 1) else f"{budget[0]}-{budget[1]}"
        result.violations.append(MoveViolation(
            "move_question_count",
            f"{move} move has {questions} questions (expected {expected})",
            "medium",
        ))

    if primary_mode == "studios" and any(t in lowered for t in STUDIOS_LEAK_TERMS):
        result.violations.append(MoveViolation(
            "studios_activity_leak", "Studios response contains an activity/therapy term", "high",
        ))

    if primary_mode == "conversation" and move != "offer_music":
        requested = contract.intent_type == "music" or contract.music_requested
        if not requested and any(t in lowered for t in MUSIC_OFFER_TERMS):
            result.violations.append(MoveViolation(
                "conversation_music_offer_leak",
                "Conversation response offers music without a request",
                "high",
            ))

    result.passed = not result.violations
    emit(NEXT_MOVE_TAG, {
        "requestId": request_id,
        "move": move,
        "primaryMode": primary_mode,
        "passed": result.passed,
        "violations": result.codes,
    })
    return result
