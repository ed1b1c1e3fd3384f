"""
MetaExtractor -- deterministic structural features of a response text.

Computed server-side from the final text. The model is never asked to
self-report these; this is ground truth for the schema validator.

Features:
  - sentence_count: segments split on terminal punctuation + whitespace,
    with common abbreviations ("Dr.", "e.g.", "etc.") neutralised first
  - question_count: literal number of "?" characters
  - has_truncation_language: "in short", "long story short", "anyway, "...
  - activity_offered: breathing/grounding exercises, "would you like to try"...
  - sections_present: longform section tags (ingredients, steps, lyrics)
"""

import re

from .models import IntentContract, ResponseMeta

ABBREVIATIONS = [
    "dr.", "mr.", "mrs.", "ms.", "st.", "jr.", "sr.",
    "e.g.", "i.e.", "vs.", "etc.", "prof.", "gen.",
]
ABBREVIATION_PLACEHOLDER = "§"

_ABBREVIATION_PATTERNS = [
    (re.compile(r"\b" + re.escape(abbr), re.IGNORECASE), abbr.replace(".", ABBREVIATION_PLACEHOLDER))
    for abbr in ABBREVIATIONS
]
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

TRUNCATION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bin short\b",
        r"\bto keep it brief\b",
        r"\blong story short\b",
        r"\betc\.?\s*etc",
        r"\banyway,?\s",
        r"\bto summarize\b",
        r"\bwithout going into detail\b",
        r"\bi'll keep this short\b",
        r"\bbriefly\b",
    )
]

ACTIVITY_OFFER_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bbreathing exercise\b",
        r"\bgrounding exercise\b",
        r"\btry an activity\b",
        r"\bsuggest an activity\b",
        r"\bwant to try\b.*\b(exercise|activity|breathing|grounding|maze|walking)\b",
        r"\bhow about a\b.*\b(breathing|grounding|exercise|activity)\b",
        r"\blet me suggest\b",
        r"\bwould you like to try\b",
    )
]

_INGREDIENTS = re.compile(r"\bingredients?\b", re.IGNORECASE)
_STEPS_KEYWORD = re.compile(r"\b(steps?|instructions?|directions?)\b", re.IGNORECASE)
_ENUMERATED_ITEM = re.compile(r"\d[.)]\s")
_LYRICS = re.compile(r"\b(verse|chorus|bridge)\b", re.IGNORECASE)


def count_sentences(text: str | None) -> int:
    if not text or not text.strip():
        return 0

    cleaned = text
    for pattern, replacement in _ABBREVIATION_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)

    return sum(1 for s in _SENTENCE_BOUNDARY.split(cleaned) if s.strip())


def count_questions(text: str | None) -> int:
    if not text:
        return 0
    return text.count("?")


def has_truncation_language(text: str | None) -> bool:
    if not text:
        return False
    return any(p.search(text) for p in TRUNCATION_PATTERNS)


def has_activity_offer(text: str | None) -> bool:
    if not text:
        return False
    return any(p.search(text) for p in ACTIVITY_OFFER_PATTERNS)


def detect_sections(text: str | None) -> frozenset[str]:
    """Detect longform section tags by keyword plus light structure.

    "steps" needs both a steps/instructions keyword and an enumerated
    list item ("1. " or "1) ").
    """
    if not text:
        return frozenset()

    sections = set()
    if _INGREDIENTS.search(text):
        sections.add("ingredients")
    if _STEPS_KEYWORD.search(text) and _ENUMERATED_ITEM.search(text):
        sections.add("steps")
    if _LYRICS.search(text):
        sections.add("lyrics")
    return frozenset(sections)


def compute_meta(text: str | None, contract: IntentContract | None = None) -> ResponseMeta:
    """Compute ResponseMeta for the final text.

    Empty or None text yields a zero-valued meta. Section detection only
    runs for longform contracts.
    """
    if not isinstance(text, str):
        text = ""
    mode = contract.mode if contract is not None else "micro"

    return ResponseMeta(
        sentence_count=count_sentences(text),
        question_count=count_questions(text),
        has_truncation_language=has_truncation_language(text),
        activity_offered=has_activity_offer(text),
        sections_present=detect_sections(text) if mode == "longform" else frozenset(),
        char_count=len(text),
        mode_expected=mode,
    )
