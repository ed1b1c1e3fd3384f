"""
Response shape contract -- canonical outbound envelope and mode invariants.

normalize_response_envelope() turns any response-like object (including
output of older, non-contract-aware code paths) into the wire envelope:

  - message / response_source are always strings
  - the nullable optional fields are always present (None when absent)
  - a legacy string sound_state becomes {current, changed, reason}
  - keys outside the allow-list are removed and listed in _stripped_keys
  - underscore-prefixed keys are diagnostic blocks and pass through
  - _shape_meta carries validity, derived mode and field-presence flags

validate_response_envelope() enforces per-mode invariants. These are about
which envelope fields may coexist with a mode, not about the text itself.
Crisis envelopes must never carry playback, UI, activity or ambient state.

Neither function raises, whatever the input.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .models import (
    EnvelopeMode,
    ModeLabel,
    ShapeIssue,
    ShapeMeta,
    ShapeValidation,
    SoundState,
    as_mode,
    mode_label,
)

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("message", "response_source")

NULLABLE_OPTIONAL_KEYS = (
    "audio_action",
    "ui_action",
    "sound_state",
    "activity_suggestion",
    "client_state_patch",
    "next_question",
    "pattern_metadata",
    "_schema_meta",
    "_shape_meta",
)

ALLOWED_KEYS = frozenset({
    "message",
    "response_source",
    "audio_action",
    "ui_action",
    "sound_state",
    "activity_suggestion",
    "client_state_patch",
    "next_question",
    "pattern_metadata",
    "isCrisisMode",
    "isCrisisMultiMessage",
    "crisis_resources",
    "traceStudios",
    "_schema_meta",
    "_shape_meta",
    "ok",
    "requestId",
    "request_id",
    "messages",
    "deduped",
    "_provenance",
    "_schema_rewrite",
    "posture",
    "detected_state",
    "posture_confidence",
    "insight",
    "action_source",
    "echo_offer",
    "onboarding",
    "greeting",
    "next_step",
    "error",
    "mode",
    "doorway",
    "suggestion",
    "curiosity_hook",
})

DIAGNOSTIC_PREFIX = "_"

CRISIS_SOURCE = "crisis"
ONBOARDING_SOURCE = "onboarding_script"
STUDIOS_SOURCE = "trace_studios"
CONVERSATION_SOURCES = frozenset({"model", "insight", "activity_followup", "dedup_cache"})
CONVERSATION_UI_ACTIONS = frozenset({"OPEN_JOURNAL_MODAL", "OPEN_SPOTIFY", "OPEN_ACTIVITY"})
MUSIC_INTENT = "music"

LEGACY_SOUND_STATE_REASON = "normalized_legacy"


# =============================================================================
# FIELD ACCESS
# =============================================================================


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, Mapping) else None


def _activity_name(suggestion: Any) -> Any:
    if isinstance(suggestion, str):
        return suggestion or None
    return _get(suggestion, "name")


def _sound_current(sound_state: Any) -> Any:
    if isinstance(sound_state, str):
        return sound_state or None
    return _get(sound_state, "current")


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def _has_client_patch(patch: Any) -> bool:
    if isinstance(patch, Mapping):
        return len(patch) > 0
    return bool(patch)


# =============================================================================
# MODE
# =============================================================================


def derive_response_mode(payload: Any) -> ModeLabel:
    """Derive the envelope mode once, by priority.

    crisis flag/source > onboarding source > studios > provenance primaryMode
    > known conversational sources > system.
    """
    if not isinstance(payload, Mapping):
        return EnvelopeMode.SYSTEM

    source = payload.get("response_source")
    if not isinstance(source, str):
        source = ""
    if payload.get("isCrisisMode") is True or source == CRISIS_SOURCE:
        return EnvelopeMode.CRISIS
    if source == ONBOARDING_SOURCE:
        return EnvelopeMode.ONBOARDING

    primary_mode = _get(payload.get("_provenance"), "primaryMode")
    if primary_mode == EnvelopeMode.STUDIOS.value or source == STUDIOS_SOURCE:
        return EnvelopeMode.STUDIOS
    if isinstance(primary_mode, str) and primary_mode:
        return as_mode(primary_mode)
    if source in CONVERSATION_SOURCES:
        return EnvelopeMode.CONVERSATION
    return EnvelopeMode.SYSTEM


# =============================================================================
# VALIDATION
# =============================================================================


def _crisis_issues(env: Mapping) -> list[ShapeIssue]:
    issues = []
    if env.get("audio_action") is not None:
        issues.append(ShapeIssue("crisis_has_audio", "warn", "audio_action in crisis"))
    if env.get("ui_action") is not None:
        issues.append(ShapeIssue("crisis_has_ui", "warn", "ui_action in crisis"))
    if _activity_name(env.get("activity_suggestion")) is not None:
        issues.append(ShapeIssue("crisis_has_activity", "warn", "activity_suggestion in crisis"))
    if _sound_current(env.get("sound_state")) is not None:
        issues.append(ShapeIssue("crisis_has_soundstate", "warn", "sound_state in crisis"))
    return issues


def _onboarding_issues(env: Mapping) -> list[ShapeIssue]:
    issues = []
    source = env.get("response_source")
    if source != ONBOARDING_SOURCE:
        issues.append(ShapeIssue("onboarding_wrong_source", "warn", str(source)))
    if env.get("audio_action"):
        issues.append(ShapeIssue("onboarding_has_audio", "info", "audio_action in onboarding"))
    if env.get("ui_action"):
        issues.append(ShapeIssue("onboarding_has_ui", "info", "ui_action in onboarding"))
    return issues


def _studios_issues(env: Mapping) -> list[ShapeIssue]:
    issues = []
    suggestion = env.get("activity_suggestion")
    if suggestion is not None and (
        _activity_name(suggestion) is not None or _get(suggestion, "should_navigate") is True
    ):
        issues.append(ShapeIssue(
            "studios_has_activity", "warn", "activity_suggestion with active content in studios mode"
        ))
    if _sound_current(env.get("sound_state")) is not None:
        issues.append(ShapeIssue(
            "studios_has_soundstate", "info", "sound_state.current set in studios mode (globally allowed)"
        ))
    return issues


def _conversation_issues(env: Mapping) -> list[ShapeIssue]:
    issues = []
    if env.get("audio_action"):
        intent = _get(env.get("_provenance"), "traceIntent") or env.get("_traceIntent")
        if _get(intent, "intentType") != MUSIC_INTENT:
            issues.append(ShapeIssue(
                "conversation_unsolicited_audio", "info", "audio_action in conversation without music intent"
            ))
    ui_action = env.get("ui_action")
    if ui_action:
        ui_type = _get(ui_action, "type") or ""
        if not isinstance(ui_type, str) or ui_type not in CONVERSATION_UI_ACTIONS:
            issues.append(ShapeIssue("conversation_unexpected_ui_action", "info", str(ui_type)))
    return issues


_MODE_CHECKS = {
    EnvelopeMode.CRISIS: _crisis_issues,
    EnvelopeMode.ONBOARDING: _onboarding_issues,
    EnvelopeMode.STUDIOS: _studios_issues,
    EnvelopeMode.CONVERSATION: _conversation_issues,
}


def validate_response_envelope(
    envelope: Any, mode: ModeLabel | None = None
) -> ShapeValidation:
    """Check required keys and the invariants of the envelope's mode.

    ``mode`` overrides derivation (used to hold an envelope to a mode it
    claims but does not derive to, e.g. onboarding with the wrong source).
    """
    if not isinstance(envelope, Mapping):
        return ShapeValidation(
            ok=False,
            mode=EnvelopeMode.SYSTEM,
            issues=[ShapeIssue("missing_payload", "error", type(envelope).__name__)],
        )

    derived = mode if mode is not None else derive_response_mode(envelope)
    issues = [
        ShapeIssue("missing_required", "error", key)
        for key in REQUIRED_KEYS
        if envelope.get(key) is None
    ]

    check = _MODE_CHECKS.get(derived) if isinstance(derived, EnvelopeMode) else None
    if check is not None:
        issues.extend(check(envelope))

    for key in _string_list(envelope.get("_coerced")):
        issues.append(ShapeIssue(f"coerced_{key}", "info", f"{key} replaced with default"))
    stripped = _string_list(envelope.get("_stripped_keys"))
    if stripped:
        issues.append(ShapeIssue("stripped_unknown_keys", "info", ", ".join(stripped)))

    return ShapeValidation(
        ok=not any(i.blocking for i in issues),
        mode=derived,
        issues=issues,
    )


def build_shape_meta(envelope: Mapping, validation: ShapeValidation) -> dict[str, Any]:
    return ShapeMeta(
        ok=validation.ok,
        mode=mode_label(validation.mode),
        has_audio_action=bool(envelope.get("audio_action")),
        has_ui_action=bool(envelope.get("ui_action")),
        has_client_patch=_has_client_patch(envelope.get("client_state_patch")),
        issues=validation.codes,
    ).to_block()


# =============================================================================
# NORMALIZATION
# =============================================================================


def _missing_payload_envelope(payload: Any) -> dict[str, Any]:
    out: dict[str, Any] = {
        "message": "",
        "response_source": "system",
        "isCrisisMode": False,
    }
    for key in NULLABLE_OPTIONAL_KEYS:
        out[key] = None
    out["_shape_meta"] = ShapeMeta(
        ok=False, mode=EnvelopeMode.SYSTEM.value, issues=["missing_payload"]
    ).to_block()
    logger.warning(f"[ShapeContract] Non-object payload ({type(payload).__name__}) normalized")
    return out


def normalize_response_envelope(payload: Any) -> dict[str, Any]:
    """Canonicalize an arbitrary response object into the wire envelope.

    Usage:
        envelope = normalize_response_envelope({"message": "hi", "foo": 1})
        envelope["_stripped_keys"]  # ["foo"]
    """
    if not isinstance(payload, Mapping):
        return _missing_payload_envelope(payload)

    out = dict(payload)
    # Diagnostic lists are rebuilt here; earlier entries survive only if well-formed.
    coerced = _string_list(out.pop("_coerced", None))
    previously_stripped = _string_list(out.pop("_stripped_keys", None))

    if not isinstance(out.get("message"), str):
        if "message" in out and "message" not in coerced:
            coerced.append("message")
        out["message"] = ""
    if not isinstance(out.get("response_source"), str):
        if "response_source" in out and "response_source" not in coerced:
            coerced.append("response_source")
        out["response_source"] = "unknown"

    for key in NULLABLE_OPTIONAL_KEYS:
        out.setdefault(key, None)
    out.setdefault("isCrisisMode", False)

    sound_state = out.get("sound_state")
    if isinstance(sound_state, str):
        out["sound_state"] = (
            SoundState(current=sound_state, changed=False, reason=LEGACY_SOUND_STATE_REASON).model_dump()
            if sound_state
            else None
        )

    stripped = [
        key for key in out
        if key not in ALLOWED_KEYS and not (isinstance(key, str) and key.startswith(DIAGNOSTIC_PREFIX))
    ]
    for key in stripped:
        del out[key]
    if stripped:
        logger.debug(f"[ShapeContract] Stripped unknown keys: {stripped}")
    stripped_names = previously_stripped + [
        str(k) for k in stripped if str(k) not in previously_stripped
    ]
    if stripped_names:
        out["_stripped_keys"] = stripped_names
    if coerced:
        out["_coerced"] = coerced

    validation = validate_response_envelope(out)
    out["_shape_meta"] = build_shape_meta(out, validation)
    return out
