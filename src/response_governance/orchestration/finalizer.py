"""
Response Finalizer -- the last step before a response crosses the API boundary.

Order per request:
  1. sanitize the message text (control chars, NBSP, trim)
  2. mirror ``message`` into ``messages`` when no list is present
  3. normalize the envelope (allow-list, defaults, legacy migrations)
  4. validate mode invariants on the normalized envelope
  5. attach ``_shape_meta`` (and ``_schema_meta`` from the enforcement run)
  6. emit [RESPONSE_SHAPE] and [APP_TRACE] telemetry lines
  7. hand (status_code, body) to the transport layer

Every return path of a handler should go through finalize_response() so all
clients see the same shape. Never raises.
"""

import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..enforcement import EnforcementOutcome
from ..envelope import (
    EnvelopeMode,
    ShapeValidation,
    build_shape_meta,
    mode_label,
    normalize_response_envelope,
    validate_response_envelope,
)
from ..telemetry import APP_TRACE_TAG, RESPONSE_SHAPE_TAG, emit

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_NBSP = "\u00a0"


def sanitize_display_text(text: Any) -> Any:
    """Strip control characters, normalize non-breaking spaces, trim.

    Non-string values are returned unchanged.
    """
    if not isinstance(text, str) or not text:
        return text
    return _CONTROL_CHARS.sub("", text).replace(_NBSP, " ").strip()


@dataclass
class ResponseEnrichment:
    """Request-scoped state folded into non-system responses.

    Attributes:
        sound_state: Current ambient state, used when the payload has none.
        user_message_count: Messages the user has sent this session.
        assistant_message_count: Assistant messages before this one.
    """

    sound_state: dict[str, Any] | None = None
    user_message_count: int | None = None
    assistant_message_count: int | None = None


@dataclass
class FinalizedResponse:
    status_code: int
    body: dict[str, Any]
    shape: ShapeValidation = field(default_factory=ShapeValidation)


def _is_crisis(payload: Mapping) -> bool:
    return payload.get("isCrisisMode") is True or payload.get("response_source") == "crisis"


def _enrich(payload: dict[str, Any], enrichment: ResponseEnrichment) -> None:
    if not payload.get("sound_state") and enrichment.sound_state and not _is_crisis(payload):
        payload["sound_state"] = dict(enrichment.sound_state)

    patch = payload.get("client_state_patch")
    if not isinstance(patch, dict):
        patch = {}
    else:
        patch = dict(patch)

    users = enrichment.user_message_count
    assistants = enrichment.assistant_message_count
    if users is not None:
        patch.setdefault("userMessageCount", users)
    if assistants is not None:
        patch.setdefault("assistantMessageCount", assistants + 1)
    if users is not None and assistants is not None:
        patch.setdefault("soundscapeCadenceMet", users >= 2)
    patch.setdefault("lastActivityTimestamp", int(time.time() * 1000))
    payload["client_state_patch"] = patch


def _mirror_messages(body: dict[str, Any]) -> None:
    messages = body.get("messages")
    if isinstance(messages, list):
        body["messages"] = [sanitize_display_text(m) for m in messages]

    message = body.get("message")
    if not isinstance(message, str) or not message:
        return
    if not isinstance(body.get("messages"), list) or not body["messages"]:
        body["messages"] = [message]


def finalize_response(
    payload: Any,
    request_id: str | None = None,
    *,
    status_code: int = 200,
    response_source: str | None = None,
    provenance_path: str | None = None,
    schema: EnforcementOutcome | None = None,
    enrichment: ResponseEnrichment | None = None,
) -> FinalizedResponse:
    """Finalize a raw handler payload into the canonical envelope.

    Usage:
        outcome = await pipeline.enforce(text, contract, ctx, user_id=uid, request_id=rid)
        final = finalize_response(
            {"message": outcome.text, "response_source": "model"},
            rid,
            schema=outcome,
        )
        return JSONResponse(final.body, status_code=final.status_code)
    """
    if isinstance(payload, Mapping):
        source = payload.get("response_source") or response_source or "unknown"
        base: Any = {"ok": payload.get("ok") is not False, **payload, "response_source": source}

        if enrichment is not None and source != "system":
            _enrich(base, enrichment)

        if "message" in base:
            base["message"] = sanitize_display_text(base["message"])
        if not base.get("request_id"):
            base["request_id"] = request_id
        if not base.get("requestId"):
            base["requestId"] = request_id
        if schema is not None:
            base["_schema_meta"] = schema.schema_meta()
        _mirror_messages(base)
    else:
        base = payload

    body = normalize_response_envelope(base)
    # A non-object payload stays invalid even though its replacement envelope is well-formed.
    shape = validate_response_envelope(body if isinstance(base, Mapping) else base)
    body["_shape_meta"] = build_shape_meta(body, shape)
    body["request_id"] = request_id or body.get("requestId")

    mode = mode_label(shape.mode)
    shape_meta = body["_shape_meta"]
    emit(RESPONSE_SHAPE_TAG, {
        "requestId": request_id,
        "ok": shape.ok,
        "mode": mode,
        "issues_count": len(shape.issues),
        "top_issues": shape.codes,
        "response_source": body.get("response_source"),
        "has_audio_action": shape_meta["has_audio_action"],
        "has_ui_action": shape_meta["has_ui_action"],
        "has_client_patch": shape_meta["has_client_patch"],
    })

    provenance = body.get("_provenance")
    path = provenance.get("path") if isinstance(provenance, Mapping) else None
    emit(APP_TRACE_TAG, {
        "requestId": request_id,
        "response_source": body.get("response_source"),
        "mode": mode,
        "provenance_path": path or provenance_path or "unknown",
        "status": status_code,
        "crisis_active": body.get("isCrisisMode") is True or shape.mode == EnvelopeMode.CRISIS,
    })

    if not shape.ok:
        logger.warning(f"[Finalizer] {request_id or '-'}: {mode} envelope invalid: {shape.codes}")

    return FinalizedResponse(status_code=status_code, body=body, shape=shape)
