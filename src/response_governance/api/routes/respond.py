"""
Respond API -- govern one generated response and return the final envelope.

  POST /api/v1/respond -- enforce the intent contract, finalize the envelope

The pipeline runs as a task raced against client disconnect; when the caller
goes away the task (and any in-flight rewrite call) is cancelled.

Security:
  - Input size validation
  - Identifier validation for user / request ids
  - Rewrite prompt wraps the original text as untrusted content
"""

import asyncio
import logging
import uuid

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from ...enforcement import ContractEnforcementPipeline, ValidationContext
from ...orchestration import finalize_response
from ...security import (
    ValidationError,
    validate_dict_size,
    validate_identifier,
    validate_length,
    validate_status_code,
)
from ..models.requests import RespondRequest

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_TEXT_LENGTH = 100_000
MAX_PAYLOAD_BYTES = 256_000
DISCONNECT_POLL_SECONDS = 0.5

# Client disconnected before a response was produced (nginx convention).
CLIENT_CLOSED_STATUS = 499


def _validate(body: RespondRequest) -> None:
    validate_length(body.text, "text", max_length=MAX_TEXT_LENGTH)
    validate_length(body.response_source, "response_source", min_length=1, max_length=64)
    validate_status_code(body.status_code)
    if body.user_id is not None:
        validate_identifier(body.user_id, "user_id")
    if body.request_id is not None:
        validate_identifier(body.request_id, "request_id")
    if body.contract is not None:
        validate_dict_size(body.contract, "contract", max_size_bytes=MAX_PAYLOAD_BYTES)
    validate_dict_size(body.payload, "payload", max_size_bytes=MAX_PAYLOAD_BYTES)


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _run_until_disconnect(request: Request, coro):
    """Await ``coro``; cancel it and return None if the client disconnects first."""
    work = asyncio.ensure_future(coro)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not work.done():
            work.cancel()
    return work.result() if work in done else None


@router.post("/respond")
async def respond(body: RespondRequest, request: Request) -> JSONResponse:
    """
    Enforce the intent contract on a generated response and finalize it.

    The returned JSON is the canonical envelope, including ``_schema_meta``
    (what enforcement did) and ``_shape_meta`` (envelope validity and mode).
    """
    try:
        _validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    request_id = body.request_id or uuid.uuid4().hex[:12]
    pipeline: ContractEnforcementPipeline = request.app.state.pipeline
    context = ValidationContext(
        is_crisis_mode=body.is_crisis_mode,
        is_onboarding_active=body.is_onboarding_active,
        contract_aware=body.contract_aware,
    )

    outcome = await _run_until_disconnect(
        request,
        pipeline.enforce(
            body.text,
            body.contract,
            context,
            user_id=body.user_id,
            request_id=request_id,
        ),
    )
    if outcome is None:
        logger.info(f"[RespondAPI] {request_id}: client disconnected, enforcement cancelled")
        return JSONResponse({"ok": False, "error": "client_disconnected"}, status_code=CLIENT_CLOSED_STATUS)

    payload = {
        **body.payload,
        "message": outcome.text,
        "response_source": body.response_source,
    }
    if body.is_crisis_mode:
        payload["isCrisisMode"] = True

    final = finalize_response(
        payload,
        request_id,
        status_code=body.status_code,
        schema=outcome,
    )
    return JSONResponse(final.body, status_code=final.status_code)
