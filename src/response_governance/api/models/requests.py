"""
Pydantic request models -- the API contract for callers of the pipeline.

  POST /api/v1/respond -> RespondRequest

Field names follow the wire envelope: camelCase aliases are accepted for the
flags the chat client already sends.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RespondRequest(BaseModel):
    """A generated response to govern and finalize."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field("", description="The generated response text", alias="message")
    response_source: str = Field("model", description="Which handler produced the text")
    contract: dict[str, Any] | None = Field(
        None, description="Intent contract for this turn (None = no contract)"
    )
    is_crisis_mode: bool = Field(False, alias="isCrisisMode")
    is_onboarding_active: bool = Field(False, alias="isOnboardingActive")
    contract_aware: bool = Field(True, alias="contractAware")
    user_id: str | None = Field(None, alias="userId")
    request_id: str | None = Field(None, alias="requestId")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional envelope fields (audio_action, ui_action, ...)",
    )
    status_code: int = Field(200, description="Status the envelope is sent with")
