"""Types for the outbound response envelope and its shape diagnostics."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EnvelopeMode(str, Enum):
    """Closed set of envelope modes. Upstream provenance may add dynamic labels."""

    CRISIS = "crisis"
    ONBOARDING = "onboarding"
    STUDIOS = "studios"
    CONVERSATION = "conversation"
    SYSTEM = "system"


ModeLabel = EnvelopeMode | str


def mode_label(mode: ModeLabel) -> str:
    return mode.value if isinstance(mode, EnvelopeMode) else str(mode)


def as_mode(label: str) -> ModeLabel:
    """Map a provenance label onto the enum when it names a known mode."""
    try:
        return EnvelopeMode(label)
    except ValueError:
        return label


@dataclass
class ShapeIssue:
    """One finding about the envelope.

    Attributes:
        code: e.g. "crisis_has_audio".
        severity: "error" and "warn" make the envelope invalid; "info" does not.
        detail: Free text for humans.
    """

    code: str
    severity: str  # "error", "warn" or "info"
    detail: str = ""

    @property
    def blocking(self) -> bool:
        return self.severity in ("error", "warn")


@dataclass
class ShapeValidation:
    ok: bool = True
    mode: ModeLabel = EnvelopeMode.SYSTEM
    issues: list[ShapeIssue] = field(default_factory=list)

    @property
    def codes(self) -> list[str]:
        return [i.code for i in self.issues]


class SoundState(BaseModel):
    """Structured ambient-state descriptor."""

    current: str | None = None
    changed: bool = False
    reason: str | None = None


class ShapeMeta(BaseModel):
    """The ``_shape_meta`` diagnostic block attached to every envelope."""

    ok: bool = True
    mode: str = EnvelopeMode.SYSTEM.value
    has_audio_action: bool = False
    has_ui_action: bool = False
    has_client_patch: bool = False
    issues: list[str] = Field(default_factory=list)

    def to_block(self) -> dict[str, Any]:
        return self.model_dump()
