"""Outbound envelope -- canonical shape, mode derivation, mode invariants."""

from .models import EnvelopeMode, ShapeIssue, ShapeMeta, ShapeValidation, SoundState, mode_label
from .shape_contract import (
    ALLOWED_KEYS,
    NULLABLE_OPTIONAL_KEYS,
    build_shape_meta,
    derive_response_mode,
    normalize_response_envelope,
    validate_response_envelope,
)

__all__ = [
    "ALLOWED_KEYS",
    "NULLABLE_OPTIONAL_KEYS",
    "EnvelopeMode",
    "ShapeIssue",
    "ShapeMeta",
    "ShapeValidation",
    "SoundState",
    "build_shape_meta",
    "derive_response_mode",
    "mode_label",
    "normalize_response_envelope",
    "validate_response_envelope",
]
