"""
Input Validators - validation for caller input at the HTTP boundary.

Parse at the boundary: validate and type-check all external input
before it enters the pipeline. The pipeline itself is total and never
raises; these helpers are what turns bad requests into HTTP 400s.
"""

import json
import logging
import re

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:@-]*$")


class ValidationError(ValueError):
    """Raised when input validation fails. Contains a user-friendly message."""

    pass


def validate_length(
    value: str,
    field_name: str = "input",
    min_length: int = 0,
    max_length: int = 100_000,
) -> str:
    """Validate string length is within bounds."""
    if len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters")
    if len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def validate_identifier(value: str, field_name: str = "identifier", max_length: int = 128) -> str:
    """Validate an opaque identifier such as a user or request id."""
    if not value or len(value) > max_length or not _IDENTIFIER.match(value):
        raise ValidationError(
            f"{field_name} must be 1-{max_length} characters of letters, numbers "
            f"and _ . : @ -"
        )
    return value


def validate_status_code(value: int, field_name: str = "status_code") -> int:
    """Validate an HTTP status code the caller wants the envelope sent with."""
    if not 200 <= value <= 599:
        raise ValidationError(f"{field_name} must be between 200 and 599 (got {value})")
    return value


def validate_dict_size(
    data: dict,
    field_name: str = "data",
    max_size_bytes: int = 1_000_000,
) -> dict:
    """Validate that a serialized dict does not exceed a maximum byte size."""
    serialized = json.dumps(data, default=str)
    if len(serialized) > max_size_bytes:
        raise ValidationError(
            f"{field_name} exceeds maximum size of {max_size_bytes} bytes"
        )
    return data
