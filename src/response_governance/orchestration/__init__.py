"""Orchestration -- finalizing governed responses for the transport layer."""
from .finalizer import (
    FinalizedResponse,
    ResponseEnrichment,
    finalize_response,
    sanitize_display_text,
)
