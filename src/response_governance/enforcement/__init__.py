"""
Response Contract Enforcement -- structural governance of generated responses.

Runs after the model produces a response and before the envelope is finalized.
Contract violations get ONE constrained rewrite; a failed rewrite is reported,
never retried.

Components:
  - compute_meta: deterministic structural features of the text
  - validate_response_schema: ResponseMeta vs IntentContract, with bypasses
  - rewrite_to_schema: the single repair call to the text generator
  - should_enforce / stable_hash: deterministic percentage rollout
  - assert_next_move: log-only conversational move assertions
  - ContractEnforcementPipeline: orchestrates all of the above
"""

from .meta_extractor import compute_meta
from .models import (
    IntentContract,
    ResponseMeta,
    RewriteAttempt,
    ValidationContext,
    ValidationResult,
)
from .next_move import MoveAssertionResult, assert_next_move
from .pipeline import ContractEnforcementPipeline, EnforcementOutcome
from .rewrite import build_rewrite_prompt, rewrite_to_schema
from .rollout import should_enforce, stable_hash
from .schema_validator import validate_response_schema

__all__ = [
    "ContractEnforcementPipeline",
    "EnforcementOutcome",
    "IntentContract",
    "MoveAssertionResult",
    "ResponseMeta",
    "RewriteAttempt",
    "ValidationContext",
    "ValidationResult",
    "assert_next_move",
    "build_rewrite_prompt",
    "compute_meta",
    "rewrite_to_schema",
    "should_enforce",
    "stable_hash",
    "validate_response_schema",
]
