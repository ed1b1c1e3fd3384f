"""Eval fixtures -- canned text generators, contract-aware pipeline."""

from unittest.mock import AsyncMock

import pytest

from response_governance.config import GovernanceConfig
from response_governance.enforcement import ContractEnforcementPipeline


@pytest.fixture
def canned_generator():
    """Text generator that returns a fixed, compliant rewrite without API calls."""
    generator = AsyncMock()
    generator.complete.return_value = (
        "I hear how heavy this week has been. It makes sense you feel drained."
    )
    return generator


@pytest.fixture
def pipeline(canned_generator):
    return ContractEnforcementPipeline(
        generator=canned_generator,
        config=GovernanceConfig(enforcement_pct=100, metrics_log=False),
    )
