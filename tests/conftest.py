"""Shared fixtures -- contracts, canned texts, mock text generator."""

from unittest.mock import AsyncMock

import pytest

from response_governance.config import GovernanceConfig
from response_governance.enforcement import IntentContract, ValidationContext

# Four sentences, one question, one activity offer.
OVERLONG_TEXT = (
    "I hear how heavy this week has been. It makes sense you feel drained. "
    "Would you like to try a breathing exercise? Sometimes slowing down helps."
)
COMPLIANT_TEXT = "I hear how heavy this week has been. It makes sense you feel drained."


@pytest.fixture
def micro_contract():
    return IntentContract.coerce({
        "mode": "micro",
        "maxSentences": 2,
        "allowQuestions": 1,
        "allowActivities": "never",
    })


@pytest.fixture
def aware_context():
    return ValidationContext(contract_aware=True)


@pytest.fixture
def config():
    return GovernanceConfig(enforcement_enabled=True, enforcement_pct=100, metrics_log=True)


@pytest.fixture
def mock_generator():
    """Text generator that returns a compliant rewrite without API calls."""
    generator = AsyncMock()
    generator.complete.return_value = COMPLIANT_TEXT
    return generator


@pytest.fixture
def overlong_text():
    return OVERLONG_TEXT


@pytest.fixture
def compliant_text():
    return COMPLIANT_TEXT
