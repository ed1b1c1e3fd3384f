"""
Pydantic response models -- what the API returns besides the envelope.

The respond route returns the finalized envelope as-is (its shape is owned by
envelope.shape_contract), so only the health probe needs a model here.
"""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    uptime_seconds: float = 0.0
    enforcement_enabled: bool = True
    enforcement_pct: float = 100
    rewrite_available: bool = False
