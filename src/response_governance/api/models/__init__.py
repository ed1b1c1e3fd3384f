"""Pydantic models for API request/response contracts."""
from .requests import RespondRequest
from .responses import HealthResponse
