"""
LLM Client -- the external text-generation capability behind the rewrite engine.

Usage:
    from .llm import create_client

    client = create_client()  # Auto-detects provider from env
    text = await client.complete(CacheablePrompt(user_message="Rewrite this"))
"""

from .client import CacheablePrompt, LLMClient, LLMError, LLMResponse, TextGenerator, create_client

__all__ = [
    "CacheablePrompt",
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "TextGenerator",
    "create_client",
]
