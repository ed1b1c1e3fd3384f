"""
Provider-agnostic async LLM client used as the rewrite capability.

Features:
  - Prompt split into stable (system/context) and dynamic parts so providers
    can cache the prefix (Anthropic cache_control, OpenAI prefix caching)
  - Token tracking per call (input, output, cached, cost estimate)
  - Timeout enforcement on every call
  - Security: prompt sanitization, size limits, no secrets in logs

Supports: Anthropic (Claude), OpenAI (GPT).

Unlike a chat client, failures are raised as LLMError rather than returned
as placeholder text: the rewrite engine must never mistake an error string
for a rewritten message. There are no retries here; callers get one call.

    client = create_client()
    text = await client.complete(CacheablePrompt(user_message="..."), temperature=0.3)
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..security.prompt_guard import sanitize_for_prompt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_PROMPT_LENGTH = 60_000

ANTHROPIC_COST_PER_1K_INPUT = 0.003
ANTHROPIC_COST_PER_1K_CACHED = 0.0003
ANTHROPIC_COST_PER_1K_OUTPUT = 0.015
OPENAI_COST_PER_1K_INPUT = 0.00015
OPENAI_COST_PER_1K_CACHED = 0.000075
OPENAI_COST_PER_1K_OUTPUT = 0.0006

SUPPORTED_PROVIDERS = ("anthropic", "openai")


class LLMError(RuntimeError):
    """Raised when a provider call fails, times out or is misconfigured.

    ``retryable`` marks transient provider failures. The rewrite engine never
    retries; the flag is for callers and logs.
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


_RETRYABLE_TYPES = frozenset({
    "RateLimitError",
    "APITimeoutError",
    "InternalServerError",
    "ServiceUnavailableError",
    "APIConnectionError",
    "Timeout",
    "ConnectError",
})


def is_retryable(error: BaseException) -> bool:
    """Check if an error is transient and worth retrying."""
    return type(error).__name__ in _RETRYABLE_TYPES


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class CacheablePrompt:
    """
    Separates prompt into cacheable (stable) and dynamic parts.

      - system: Editor instructions (cached -- never changes)
      - context: Per-request constraints (cached when repeated)
      - user_message: The text to work on (never cached)
    """

    system: str = ""
    context: str = ""
    user_message: str = ""

    def to_flat_prompt(self) -> str:
        """Flatten to a single string (for logging and simple providers)."""
        return "\n\n".join(p for p in (self.system, self.context, self.user_message) if p)

    @property
    def total_length(self) -> int:
        return len(self.system) + len(self.context) + len(self.user_message)


@dataclass
class TokenUsage:
    """Token usage tracking for a single LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    cache_hit: bool = False

    def __post_init__(self):
        self.total_tokens = self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    provider: str = ""
    latency_ms: float = 0.0
    cached: bool = False


@runtime_checkable
class TextGenerator(Protocol):
    """The single operation the governance pipeline needs from a model.

    Implementations must raise on failure and return the generated text
    otherwise. Cancellation of the awaiting task must abort the call.
    """

    async def complete(
        self,
        prompt: CacheablePrompt,
        *,
        temperature: float = 0.3,
        max_tokens: int = 400,
    ) -> str: ...


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """
    Provider-agnostic LLM client implementing TextGenerator.

    Usage:
        client = LLMClient(provider="openai", model="gpt-4o-mini", timeout=15)
        text = await client.complete(prompt, temperature=0.3, max_tokens=400)
    """

    def __init__(
        self,
        provider: str = "anthropic",
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ):
        self._provider = provider.lower()
        if self._provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        self._model = model or self._default_model()
        self._api_key = api_key or self._load_api_key()
        self._timeout = timeout
        self._max_prompt_length = max_prompt_length
        self._client: Any = None
        self._total_usage = TokenUsage()

        self._init_client()
        logger.info(
            f"[LLM] Initialized {self._provider} client "
            f"(model={self._model}, timeout={self._timeout}s)"
        )

    def _default_model(self) -> str:
        defaults = {
            "anthropic": "claude-3-5-haiku-latest",
            "openai": "gpt-4o-mini",
        }
        return defaults[self._provider]

    def _load_api_key(self) -> str:
        env_var = "OPENAI_API_KEY" if self._provider == "openai" else "ANTHROPIC_API_KEY"
        key = os.environ.get(env_var, "")
        if not key:
            logger.warning(f"[LLM] {env_var} not set -- calls will fail")
        return key

    def _init_client(self) -> None:
        """Initialize the provider SDK. Missing SDKs leave the client unset."""
        try:
            if self._provider == "anthropic":
                import anthropic

                self._client = anthropic.AsyncAnthropic(
                    api_key=self._api_key, timeout=self._timeout, max_retries=0
                )
            else:
                import openai

                self._client = openai.AsyncOpenAI(
                    api_key=self._api_key, timeout=self._timeout, max_retries=0
                )
        except ImportError:
            logger.error(
                f"[LLM] {self._provider} SDK not installed. "
                f"Install the '{self._provider}' extra."
            )
            self._client = None

    async def complete(
        self,
        prompt: CacheablePrompt,
        *,
        temperature: float = 0.3,
        max_tokens: int = 400,
    ) -> str:
        response = await self.call(prompt, temperature=temperature, max_tokens=max_tokens)
        return response.content

    async def call(
        self,
        prompt: str | CacheablePrompt,
        role: str = "rewrite",
        temperature: float = 0.3,
        max_tokens: int = 400,
    ) -> LLMResponse:
        """
        Make exactly one provider call under the configured timeout.

        Args:
            prompt: String or CacheablePrompt. Strings become the user message.
            role: Semantic role hint for logs; not sent to the provider.
            temperature: Sampling temperature.
            max_tokens: Output length cap.

        Raises:
            LLMError: client not initialized, timeout, or provider failure.
        """
        if isinstance(prompt, str):
            prompt = CacheablePrompt(user_message=prompt)
        prompt = self._sanitize_prompt(prompt)

        if self._client is None:
            raise LLMError("client_not_initialized")

        start = time.time()
        try:
            response = await asyncio.wait_for(
                self._call_provider(prompt, temperature, max_tokens),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMError("timeout", retryable=True) from e
        except LLMError:
            raise
        except Exception as e:
            logger.warning(f"[LLM] {self._provider}/{role} call failed: {type(e).__name__}")
            raise LLMError(f"{type(e).__name__}: {e}", retryable=is_retryable(e)) from e

        response.latency_ms = (time.time() - start) * 1000
        self._track_usage(response.usage)
        logger.debug(
            f"[LLM] {self._provider}/{role}: "
            f"{response.usage.input_tokens}in "
            f"({response.usage.cached_input_tokens} cached) + "
            f"{response.usage.output_tokens}out "
            f"${response.usage.estimated_cost_usd:.4f} "
            f"({response.latency_ms:.0f}ms)"
        )
        return response

    def _sanitize_prompt(self, prompt: CacheablePrompt) -> CacheablePrompt:
        limit = self._max_prompt_length // 3
        return CacheablePrompt(
            system=sanitize_for_prompt(prompt.system, max_length=limit),
            context=sanitize_for_prompt(prompt.context, max_length=limit),
            user_message=sanitize_for_prompt(prompt.user_message, max_length=limit),
        )

    async def _call_provider(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        if self._provider == "anthropic":
            return await self._call_anthropic(prompt, temperature, max_tokens)
        return await self._call_openai(prompt, temperature, max_tokens)

    async def _call_anthropic(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        """Anthropic Claude with explicit prompt caching (cache_control)."""
        system_blocks = [
            {"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}
            for text in (prompt.system, prompt.context)
            if text
        ]
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt.user_message}],
        }
        if system_blocks:
            kwargs["system"] = system_blocks

        response = await self._client.messages.create(**kwargs)

        usage_data = response.usage
        cached = getattr(usage_data, "cache_read_input_tokens", 0) or 0
        input_tok = getattr(usage_data, "input_tokens", 0) or 0
        output_tok = getattr(usage_data, "output_tokens", 0) or 0
        cost = (
            (input_tok - cached) * ANTHROPIC_COST_PER_1K_INPUT / 1000
            + cached * ANTHROPIC_COST_PER_1K_CACHED / 1000
            + output_tok * ANTHROPIC_COST_PER_1K_OUTPUT / 1000
        )
        content = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )

        return LLMResponse(
            content=content,
            usage=TokenUsage(
                input_tokens=input_tok,
                output_tokens=output_tok,
                cached_input_tokens=cached,
                estimated_cost_usd=round(cost, 6),
                cache_hit=cached > 0,
            ),
            model=self._model,
            provider="anthropic",
            cached=cached > 0,
        )

    async def _call_openai(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        """OpenAI with automatic prefix caching."""
        messages = []
        if prompt.system:
            messages.append({"role": "system", "content": prompt.system})
        if prompt.context:
            messages.append({"role": "system", "content": prompt.context})
        messages.append({"role": "user", "content": prompt.user_message})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        usage_data = response.usage
        input_tok = usage_data.prompt_tokens if usage_data else 0
        output_tok = usage_data.completion_tokens if usage_data else 0
        details = getattr(usage_data, "prompt_tokens_details", None)
        cached_tok = (getattr(details, "cached_tokens", 0) or 0) if details else 0
        cost = (
            (input_tok - cached_tok) * OPENAI_COST_PER_1K_INPUT / 1000
            + cached_tok * OPENAI_COST_PER_1K_CACHED / 1000
            + output_tok * OPENAI_COST_PER_1K_OUTPUT / 1000
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            usage=TokenUsage(
                input_tokens=input_tok,
                output_tokens=output_tok,
                cached_input_tokens=cached_tok,
                estimated_cost_usd=round(cost, 6),
                cache_hit=cached_tok > 0,
            ),
            model=self._model,
            provider="openai",
            cached=cached_tok > 0,
        )

    def _track_usage(self, usage: TokenUsage) -> None:
        self._total_usage.input_tokens += usage.input_tokens
        self._total_usage.output_tokens += usage.output_tokens
        self._total_usage.cached_input_tokens += usage.cached_input_tokens
        self._total_usage.total_tokens += usage.total_tokens
        self._total_usage.estimated_cost_usd += usage.estimated_cost_usd

    @property
    def total_usage(self) -> TokenUsage:
        """Cumulative token usage across all calls in this client's lifetime."""
        return self._total_usage

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model


# =============================================================================
# FACTORY
# =============================================================================


def create_client(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    **kwargs,
) -> LLMClient:
    """
    Create an LLM client, auto-detecting provider from environment if not specified.

    Detection order:
      1. Explicit provider argument
      2. OPENAI_API_KEY set -> openai
      3. ANTHROPIC_API_KEY set -> anthropic
      4. Default: openai
    """
    if provider is None:
        if os.environ.get("OPENAI_API_KEY"):
            provider = "openai"
        elif os.environ.get("ANTHROPIC_API_KEY"):
            provider = "anthropic"
        else:
            provider = "openai"
            logger.warning("[LLM] No API key found. Defaulting to openai.")

    return LLMClient(provider=provider, model=model, api_key=api_key, **kwargs)
