# src/recursa/gateway.py
"""LM gateway: the single call layer for every language-model invocation.

The gateway classifies failures, retries transient ones with exponential
backoff, falls back to a second provider once, validates structured
output against a pydantic schema, and bounds the number of in-flight calls.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from recursa.exceptions import (
    FatalCallError,
    GatewayError,
    GatewayExhaustedError,
    ProviderUnavailableError,
    SchemaValidationError,
    TransientCallError,
)
from recursa.models import TokenUsage

if TYPE_CHECKING:
    from recursa.providers.base import ModelProvider, ProviderResponse
    from recursa.settings import Settings

logger = logging.getLogger(__name__)

# Lowercased substrings that mark an unclassified error as retryable
RETRYABLE_PATTERNS = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "quota exceeded",
    "service unavailable",
    "internal error",
    "timeout",
    "timed out",
    "connection reset",
    "temporary failure",
    "server error",
    "resource exhausted",
    "resource_exhausted",
    "429",
    "503",
)

REINFORCED_SUFFIX = """

IMPORTANT: Your previous response could not be used ({error}).
Respond with ONLY a single valid JSON object in exactly the requested format.
Do not add explanations or markdown."""

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: before retry n, wait min(base_delay * 2**(n-1), max_delay)."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry: int) -> float:
        return min(self.base_delay * 2 ** (retry - 1), self.max_delay)


@dataclass(frozen=True)
class CallResult:
    """Outcome of a gateway call.

    result is the response text for free-form calls, or a validated
    instance of the requested schema.
    """

    result: Any
    usage: TokenUsage
    provider: str
    attempts: int


class _ProviderExhausted(Exception):
    def __init__(self, attempts: int, last_error: GatewayError | None) -> None:
        super().__init__(str(last_error))
        self.attempts = attempts
        self.last_error = last_error


def classify_error(error: Exception, provider: str | None = None) -> GatewayError:
    """Map any provider exception onto the gateway's error taxonomy.

    Errors already in the taxonomy are returned unchanged. Others are
    transient if they are timeouts or connection errors, or if their
    message matches a known retryable pattern; everything else is fatal.
    """
    if isinstance(error, GatewayError):
        return error
    if isinstance(error, (TimeoutError, ConnectionError)):
        return TransientCallError(str(error) or type(error).__name__, provider=provider)
    message = str(error).lower()
    if any(pattern in message for pattern in RETRYABLE_PATTERNS):
        return TransientCallError(str(error), provider=provider)
    return FatalCallError(f"{type(error).__name__}: {error}", provider=provider)


def extract_json(text: str) -> Any:
    """Parse JSON from model output, tolerating code fences and surrounding prose.

    Raises:
        json.JSONDecodeError: If no JSON value can be parsed.
    """
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        text = match.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            return json.loads(text[start : end + 1])
        raise


class LMGateway:
    """Resilient, provider-agnostic call layer.

    Example:
        from recursa.providers.litellm import LiteLLMProvider

        gateway = LMGateway(
            primary=LiteLLMProvider(model="gemini/gemini-3-flash-preview"),
            fallback=LiteLLMProvider(model="openai/gpt-5-mini"),
            retry_policy=RetryPolicy(max_retries=5, base_delay=0.5),
            max_concurrent=4,
        )
        result = await gateway.call(prompt, schema=RelevanceResult)
    """

    def __init__(
        self,
        primary: ModelProvider,
        fallback: ModelProvider | None = None,
        retry_policy: RetryPolicy | None = None,
        max_concurrent: int = 4,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the gateway.

        Args:
            primary: Provider used for every call while it works.
            fallback: Provider tried once when the primary is unavailable or
                exhausts its retries.
            retry_policy: Backoff settings for the primary. Default: RetryPolicy().
            max_concurrent: Maximum provider calls in flight at once.
            sleep: Coroutine used for backoff waits (injectable for tests).
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.primary = primary
        self.fallback = fallback
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrent = max_concurrent
        self._sleep = sleep
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None
        self.usage = TokenUsage()
        self.call_count = 0

    @classmethod
    def from_settings(
        cls,
        primary: ModelProvider,
        settings: Settings,
        fallback: ModelProvider | None = None,
    ) -> LMGateway:
        return cls(
            primary=primary,
            fallback=fallback,
            retry_policy=RetryPolicy(
                max_retries=settings.num_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
            ),
            max_concurrent=settings.max_concurrent_llm_calls,
        )

    def _get_semaphore(self) -> asyncio.Semaphore:
        # One semaphore per event loop; sync callers may run several loops
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._semaphore_loop = loop
        return self._semaphore

    async def call(
        self,
        prompt: str,
        schema: type[BaseModel] | None = None,
        *,
        temperature: float | None = None,
    ) -> CallResult:
        """Run one logical model call.

        Args:
            prompt: The rendered prompt.
            schema: Pydantic model the JSON response must validate against.
                None for a free-text call.
            temperature: Sampling temperature. None for the model default.

        Returns:
            CallResult with the text (or validated schema instance), the
            token usage of every attempt, the provider that answered and
            the total number of attempts.

        Raises:
            FatalCallError: Authentication or malformed request. Never retried.
            ProviderUnavailableError: No provider could be reached.
            GatewayExhaustedError: Every attempt failed transiently.
            SchemaValidationError: Output stayed invalid after a reinforced retry.
        """
        response, provider, attempts, usage = await self._route(prompt, schema, temperature)
        if schema is None:
            return CallResult(result=response.text, usage=usage, provider=provider, attempts=attempts)

        try:
            parsed = self._parse(response, schema)
        except (ValueError, ValidationError) as first_error:
            logger.warning(
                "Invalid %s output from %s, retrying with reinforced instructions: %s",
                schema.__name__,
                provider,
                _short(first_error),
            )
            reinforced = prompt + REINFORCED_SUFFIX.format(error=_short(first_error))
            response, provider, more_attempts, more_usage = await self._route(
                reinforced, schema, temperature
            )
            attempts += more_attempts
            usage = usage + more_usage
            try:
                parsed = self._parse(response, schema)
            except (ValueError, ValidationError) as e:
                raise SchemaValidationError(
                    f"{schema.__name__} output invalid after reinforced retry: {_short(e)}",
                    schema_name=schema.__name__,
                    raw_output=response.text,
                    provider=provider,
                ) from e
        return CallResult(result=parsed, usage=usage, provider=provider, attempts=attempts)

    @staticmethod
    def _parse(response: ProviderResponse, schema: type[BaseModel]) -> BaseModel:
        data = response.data if response.data is not None else extract_json(response.text)
        return schema.model_validate(data)

    async def _route(
        self,
        prompt: str,
        schema: type[BaseModel] | None,
        temperature: float | None,
    ) -> tuple[ProviderResponse, str, int, TokenUsage]:
        """Call the primary with retries, then the fallback once."""
        attempts = 0
        exhausted = False
        last_error: GatewayError | None = None
        candidates: list[tuple[ModelProvider, int]] = [
            (self.primary, self.retry_policy.max_attempts)
        ]
        if self.fallback is not None:
            candidates.append((self.fallback, 1))

        for position, (provider, max_attempts) in enumerate(candidates):
            if position > 0:
                logger.warning(
                    "Provider %s failed (%s); trying fallback %s once",
                    self.primary.name,
                    last_error,
                    provider.name,
                )
            if not provider.is_available():
                if last_error is None:
                    last_error = ProviderUnavailableError(
                        f"Provider {provider.name} is not available", provider=provider.name
                    )
                continue
            try:
                response, used = await self._attempt(
                    provider, prompt, schema, temperature, max_attempts
                )
            except ProviderUnavailableError as e:
                attempts += 1
                last_error = e
            except _ProviderExhausted as e:
                attempts += e.attempts
                exhausted = True
                last_error = e.last_error
            else:
                return response, provider.name, attempts + used, response.usage

        if not exhausted and isinstance(last_error, ProviderUnavailableError):
            raise last_error
        raise GatewayExhaustedError(
            f"Model call failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            last_error=last_error,
            provider=last_error.provider if last_error else None,
        ) from last_error

    async def _attempt(
        self,
        provider: ModelProvider,
        prompt: str,
        schema: type[BaseModel] | None,
        temperature: float | None,
        max_attempts: int,
    ) -> tuple[ProviderResponse, int]:
        last_error: GatewayError | None = None
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = self.retry_policy.delay_for(attempt - 1)
                logger.warning(
                    "Retrying %s (attempt %d/%d) in %.2fs: %s",
                    provider.name,
                    attempt,
                    max_attempts,
                    delay,
                    last_error,
                )
                await self._sleep(delay)
            try:
                response = await self._invoke(provider, prompt, schema, temperature)
            except Exception as e:
                error = classify_error(e, provider.name)
                if not isinstance(error, TransientCallError):
                    if error is e:
                        raise
                    raise error from e
                last_error = error
                continue
            return response, attempt
        raise _ProviderExhausted(max_attempts, last_error)

    async def _invoke(
        self,
        provider: ModelProvider,
        prompt: str,
        schema: type[BaseModel] | None,
        temperature: float | None,
    ) -> ProviderResponse:
        async with self._get_semaphore():
            self.call_count += 1
            if schema is None:
                response = await provider.agenerate(prompt, temperature)
            else:
                response = await provider.agenerate_structured(
                    prompt, schema.model_json_schema(), temperature
                )
        self.usage = self.usage + response.usage
        return response


def _short(error: BaseException, limit: int = 300) -> str:
    text = str(error).replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."
