"""Single-model invocation: cache lookup, deadline, and bounded linear retry."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from arbiter.core.cache import ResponseCache
from arbiter.core.llm_client import LLMResponse
from arbiter.core.rate_limiter import TokenBucket
from arbiter.errors import ModelTimeout, ProviderError

logger = structlog.get_logger()


class CompletionBackend(Protocol):
    async def complete(self, model: str, prompt: str) -> LLMResponse: ...


class ModelInvoker:
    """One attempt against one model, memoized in the shared cache.

    A cache hit returns before any I/O and takes no rate-limit permit.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        cache: ResponseCache,
        limiter: TokenBucket | None = None,
        timeout: float = 20.0,
    ) -> None:
        self.backend = backend
        self.cache = cache
        self.limiter = limiter
        self.timeout = timeout

    async def invoke(self, model: str, prompt: str) -> str:
        cached = self.cache.get(model, prompt)
        if cached is not None:
            logger.debug("cache_hit", model=model)
            return cached

        if self.limiter is not None:
            await self.limiter.acquire()

        try:
            response = await asyncio.wait_for(
                self.backend.complete(model, prompt), timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ModelTimeout(model, self.timeout) from exc

        self.cache.set(model, prompt, response.content)
        return response.content


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "model_attempt_failed",
        model=retry_state.args[0] if retry_state.args else None,
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome else None,
        next_wait_s=retry_state.next_action.sleep if retry_state.next_action else None,
    )


class RetryingInvoker:
    """Wraps ``ModelInvoker`` with up to ``max_retries + 1`` attempts.

    The wait before attempt ``n + 1`` is ``base_delay * n`` (linear). The
    last error is re-raised unchanged.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        max_retries: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.invoker = invoker
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    async def invoke(self, model: str, prompt: str, max_retries: int | None = None) -> str:
        retries = self.max_retries if max_retries is None else max_retries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception_type((ModelTimeout, ProviderError)),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(self.invoker.invoke, model, prompt)
