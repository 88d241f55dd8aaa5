"""Core module - provider clients, invocation, fan-out, selection, coordination."""

from arbiter.core.cache import ResponseCache
from arbiter.core.coordinator import RequestCoordinator
from arbiter.core.llm_client import ChatCompletionClient, GeminiClient, LLMResponse
from arbiter.core.rate_limiter import RateLimiters, TokenBucket

__all__ = [
    "ChatCompletionClient",
    "GeminiClient",
    "LLMResponse",
    "RateLimiters",
    "RequestCoordinator",
    "ResponseCache",
    "TokenBucket",
]
