"""Request Coordinator - the public entry point of the orchestration layer.

Two pipelines:

* ``judge_route``: fan out to every model, then let the fan-out selector
  (judge by default) pick one answer.
* ``select_route``: analyze the prompt, pick one model from its benchmark
  profile, and generate with that model only.

All shared state (cache, rate limiters, HTTP clients) is built by the caller
and injected here.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from arbiter.core.analysis import PromptRequirements, RequirementsAnalyzer
from arbiter.core.cache import ResponseCache
from arbiter.core.fanout import FanoutOrchestrator
from arbiter.core.invoker import ModelInvoker, RetryingInvoker
from arbiter.core.rate_limiter import RateLimiters
from arbiter.core.registry import (
    DEFAULT_REGISTRY,
    Benchmarks,
    ModelDescriptor,
    get_descriptor,
)
from arbiter.core.selectors import HeuristicSelector, JudgeSelector, Selector
from arbiter.errors import AllProvidersFailed, ClientError

logger = structlog.get_logger()

ANALYSIS_UNAVAILABLE = "Prompt analysis unavailable, selected model from neutral requirements"


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


@dataclass
class JudgeEnvelope:
    best_response: str
    chosen_model: str
    candidates: list[str]
    response_time_ms: int
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "bestResponse": self.best_response,
            "chosenModel": self.chosen_model,
            "responseTime": self.response_time_ms,
            "candidates": self.candidates,
        }
        if self.warning:
            body["warning"] = self.warning
        return body


@dataclass
class SelectEnvelope:
    response: str
    model: ModelDescriptor
    analysis: PromptRequirements
    response_time_ms: int
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "response": self.response,
            "model": self.model.to_dict(),
            "analysis": self.analysis.to_dict(),
            "responseTime": self.response_time_ms,
        }
        if self.warning:
            body["warning"] = self.warning
        return body


def validate_prompt(prompt: Any) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ClientError("Non-empty prompt is required")
    return prompt


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


@dataclass
class RequestCoordinator:
    fanout: FanoutOrchestrator
    invoker: RetryingInvoker
    fanout_selector: Selector
    heuristic: HeuristicSelector
    analyzer: RequirementsAnalyzer
    registry: tuple[ModelDescriptor, ...] = DEFAULT_REGISTRY
    cache: ResponseCache | None = None
    limiters: RateLimiters | None = None
    clock: Callable[[], float] = field(default=time.monotonic)

    @classmethod
    def build(
        cls,
        chat_backend: Any,
        judge_backend: Any,
        settings: Any,
        registry: tuple[ModelDescriptor, ...] = DEFAULT_REGISTRY,
        cache: ResponseCache | None = None,
        limiters: RateLimiters | None = None,
    ) -> "RequestCoordinator":
        """Wire the full pipeline from settings and two provider backends."""
        cache = cache if cache is not None else ResponseCache(settings.cache_max_entries)
        limiters = limiters if limiters is not None else RateLimiters.from_settings(settings)

        invoker = RetryingInvoker(
            ModelInvoker(
                chat_backend, cache, limiter=limiters.generation, timeout=settings.model_timeout,
            ),
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
        )
        analyzer = RequirementsAnalyzer(
            judge_backend,
            limiter=limiters.analysis,
            timeout=settings.analysis_timeout,
            max_output_tokens=settings.analysis_max_output_tokens,
        )
        heuristic = HeuristicSelector(
            registry=registry, default_model=settings.default_model, analyzer=analyzer,
        )
        if settings.fanout_selector == "heuristic":
            fanout_selector: Selector = heuristic
        else:
            fanout_selector = JudgeSelector(
                judge_backend,
                limiter=limiters.judge,
                timeout=settings.judge_timeout,
                excerpt_chars=settings.judge_excerpt_chars,
            )

        return cls(
            fanout=FanoutOrchestrator(
                invoker, registry=registry, min_length=settings.min_candidate_length,
            ),
            invoker=invoker,
            fanout_selector=fanout_selector,
            heuristic=heuristic,
            analyzer=analyzer,
            registry=registry,
            cache=cache,
            limiters=limiters,
        )

    def _elapsed_ms(self, start: float) -> int:
        return int(round((self.clock() - start) * 1000))

    def describe(self, model_id: str) -> ModelDescriptor:
        descriptor = get_descriptor(model_id, self.registry)
        if descriptor is None:
            return ModelDescriptor(
                id=model_id,
                expertise="Unregistered model",
                benchmarks=Benchmarks(reasoning=0, coding=0, math=0, context_window=0),
            )
        return descriptor

    async def judge_route(self, prompt: Any) -> JudgeEnvelope:
        start = self.clock()
        prompt = validate_prompt(prompt)

        candidates = await self.fanout.gather_candidates(prompt, self.registry)
        if not candidates:
            raise AllProvidersFailed("All model providers failed")

        selection = await self.fanout_selector.select(prompt, candidates)

        envelope = JudgeEnvelope(
            best_response=selection.candidate.content,
            chosen_model=selection.candidate.model,
            candidates=[c.model for c in candidates],
            response_time_ms=self._elapsed_ms(start),
            warning=selection.warning if selection.degraded else None,
        )
        logger.info(
            "judge_route_complete",
            model=envelope.chosen_model,
            candidates=len(candidates),
            degraded=selection.degraded,
            response_time_ms=envelope.response_time_ms,
        )
        return envelope

    async def select_route(self, prompt: Any, language: str | None = None) -> SelectEnvelope:
        start = self.clock()
        prompt = validate_prompt(prompt)

        requirements, degraded = await self.analyzer.assess(prompt)
        model_id = self.heuristic.select_optimal_model(requirements)
        text = await self.invoker.invoke(model_id, prompt)

        envelope = SelectEnvelope(
            response=text,
            model=self.describe(model_id),
            analysis=requirements,
            response_time_ms=self._elapsed_ms(start),
            warning=ANALYSIS_UNAVAILABLE if degraded else None,
        )
        logger.info(
            "select_route_complete",
            model=model_id,
            language=language,
            degraded=degraded,
            response_time_ms=envelope.response_time_ms,
        )
        return envelope

    def get_stats(self) -> dict[str, Any]:
        return {
            "models": [d.id for d in self.registry],
            "fanout_selector": self.fanout_selector.name,
            "cache": self.cache.get_stats() if self.cache is not None else None,
            "rate_limits": self.limiters.get_stats() if self.limiters is not None else None,
        }
