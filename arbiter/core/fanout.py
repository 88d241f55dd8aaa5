"""Concurrent fan-out of one prompt to every registered model."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

import structlog

from arbiter.core.invoker import RetryingInvoker
from arbiter.core.registry import DEFAULT_REGISTRY, ModelDescriptor

logger = structlog.get_logger()


@dataclass
class Candidate:
    """One successful, admitted response from one model."""

    model: str
    content: str
    timestamp: float = field(default_factory=time.time)


class FanoutOrchestrator:
    """Issue retrying calls to all models at once and keep what survives.

    Every call is allowed to settle; one model failing never cancels the
    others. Candidates come back in registry order, not completion order.
    """

    def __init__(
        self,
        invoker: RetryingInvoker,
        registry: tuple[ModelDescriptor, ...] = DEFAULT_REGISTRY,
        min_length: int = 20,
    ) -> None:
        self.invoker = invoker
        self.registry = registry
        self.min_length = min_length

    async def _call(self, model: str, prompt: str) -> Candidate:
        content = await self.invoker.invoke(model, prompt)
        return Candidate(model=model, content=content)

    async def gather_candidates(
        self,
        prompt: str,
        registry: tuple[ModelDescriptor, ...] | None = None,
    ) -> list[Candidate]:
        models = [d.id for d in (self.registry if registry is None else registry)]
        results = await asyncio.gather(
            *(self._call(model, prompt) for model in models),
            return_exceptions=True,
        )

        candidates: list[Candidate] = []
        for model, result in zip(models, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("model_failed", model=model, error=str(result))
                continue
            if len(result.content) < self.min_length:
                logger.info(
                    "candidate_rejected",
                    model=model,
                    length=len(result.content),
                    min_length=self.min_length,
                )
                continue
            candidates.append(result)

        logger.info("fanout_complete", requested=len(models), admitted=len(candidates))
        return candidates
