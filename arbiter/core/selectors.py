"""Candidate selection strategies.

``JudgeSelector`` asks an external model to pick among generated answers.
``HeuristicSelector`` scores models from their static benchmark profile
against a prompt's requirements, either before generation
(``select_optimal_model``) or over an existing fan-out (``select``).
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from arbiter.core.analysis import PromptRequirements, RequirementsAnalyzer
from arbiter.core.fanout import Candidate
from arbiter.core.rate_limiter import TokenBucket
from arbiter.core.registry import DEFAULT_REGISTRY, ModelDescriptor, get_descriptor
from arbiter.errors import JudgeFailure

logger = structlog.get_logger()

CONTEXT_WEIGHT = 25


@dataclass
class Selection:
    """Outcome of a selection over a candidate list."""

    candidate: Candidate
    index: int
    strategy: str
    degraded: bool = False
    warning: str | None = None


class Selector(ABC):
    """Picks one member of a non-empty candidate list."""

    name: str = ""

    @abstractmethod
    async def select(self, prompt: str, candidates: Sequence[Candidate]) -> Selection:
        ...


def clamp_index(index: int, count: int) -> int:
    return max(0, min(index, count - 1))


# ---------------------------------------------------------------------------
# Judge strategy
# ---------------------------------------------------------------------------

JUDGE_PROMPT = (
    'Select the best response (0-{last}) for: "{prompt}"\n\n'
    "{options}\n\n"
    "Reply ONLY with the number."
)

_LABELS = re.compile(r"[\"'`*]|\b(?:option|answer|response|index)\b", re.IGNORECASE)
_DIGITS = re.compile(r"\d+")


def build_judge_prompt(prompt: str, candidates: Sequence[Candidate], excerpt_chars: int) -> str:
    options = "\n\n".join(
        f"OPTION {i}:\n{c.content[:excerpt_chars]}" for i, c in enumerate(candidates)
    )
    return JUDGE_PROMPT.format(last=len(candidates) - 1, prompt=prompt, options=options)


def parse_best_index(text: str, candidate_count: int) -> int | None:
    """First run of digits in *text*, clamped into ``[0, candidate_count - 1]``.

    Returns None when the reply contains no digits at all.
    """
    if candidate_count < 1:
        raise ValueError("candidate_count must be >= 1")
    cleaned = _LABELS.sub(" ", text or "")
    match = _DIGITS.search(cleaned)
    if match is None:
        return None
    return clamp_index(int(match.group(0)), candidate_count)


class JudgeSelector(Selector):
    """Advisory judge: any failure falls back to the first candidate."""

    name = "judge"

    def __init__(
        self,
        backend: Any,
        limiter: TokenBucket | None = None,
        timeout: float = 15.0,
        excerpt_chars: int = 200,
    ) -> None:
        self.backend = backend
        self.limiter = limiter
        self.timeout = timeout
        self.excerpt_chars = excerpt_chars

    async def _judge(self, prompt: str, candidates: Sequence[Candidate]) -> int:
        if self.limiter is not None:
            await self.limiter.acquire()
        judge_prompt = build_judge_prompt(prompt, candidates, self.excerpt_chars)
        try:
            response = await asyncio.wait_for(
                self.backend.generate(judge_prompt), timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise JudgeFailure(f"judge timed out after {self.timeout:g}s") from exc

        index = parse_best_index(response.content, len(candidates))
        if index is None:
            raise JudgeFailure(f"no index in judge reply: {response.content[:50]!r}")
        return index

    async def select(self, prompt: str, candidates: Sequence[Candidate]) -> Selection:
        if not candidates:
            raise ValueError("cannot select from an empty candidate list")
        if len(candidates) == 1:
            return Selection(candidate=candidates[0], index=0, strategy=self.name)

        try:
            index = await self._judge(prompt, candidates)
        except Exception as exc:
            logger.warning("judgment_failed", error=str(exc) or type(exc).__name__)
            return Selection(
                candidate=candidates[0],
                index=0,
                strategy=self.name,
                degraded=True,
                warning=f"Judge unavailable, defaulted to first candidate: {exc}",
            )

        logger.info("judgment_complete", index=index, model=candidates[index].model)
        return Selection(candidate=candidates[index], index=index, strategy=self.name)


# ---------------------------------------------------------------------------
# Heuristic strategy
# ---------------------------------------------------------------------------


def score_model(descriptor: ModelDescriptor, requirements: PromptRequirements) -> float:
    """Benchmark-weighted fit of one model for the given requirements."""
    bench = descriptor.benchmarks
    if bench.context_window > 0:
        context_weight = min(requirements.context / bench.context_window, 1)
    else:
        context_weight = 1
    return (
        bench.coding * requirements.coding / 100
        + bench.reasoning * requirements.reasoning / 100
        + bench.math * requirements.math / 100
        + context_weight * CONTEXT_WEIGHT
    )


class HeuristicSelector(Selector):
    """Static capability scoring over the model registry."""

    name = "heuristic"

    def __init__(
        self,
        registry: tuple[ModelDescriptor, ...] = DEFAULT_REGISTRY,
        default_model: str = DEFAULT_REGISTRY[0].id,
        analyzer: RequirementsAnalyzer | None = None,
    ) -> None:
        self.registry = registry
        self.default_model = default_model
        self.analyzer = analyzer

    def rank(self, requirements: PromptRequirements) -> list[tuple[str, float]]:
        """(model, score) for every registered model, in registry order."""
        return [(d.id, score_model(d, requirements)) for d in self.registry]

    def select_optimal_model(self, requirements: PromptRequirements) -> str:
        best_model: str | None = None
        best_score = float("-inf")
        for model, score in self.rank(requirements):
            # strict comparison keeps the earliest model on ties
            if score > best_score:
                best_model, best_score = model, score

        if best_model is None:
            logger.warning("heuristic_no_model", fallback=self.default_model)
            return self.default_model

        logger.info("model_selected", model=best_model, score=round(best_score, 2))
        return best_model

    async def select(self, prompt: str, candidates: Sequence[Candidate]) -> Selection:
        if not candidates:
            raise ValueError("cannot select from an empty candidate list")

        if self.analyzer is not None:
            requirements = await self.analyzer.analyze(prompt)
        else:
            requirements = PromptRequirements.neutral()

        best_index = 0
        best_score = float("-inf")
        for i, candidate in enumerate(candidates):
            descriptor = get_descriptor(candidate.model, self.registry)
            if descriptor is None:
                continue
            score = score_model(descriptor, requirements)
            if score > best_score:
                best_index, best_score = i, score

        return Selection(
            candidate=candidates[best_index], index=best_index, strategy=self.name,
        )
