"""Model registry - the fixed set of chat-completion backends and their profiles.

Benchmark figures are percentages on public reasoning/coding/math suites and
only need to be comparable with each other; they drive heuristic selection.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Benchmarks:
    """Static capability profile of one model."""

    reasoning: float
    coding: float
    math: float
    context_window: int
    speed: float | None = None
    efficiency: float | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ModelDescriptor:
    """Identity and capability profile of a registered model."""

    id: str
    expertise: str
    benchmarks: Benchmarks

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expertise": self.expertise,
            "benchmarks": self.benchmarks.to_dict(),
        }


DEFAULT_REGISTRY: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="meta/llama3-70b-instruct",
        expertise="General purpose reasoning and long-form answers",
        benchmarks=Benchmarks(
            reasoning=82.0, coding=84.3, math=50.4, context_window=8192, speed=0.6,
        ),
    ),
    ModelDescriptor(
        id="google/gemma-7b",
        expertise="Research-oriented, compact general model",
        benchmarks=Benchmarks(
            reasoning=64.3, coding=89.2, math=46.4, context_window=8192,
            speed=0.9, efficiency=0.9,
        ),
    ),
    ModelDescriptor(
        id="deepseek-ai/deepseek-r1-distill-llama-8b",
        expertise="Distilled step-by-step reasoning, code and math",
        benchmarks=Benchmarks(
            reasoning=49.0, coding=94.2, math=89.1, context_window=32768,
            speed=0.8, efficiency=0.95,
        ),
    ),
)


def get_descriptor(
    model_id: str,
    registry: tuple[ModelDescriptor, ...] = DEFAULT_REGISTRY,
) -> ModelDescriptor | None:
    """Look up a descriptor by ID, or None when it is not registered."""
    for descriptor in registry:
        if descriptor.id == model_id:
            return descriptor
    return None
