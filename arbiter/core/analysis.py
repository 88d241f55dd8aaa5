"""Prompt requirements analysis.

An external model rates how much coding, reasoning, math and context a
prompt needs (1-100 each). Any failure yields the neutral vector so that
heuristic selection always has valid input.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import asdict, dataclass
from math import isfinite
from typing import Any

import structlog

from arbiter.core.rate_limiter import TokenBucket

logger = structlog.get_logger()

REQUIREMENT_FIELDS = ("coding", "reasoning", "math", "context")
NEUTRAL_SCORE = 50
MIN_SCORE = 1
MAX_SCORE = 100


def _clamp(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


@dataclass(frozen=True)
class PromptRequirements:
    """How demanding a prompt is along each capability axis."""

    coding: float = NEUTRAL_SCORE
    reasoning: float = NEUTRAL_SCORE
    math: float = NEUTRAL_SCORE
    context: float = NEUTRAL_SCORE

    def __post_init__(self) -> None:
        for name in REQUIREMENT_FIELDS:
            object.__setattr__(self, name, _clamp(float(getattr(self, name))))

    @classmethod
    def neutral(cls) -> "PromptRequirements":
        return cls()

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


ANALYSIS_PROMPT = (
    "Rate how much the following prompt requires each capability, on a scale "
    "from 1 to 100.\n"
    'Prompt: "{prompt}"\n\n'
    'Reply ONLY with JSON of the form {{"coding": n, "reasoning": n, "math": n, "context": n}}.'
)

_JSON_OBJECT = re.compile(r"\{.*?\}", re.DOTALL)


def parse_requirements(text: str) -> PromptRequirements | None:
    """Extract a requirements vector from a model reply.

    Tolerates code fences and surrounding prose. Returns None when no JSON
    object with all four numeric fields is present.
    """
    if not text:
        return None
    for match in _JSON_OBJECT.finditer(text):
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        values: dict[str, float] = {}
        for name in REQUIREMENT_FIELDS:
            value = data.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                break
            try:
                values[name] = float(value)
            except ValueError:
                break
            if not isfinite(values[name]):
                break
        else:
            return PromptRequirements(**values)
    return None


class RequirementsAnalyzer:
    """Turns a prompt into ``PromptRequirements`` via the analysis backend."""

    def __init__(
        self,
        backend: Any,
        limiter: TokenBucket | None = None,
        timeout: float = 15.0,
        max_output_tokens: int = 100,
    ) -> None:
        self.backend = backend
        self.limiter = limiter
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens

    async def analyze(self, prompt: str) -> PromptRequirements:
        requirements, _ = await self.assess(prompt)
        return requirements

    async def assess(self, prompt: str) -> tuple[PromptRequirements, bool]:
        """Like ``analyze``, also reporting whether the neutral fallback was used."""
        if self.limiter is not None:
            await self.limiter.acquire()
        try:
            response = await asyncio.wait_for(
                self.backend.generate(
                    ANALYSIS_PROMPT.format(prompt=prompt),
                    max_output_tokens=self.max_output_tokens,
                ),
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("analysis_failed", error=str(exc) or type(exc).__name__)
            return PromptRequirements.neutral(), True

        requirements = parse_requirements(response.content)
        if requirements is None:
            logger.warning("analysis_unparseable", reply=response.content[:100])
            return PromptRequirements.neutral(), True

        logger.info("prompt_analyzed", **requirements.to_dict())
        return requirements, False
