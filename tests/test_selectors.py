"""Tests for the judge and heuristic selection strategies."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from arbiter.core.analysis import PromptRequirements
from arbiter.core.fanout import Candidate
from arbiter.core.llm_client import LLMResponse
from arbiter.core.rate_limiter import TokenBucket
from arbiter.core.registry import DEFAULT_REGISTRY, Benchmarks, ModelDescriptor
from arbiter.core.selectors import (
    HeuristicSelector,
    JudgeSelector,
    Selector,
    build_judge_prompt,
    clamp_index,
    parse_best_index,
    score_model,
)
from arbiter.errors import ProviderError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _candidates(n: int = 3) -> list[Candidate]:
    return [Candidate(model=f"model-{i}", content=f"answer number {i} " * 20) for i in range(n)]


def _judge_backend(reply=None, error=None):
    backend = AsyncMock()
    if error is not None:
        backend.generate = AsyncMock(side_effect=error)
    else:
        backend.generate = AsyncMock(return_value=LLMResponse(content=reply, model="judge"))
    return backend


def _descriptor(model_id, coding, reasoning=50.0, math=50.0, context_window=8192):
    return ModelDescriptor(
        id=model_id,
        expertise="test",
        benchmarks=Benchmarks(
            reasoning=reasoning, coding=coding, math=math, context_window=context_window,
        ),
    )


# ---------------------------------------------------------------------------
# Index parsing
# ---------------------------------------------------------------------------


class TestParseBestIndex:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("1", 1),
            ("  2\n", 2),
            ('"0"', 0),
            ("Option 2", 2),
            ("I think option 1 is best", 1),
            ("**1**", 1),
            ("OPTION 0: best", 0),
        ],
    )
    def test_extracts_first_number(self, text, expected):
        assert parse_best_index(text, 3) == expected

    @pytest.mark.parametrize("text", ["7", "999", "option 42"])
    def test_out_of_range_is_clamped(self, text):
        assert parse_best_index(text, 3) == 2

    @pytest.mark.parametrize("text", ["", "none of them", "option", None])
    def test_no_digits(self, text):
        assert parse_best_index(text, 3) is None

    def test_index_always_in_range(self):
        for text in ["0", "1", "2", "3", "-5", "10000000000000000000", "a1b2"]:
            for count in (1, 2, 5):
                index = parse_best_index(text, count)
                assert index is not None
                assert 0 <= index <= count - 1

    def test_invalid_count(self):
        with pytest.raises(ValueError):
            parse_best_index("1", 0)

    def test_clamp_index(self):
        assert clamp_index(-1, 3) == 0
        assert clamp_index(5, 3) == 2
        assert clamp_index(1, 3) == 1


class TestBuildJudgePrompt:
    def test_truncates_and_numbers_options(self):
        candidates = [Candidate("a", "x" * 500), Candidate("b", "short answer here, fine")]
        prompt = build_judge_prompt("What is 2+2?", candidates, excerpt_chars=200)

        assert 'Select the best response (0-1) for: "What is 2+2?"' in prompt
        assert "OPTION 0:\n" + "x" * 200 + "\n" in prompt
        assert "x" * 201 not in prompt
        assert "OPTION 1:\nshort answer here, fine" in prompt
        assert prompt.endswith("Reply ONLY with the number.")


# ---------------------------------------------------------------------------
# Judge strategy
# ---------------------------------------------------------------------------


class TestJudgeSelector:
    def test_is_a_selector(self):
        assert isinstance(JudgeSelector(_judge_backend("0")), Selector)

    def test_selects_judged_index(self):
        candidates = _candidates(3)
        selector = JudgeSelector(_judge_backend("I think option 1 is best"))

        selection = asyncio.run(selector.select("prompt", candidates))

        assert selection.index == 1
        assert selection.candidate is candidates[1]
        assert selection.degraded is False
        assert selection.warning is None
        assert selection.strategy == "judge"

    def test_out_of_range_reply_clamped(self):
        candidates = _candidates(2)
        selection = asyncio.run(JudgeSelector(_judge_backend("5")).select("p", candidates))
        assert selection.candidate is candidates[1]

    def test_unparseable_reply_falls_back_to_first(self):
        candidates = _candidates(3)
        selection = asyncio.run(JudgeSelector(_judge_backend("the second one")).select("p", candidates))

        assert selection.index == 0
        assert selection.candidate is candidates[0]
        assert selection.degraded is True
        assert "first candidate" in selection.warning

    def test_judge_error_falls_back_to_first(self):
        candidates = _candidates(3)
        selector = JudgeSelector(_judge_backend(error=ProviderError("Gemini API error 500")))

        selection = asyncio.run(selector.select("p", candidates))

        assert selection.candidate is candidates[0]
        assert selection.degraded is True
        assert "500" in selection.warning

    def test_judge_timeout_falls_back_to_first(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        backend = AsyncMock()
        backend.generate = slow
        candidates = _candidates(2)

        selection = asyncio.run(JudgeSelector(backend, timeout=0.01).select("p", candidates))
        assert selection.candidate is candidates[0]
        assert selection.degraded is True

    def test_single_candidate_skips_judge(self):
        backend = _judge_backend("0")
        candidates = _candidates(1)

        selection = asyncio.run(JudgeSelector(backend).select("p", candidates))

        assert selection.candidate is candidates[0]
        backend.generate.assert_not_awaited()

    def test_empty_candidates_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(JudgeSelector(_judge_backend("0")).select("p", []))

    def test_consumes_judge_token(self):
        limiter = TokenBucket("judge", rate=1.0, capacity=2)
        selector = JudgeSelector(_judge_backend("1"), limiter=limiter)
        asyncio.run(selector.select("p", _candidates(2)))
        assert limiter.get_stats()["granted"] == 1

    def test_sends_truncated_excerpts(self):
        backend = _judge_backend("0")
        candidates = [Candidate("a", "y" * 400), Candidate("b", "z" * 400)]
        asyncio.run(JudgeSelector(backend, excerpt_chars=150).select("p", candidates))

        judge_prompt = backend.generate.call_args[0][0]
        assert "y" * 150 in judge_prompt
        assert "y" * 151 not in judge_prompt


# ---------------------------------------------------------------------------
# Heuristic strategy
# ---------------------------------------------------------------------------


class TestScoreModel:
    def test_formula(self):
        d = _descriptor("m", coding=80, reasoning=60, math=40, context_window=100)
        r = PromptRequirements(coding=50, reasoning=50, math=50, context=50)
        # 40 + 30 + 20 + 0.5 * 25
        assert score_model(d, r) == pytest.approx(102.5)

    def test_context_weight_capped_at_one(self):
        d = _descriptor("m", coding=0, reasoning=0, math=0, context_window=10)
        r = PromptRequirements(coding=1, reasoning=1, math=1, context=100)
        assert score_model(d, r) == pytest.approx(25)

    def test_zero_context_window(self):
        d = _descriptor("m", coding=0, reasoning=0, math=0, context_window=0)
        r = PromptRequirements(coding=1, reasoning=1, math=1, context=10)
        assert score_model(d, r) == pytest.approx(25)


class TestHeuristicSelector:
    def test_bubble_sort_scenario_picks_strongest_coder(self):
        registry = (
            _descriptor("llama", coding=84.3, reasoning=82.0, math=50.4),
            _descriptor("gemma", coding=89.2, reasoning=64.3, math=46.4),
            _descriptor("deepseek", coding=94.2, reasoning=49.0, math=89.1, context_window=32768),
        )
        selector = HeuristicSelector(registry=registry)
        requirements = PromptRequirements(coding=90, reasoning=40, math=30, context=20)

        assert selector.select_optimal_model(requirements) == "deepseek"

    def test_default_registry_bubble_sort(self):
        selector = HeuristicSelector()
        requirements = PromptRequirements(coding=90, reasoning=40, math=30, context=20)
        assert selector.select_optimal_model(requirements) == (
            "deepseek-ai/deepseek-r1-distill-llama-8b"
        )

    def test_deterministic(self):
        selector = HeuristicSelector(registry=DEFAULT_REGISTRY)
        requirements = PromptRequirements(coding=20, reasoning=95, math=10, context=60)
        picks = {selector.select_optimal_model(requirements) for _ in range(20)}
        assert len(picks) == 1

    def test_ties_resolve_to_registry_order(self):
        registry = (_descriptor("first", coding=70), _descriptor("second", coding=70))
        selector = HeuristicSelector(registry=registry)
        assert selector.select_optimal_model(PromptRequirements.neutral()) == "first"

    def test_empty_registry_falls_back_to_default(self):
        selector = HeuristicSelector(registry=(), default_model="fallback/model")
        assert selector.select_optimal_model(PromptRequirements.neutral()) == "fallback/model"

    def test_rank_lists_every_model(self):
        selector = HeuristicSelector()
        ranked = selector.rank(PromptRequirements.neutral())
        assert [m for m, _ in ranked] == [d.id for d in DEFAULT_REGISTRY]

    def test_select_over_candidates_uses_analysis(self):
        registry = (
            _descriptor("writer", coding=10, reasoning=95, math=10),
            _descriptor("coder", coding=95, reasoning=10, math=10),
        )
        analyzer = AsyncMock()
        analyzer.analyze = AsyncMock(
            return_value=PromptRequirements(coding=100, reasoning=1, math=1, context=1)
        )
        selector = HeuristicSelector(registry=registry, analyzer=analyzer)
        candidates = [Candidate("writer", "w" * 30), Candidate("coder", "c" * 30)]

        selection = asyncio.run(selector.select("write code", candidates))

        assert selection.candidate.model == "coder"
        assert selection.index == 1
        assert selection.strategy == "heuristic"
        analyzer.analyze.assert_awaited_once_with("write code")

    def test_select_unknown_models_defaults_to_first(self):
        selector = HeuristicSelector(registry=())
        candidates = [Candidate("x", "x" * 30), Candidate("y", "y" * 30)]
        selection = asyncio.run(selector.select("p", candidates))
        assert selection.index == 0
