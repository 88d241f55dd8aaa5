"""llm-arbiter - multi-provider LLM fan-out, judging and model selection."""

__version__ = "0.3.0"
