"""HTTP clients for the chat-completion and judge/analysis backends."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

import httpx
import structlog

from arbiter.config import settings
from arbiter.errors import BadResponse, ModelTimeout, ProviderError

logger = structlog.get_logger()

_ERROR_BODY_CHARS = 100


@dataclass
class LLMResponse:
    """Response from a backend model."""

    content: str
    model: str
    latency_ms: float = 0
    timestamp: datetime = field(default_factory=datetime.now)
    raw_response: dict = field(default_factory=dict)


class _ProviderClient:
    """Shared async-context plumbing around one ``httpx.AsyncClient``."""

    provider = "provider"

    def __init__(self, base_url: str, api_key: str | None, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
        )
        return self

    async def __aexit__(self, *args) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} must be used as async context manager")
        return self._client

    async def _post(self, model: str, url: str, **kwargs) -> dict:
        """POST and decode JSON, mapping transport failures onto the error taxonomy."""
        try:
            response = await self.client.post(url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ModelTimeout(model, self.timeout) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.provider} request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                f"{self.provider} API {response.status_code}: "
                f"{response.text[:_ERROR_BODY_CHARS]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise BadResponse(f"{self.provider} returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise BadResponse(f"{self.provider} returned unexpected payload type")
        return data


class ChatCompletionClient(_ProviderClient):
    """OpenAI-compatible chat completions (NVIDIA integrate API by default)."""

    provider = "chat-completion"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        super().__init__(
            base_url or settings.chat_base_url,
            api_key or settings.nvidia_api_key,
            timeout or settings.model_timeout,
        )
        self.temperature = settings.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.max_tokens

    async def complete(self, model: str, prompt: str) -> LLMResponse:
        """Single chat completion for one user message."""
        start_time = asyncio.get_running_loop().time()

        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.debug("model_request", model=model, prompt_length=len(prompt))

        data = await self._post(model, "/chat/completions", json=payload, headers=headers)
        content = extract_chat_content(data)
        if content is None:
            raise BadResponse(f"Invalid response format from model {model}")

        latency = (asyncio.get_running_loop().time() - start_time) * 1000
        logger.info("model_response", model=model, latency_ms=round(latency, 2))

        return LLMResponse(content=content, model=model, latency_ms=latency, raw_response=data)


class GeminiClient(_ProviderClient):
    """Gemini ``generateContent`` client used for the judge and analysis roles."""

    provider = "gemini"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        super().__init__(
            base_url or settings.judge_base_url,
            api_key or settings.gemini_api_key,
            timeout or settings.judge_timeout,
        )
        self.model = model or settings.judge_model

    async def generate(
        self,
        prompt: str,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate text with a small, constrained output budget."""
        start_time = asyncio.get_running_loop().time()

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": max_output_tokens or settings.judge_max_output_tokens,
                "temperature": (
                    settings.judge_temperature if temperature is None else temperature
                ),
            },
        }

        data = await self._post(
            self.model,
            f"/models/{self.model}:generateContent",
            json=payload,
            params={"key": self.api_key},
        )
        content = extract_gemini_text(data)
        if content is None:
            raise BadResponse("Invalid response format from judge")

        latency = (asyncio.get_running_loop().time() - start_time) * 1000
        logger.debug("judge_response", model=self.model, latency_ms=round(latency, 2))

        return LLMResponse(content=content, model=self.model, latency_ms=latency, raw_response=data)


def extract_chat_content(data: dict) -> str | None:
    """``choices[0].message.content`` when it is a non-empty string."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(content, str) or not content.strip():
        return None
    return content


def extract_gemini_text(data: dict) -> str | None:
    """``candidates[0].content.parts[0].text`` or None."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None
