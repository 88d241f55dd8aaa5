"""llm-arbiter Web API - FastAPI surface over the request coordinator."""

from collections.abc import Awaitable
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from arbiter import __version__
from arbiter.config import settings
from arbiter.errors import AllProvidersFailed, ClientError

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Pydantic request/response models
# ---------------------------------------------------------------------------


class PromptRequest(BaseModel):
    prompt: str | None = None
    language: str | None = None


class ModelInfo(BaseModel):
    id: str
    expertise: str
    benchmarks: dict[str, float]


class Requirements(BaseModel):
    coding: float
    reasoning: float
    math: float
    context: float


class JudgeRouteResponse(BaseModel):
    bestResponse: str
    chosenModel: str
    responseTime: int
    candidates: list[str]
    warning: str | None = None


class SelectRouteResponse(BaseModel):
    response: str
    model: ModelInfo
    analysis: Requirements
    responseTime: int
    warning: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class StatusResponse(BaseModel):
    models: list[str]
    fanout_selector: str
    cache: dict | None = None
    rate_limits: dict | None = None


class ModelsResponse(BaseModel):
    models: list[ModelInfo]
    count: int


# ---------------------------------------------------------------------------
# Lifespan: init/cleanup shared resources in app.state
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the coordinator and its shared state on startup."""
    from arbiter.config.logging import configure_logging
    from arbiter.core import ChatCompletionClient, GeminiClient, RequestCoordinator

    configure_logging()
    settings.require_credentials()

    chat = ChatCompletionClient()
    judge = GeminiClient()
    await chat.__aenter__()
    await judge.__aenter__()

    app.state.coordinator = RequestCoordinator.build(chat, judge, settings)

    logger.info(
        "api_startup_complete",
        models=len(app.state.coordinator.registry),
        fanout_selector=app.state.coordinator.fanout_selector.name,
    )

    yield  # ---- application runs ----

    await judge.__aexit__(None, None, None)
    await chat.__aexit__(None, None, None)
    logger.info("api_shutdown_complete")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(400, "Non-empty prompt is required")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_error_handler)


async def _respond(call: Awaitable):
    """Await a coordinator call and map failures to HTTP statuses."""
    try:
        envelope = await call
    except ClientError as exc:
        return _error(400, str(exc))
    except AllProvidersFailed:
        return _error(
            503,
            "All model providers failed",
            mitigation="Try again with a different prompt",
        )
    except Exception as exc:
        logger.exception("request_failed", error=str(exc))
        details = {} if settings.is_production else {
            "details": str(exc),
            "type": type(exc).__name__,
        }
        return _error(500, "Processing error", **details)
    return envelope.to_dict()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="llm-arbiter API",
    version=__version__,
    description="Multi-provider LLM fan-out, judging and model selection",
    lifespan=lifespan,
)
install_error_handlers(app)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# API key authentication middleware
# ---------------------------------------------------------------------------

_PUBLIC_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    """Reject requests without valid API key (when configured)."""
    if not settings.api_key:
        return await call_next(request)

    if request.url.path in _PUBLIC_PATHS:
        return await call_next(request)

    key = request.headers.get("X-API-Key") or _bearer_token(request)
    if key != settings.api_key:
        return JSONResponse(status_code=401, content={"error": "Invalid or missing API key"})

    return await call_next(request)


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[7:]
    return None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health():
    """Liveness probe - always returns 200."""
    return HealthResponse()


@app.get("/status", response_model=StatusResponse)
async def status(request: Request):
    """Registry, cache and rate-limit state."""
    return request.app.state.coordinator.get_stats()


@app.get("/models", response_model=ModelsResponse)
async def models(request: Request):
    """The model registry with benchmark profiles."""
    registry = request.app.state.coordinator.registry
    return ModelsResponse(models=[d.to_dict() for d in registry], count=len(registry))


@app.post("/judge-route", response_model=JudgeRouteResponse, response_model_exclude_none=True)
async def judge_route(req: PromptRequest, request: Request):
    """Fan out to every model and let the judge pick the best answer."""
    return await _respond(request.app.state.coordinator.judge_route(req.prompt))


@app.post("/select-route", response_model=SelectRouteResponse, response_model_exclude_none=True)
async def select_route(req: PromptRequest, request: Request):
    """Analyze the prompt, pick one model, and generate with it."""
    return await _respond(
        request.app.state.coordinator.select_route(req.prompt, language=req.language)
    )


# Paths used by earlier front-ends
app.post(
    "/api/ml/judgeAndGenerate",
    response_model=JudgeRouteResponse,
    response_model_exclude_none=True,
    include_in_schema=False,
)(judge_route)
app.post(
    "/api/ml/llm",
    response_model=SelectRouteResponse,
    response_model_exclude_none=True,
    include_in_schema=False,
)(select_route)
