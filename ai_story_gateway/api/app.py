"""
HTTP surface for the gateway.

Exposes ``POST /generate-user-story`` and ``GET /health``. Every response,
errors included, is JSON and carries permissive CORS headers.
"""

from typing import Any, List, Optional

import pydantic
import structlog
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ai_story_gateway.config.loader import GatewayConfig
from ai_story_gateway.core.audit import AuditLogger
from ai_story_gateway.core.pipeline import GENERATE_ENDPOINT, GenerationPipeline
from ai_story_gateway.core.rate_limiter import RateLimiter
from ai_story_gateway.core.request import GenerationRequest
from ai_story_gateway.sdk.openai_client import OpenAICompletionClient
from ai_story_gateway.storage.rate_limit_store import SqliteRateLimitStore
from ai_story_gateway.storage.repository import initialize_schema

from .auth import client_ip_from, resolve_identity

logger = structlog.get_logger(__name__)

API_TITLE = "AI Story Gateway"
API_VERSION = "0.1.0"

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def build_pipeline(config: GatewayConfig) -> GenerationPipeline:
    """Wire a pipeline against SQLite storage and the OpenAI client."""
    db_path = config.storage.db_path
    initialize_schema(db_path)

    return GenerationPipeline(
        rate_limiter=RateLimiter(SqliteRateLimitStore(db_path), config.rate_limits),
        completion_client=OpenAICompletionClient(
            model=config.generation.model,
            timeout_seconds=config.generation.timeout_seconds
        ),
        audit_logger=AuditLogger(db_path),
        config=config.generation
    )


def _describe_parse_errors(exc: pydantic.ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def create_app(
    config: Optional[GatewayConfig] = None,
    pipeline: Optional[GenerationPipeline] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Gateway configuration (defaults apply when omitted)
        pipeline: Pre-built pipeline; built from config when omitted
    """
    config = config or GatewayConfig()
    pipeline = pipeline or build_pipeline(config)

    app = FastAPI(title=API_TITLE, version=API_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )
    app.state.pipeline = pipeline

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post(f"/{GENERATE_ENDPOINT}")
    async def generate_user_story(request: Request):
        client_ip = client_ip_from(request)
        user_agent = request.headers.get("user-agent")
        identity = resolve_identity(request.headers.get("authorization"), client_ip, config.auth)

        raw_body = await _read_json(request)
        parse_errors: List[str] = []
        generation_request = None
        if not isinstance(raw_body, dict):
            parse_errors = ["Request body must be a JSON object"]
        else:
            try:
                generation_request = GenerationRequest.model_validate(raw_body)
            except pydantic.ValidationError as e:
                parse_errors = _describe_parse_errors(e)

        if generation_request is None:
            result = await run_in_threadpool(
                pipeline.reject_unparseable,
                raw_body,
                parse_errors,
                identity,
                client_ip,
                user_agent
            )
        else:
            result = await run_in_threadpool(
                pipeline.handle,
                generation_request,
                identity,
                client_ip,
                user_agent
            )

        return JSONResponse(status_code=result.status_code, content=result.body)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception("unhandled_exception", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    return app
