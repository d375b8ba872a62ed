"""REST API routes: the rate-limited chat endpoint and health check."""

import functools

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from chinese_tutor.completion.client import CompletionClient
from chinese_tutor.config import get_settings
from chinese_tutor.conversation.sanitize import validate_message
from chinese_tutor.errors import UpstreamServiceError, ValidationError
from chinese_tutor.models.exchange import ChatRequest, ChatResponse
from chinese_tutor.transport.rate_limit import RateLimiter, client_key

logger = structlog.get_logger()
router = APIRouter(prefix="/api")

INVALID_BODY_MESSAGE = "Invalid request: expected a JSON object with a \"message\" string."


@functools.lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window=settings.rate_limit_window_seconds,
    )


@functools.lru_cache
def get_completion_client() -> CompletionClient:
    settings = get_settings()
    return CompletionClient(
        api_key=settings.openai_api_key,
        model=settings.completion_model,
        max_tokens=settings.max_tokens,
        max_history=settings.max_history_messages,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    completion: CompletionClient = Depends(get_completion_client),
):
    """Forward a learner message to the tutor service."""
    key = client_key(request.headers)
    if not limiter.allow(key):
        return JSONResponse(
            {"error": "Too many requests. Please wait a moment and try again."},
            status_code=429,
        )

    try:
        body = ChatRequest.model_validate(await request.json())
    except ValueError as e:
        # malformed JSON and pydantic validation failures alike
        logger.info("chat_bad_request", client=key, detail=str(e))
        return JSONResponse({"error": INVALID_BODY_MESSAGE}, status_code=400)

    try:
        message = validate_message(body.message, get_settings().max_message_length)
    except ValidationError as e:
        return JSONResponse({"error": e.user_message}, status_code=400)

    try:
        reply = await completion.complete(message, body.history)
    except UpstreamServiceError as e:
        logger.error("chat_upstream_failed", client=key, detail=e.detail)
        return JSONResponse(
            {"error": "Failed to get response from tutor service"}, status_code=500
        )

    return ChatResponse(response=reply)


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
