import json
import logging
from typing import Any

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse

from kb_api.auth import authenticate
from kb_api.dependencies import ExecutionLimiter, Executor, OptionalVerifier
from kb_api.errors import APIError, BadRequestError, RateLimitError
from kb_api.models.execution import (
    ExecutionLogEntry,
    ExecutionLogResponse,
    ExecutionRequest,
    Language,
    LanguageInfo,
    LanguagesResponse,
)
from kb_api.sandbox import SnippetExecutor, envelope

router = APIRouter(tags=["code-executor"])

_logger = logging.getLogger("kb_api.controllers.code_executor")


async def _read_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except ValueError:
        raise BadRequestError(detail="Invalid JSON in request body")
    if not isinstance(body, dict):
        raise BadRequestError(detail="Invalid JSON in request body")
    return body


def _parse_request(
    body: dict[str, Any], max_code_length: int, executor: SnippetExecutor
) -> ExecutionRequest:
    code = body.get("code")
    language = body.get("language")
    if not isinstance(code, str) or not code.strip() or not language:
        raise BadRequestError(detail="Code and language are required")
    if len(code) > max_code_length:
        raise BadRequestError(
            detail=f"Code too long (max {max_code_length:,} characters)",
            max_length=max_code_length,
        )
    try:
        parsed = Language(language)
    except (ValueError, TypeError):
        raise BadRequestError(detail=f"Unsupported language: {language}")
    if not executor.supports(parsed):
        raise BadRequestError(detail=f"Unsupported language: {language}")
    return ExecutionRequest(code=code, language=parsed)


def _envelope_error(request: Request, exc: APIError) -> JSONResponse:
    _logger.warning(
        "Code execution rejected: %s (status=%d, path=%s)",
        exc.detail,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope.failure(exc.detail).wire(),
        headers=exc.headers,
    )


@router.post("/code-executor")
@router.post("/functions/v1/code-executor", include_in_schema=False)
async def execute_code(
    request: Request,
    executor: Executor,
    limiter: ExecutionLimiter,
    verifier: OptionalVerifier,
    authorization: str | None = Header(None),
) -> JSONResponse:
    """Run a snippet and return the execution envelope.

    Any processed attempt, including a guard rejection or a failing snippet,
    is a 200 with ``exitCode`` 1. Auth, validation and rate-limit failures
    use 401/400/429 (503 if identity verification is unavailable) with the
    same envelope shape.
    """
    try:
        caller_id = await authenticate(verifier, authorization)
        body = await _read_body(request)
        exec_request = _parse_request(body, executor.settings.max_code_length, executor)
        decision = await limiter.hit(caller_id)
        if not decision.allowed:
            raise RateLimitError(
                detail=f"Rate limit exceeded. Max {limiter.max_requests} executions per {limiter.window_sec}s",
                retry_after=decision.retry_after_sec,
            )
    except APIError as exc:
        return _envelope_error(request, exc)

    result = await executor.run(exec_request, caller_id)
    return JSONResponse(
        content=result.wire(),
        headers={"X-RateLimit-Remaining": str(decision.remaining)},
    )


@router.get("/code-executor/languages", response_model=LanguagesResponse)
async def list_languages(executor: Executor) -> LanguagesResponse:
    settings = executor.settings
    return LanguagesResponse(
        languages=[LanguageInfo(language=lang, simulated=sim) for lang, sim in executor.languages()],
        max_code_length=settings.max_code_length,
        timeout_sec=settings.timeout_sec,
    )


@router.get("/code-executor/executions", response_model=ExecutionLogResponse)
async def list_executions(
    executor: Executor,
    verifier: OptionalVerifier,
    limit: int = Query(50, ge=1, le=200, description="Maximum number of entries to return"),
    authorization: str | None = Header(None),
) -> ExecutionLogResponse:
    caller_id = await authenticate(verifier, authorization)
    entries = executor.log.recent(caller_id=caller_id, limit=limit)
    return ExecutionLogResponse(
        entries=[ExecutionLogEntry.model_validate(e) for e in entries],
        total=len(entries),
        limit=limit,
    )
