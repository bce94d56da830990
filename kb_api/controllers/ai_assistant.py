import json
import logging
from typing import Any

from fastapi import APIRouter, Header, Request

from kb_api.assistant import AssistantAction, build_prompts, parse_reply
from kb_api.auth import authenticate
from kb_api.dependencies import AssistantClient, AssistantLimiter, OptionalVerifier
from kb_api.errors import BadRequestError, RateLimitError, ServiceUnavailableError
from kb_api.validation import sanitize_command, sanitize_text, validate_tags

router = APIRouter(tags=["ai-assistant"])

_logger = logging.getLogger("kb_api.controllers.ai_assistant")


@router.post("/ai-assistant")
@router.post("/functions/v1/ai-assistant", include_in_schema=False)
async def ai_assistant(
    request: Request,
    client: AssistantClient,
    limiter: AssistantLimiter,
    verifier: OptionalVerifier,
    authorization: str | None = Header(None),
) -> dict[str, Any]:
    """Ask the language model about a saved command.

    ``analyze`` suggests tags, category and improvements; ``validate`` checks
    for mistakes; ``suggest_similar`` lists related commands. The reply is
    returned as the model produced it, decoded from JSON when possible.
    """
    caller_id = await authenticate(verifier, authorization)

    try:
        body = json.loads(await request.body())
    except ValueError:
        raise BadRequestError(detail="Invalid JSON in request body")
    if not isinstance(body, dict):
        raise BadRequestError(detail="Invalid JSON in request body")

    if not client.configured:
        raise ServiceUnavailableError(detail="OpenAI API key not configured")

    raw_action = body.get("action")
    if not body.get("command") or not raw_action:
        raise BadRequestError(detail="Command and action are required")
    try:
        action = AssistantAction(raw_action)
    except ValueError:
        raise BadRequestError(
            detail="Invalid action. Must be analyze, validate, or suggest_similar"
        )

    command = sanitize_command(str(body["command"]))
    title = sanitize_text(str(body.get("title") or ""), max_length=200)
    description = sanitize_text(str(body.get("description") or ""))

    decision = await limiter.hit(caller_id)
    if not decision.allowed:
        raise RateLimitError(
            detail=f"Rate limit exceeded. Max {limiter.max_requests} requests per {limiter.window_sec}s",
            retry_after=decision.retry_after_sec,
        )

    _logger.info("AI assistant request: caller=%s action=%s", caller_id, action.value)
    system_prompt, user_prompt = build_prompts(action, command, title, description)
    result = parse_reply(await client.complete(system_prompt, user_prompt))

    if action is AssistantAction.ANALYZE and isinstance(result.get("suggestedTags"), list):
        result["suggestedTags"] = validate_tags(result["suggestedTags"])
    return result
