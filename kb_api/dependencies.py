"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for accessing shared resources
initialized by ``kb_api.lifespan``. Required getters raise
``ServiceUnavailableError``; ``get_optional_*`` getters return None instead.

Usage in controllers:
    from kb_api.dependencies import Executor

    @router.get("/example")
    async def example(executor: Executor):
        return executor.languages()
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends

from kb_api import state
from kb_api.assistant import OpenAIChatClient
from kb_api.auth import IdentityVerifier
from kb_api.errors import ServiceUnavailableError
from kb_api.sandbox import FixedWindowRateLimiter, SnippetExecutor


def get_optional_redis() -> redis.Redis | None:
    """Get the Redis client if the redis rate-limit backend is active."""
    return state.redis_client


def get_executor() -> SnippetExecutor:
    """Get the snippet executor.

    Raises:
        ServiceUnavailableError: If the executor is not initialized.
    """
    if state.executor is None:
        raise ServiceUnavailableError(detail="Code executor not initialized")
    return state.executor


def get_optional_identity_verifier() -> IdentityVerifier | None:
    """Get the identity verifier, or None if no backend is configured."""
    return state.identity_verifier


def get_execution_limiter() -> FixedWindowRateLimiter:
    """Get the code-executor rate limiter.

    Raises:
        ServiceUnavailableError: If the limiter is not initialized.
    """
    if state.execution_limiter is None:
        raise ServiceUnavailableError(detail="Rate limiter not initialized")
    return state.execution_limiter


def get_assistant_limiter() -> FixedWindowRateLimiter:
    """Get the AI assistant rate limiter.

    Raises:
        ServiceUnavailableError: If the limiter is not initialized.
    """
    if state.assistant_limiter is None:
        raise ServiceUnavailableError(detail="Rate limiter not initialized")
    return state.assistant_limiter


def get_assistant_client() -> OpenAIChatClient:
    """Get the AI assistant upstream client.

    Raises:
        ServiceUnavailableError: If the client is not initialized.
    """
    if state.assistant_client is None:
        raise ServiceUnavailableError(detail="AI assistant not initialized")
    return state.assistant_client


OptionalRedis = Annotated[redis.Redis | None, Depends(get_optional_redis)]
Executor = Annotated[SnippetExecutor, Depends(get_executor)]
OptionalVerifier = Annotated[IdentityVerifier | None, Depends(get_optional_identity_verifier)]
ExecutionLimiter = Annotated[FixedWindowRateLimiter, Depends(get_execution_limiter)]
AssistantLimiter = Annotated[FixedWindowRateLimiter, Depends(get_assistant_limiter)]
AssistantClient = Annotated[OpenAIChatClient, Depends(get_assistant_client)]
