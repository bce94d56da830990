"""Startup and shutdown of shared resources.

``setup_resources`` builds everything the routers need (executor, rate
limiters, identity verifier, assistant client, optional Redis) and publishes
it on ``kb_api.state``; ``cleanup_resources`` undoes that.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from kb_api import state
from kb_api.assistant import OpenAIChatClient
from kb_api.auth import IdentityVerifier, StaticTokenVerifier, SupabaseIdentityVerifier
from kb_api.config import Settings, get_settings
from kb_api.sandbox import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    SnippetExecutor,
)
from kb_api.sandbox.ratelimit import RateLimitStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    executor: SnippetExecutor | None = None
    identity_verifier: IdentityVerifier | None = None
    execution_limiter: FixedWindowRateLimiter | None = None
    assistant_limiter: FixedWindowRateLimiter | None = None
    assistant_client: OpenAIChatClient | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client.
    """
    settings = settings or get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        retry_on_timeout=settings.redis.retry_on_timeout,
        decode_responses=True,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool)
    if hasattr(candidate_client, "__await__"):
        redis_client = await candidate_client
    else:
        redis_client = candidate_client

    if settings.debug.redis:
        logging.getLogger("kb_api.ratelimit").setLevel(logging.DEBUG)

    return redis_client


def init_identity_verifier(settings: Settings | None = None) -> IdentityVerifier | None:
    """Pick the identity backend: Supabase when configured, else static tokens.

    Returns:
        The verifier, or None if neither is configured.
    """
    settings = settings or get_settings()
    if settings.auth.supabase_url and settings.auth.supabase_anon_key:
        return SupabaseIdentityVerifier(
            settings.auth.supabase_url,
            settings.auth.supabase_anon_key,
            timeout=settings.auth.timeout_sec,
        )
    tokens = settings.auth.static_tokens
    if tokens:
        logger.warning("Using static token authentication (%d tokens)", len(tokens))
        return StaticTokenVerifier(tokens)
    logger.warning("No identity verifier configured; authenticated endpoints will return 503")
    return None


def init_rate_limiters(
    settings: Settings,
    redis_client: redis.Redis | None,
) -> tuple[FixedWindowRateLimiter, FixedWindowRateLimiter]:
    """Build the code-executor and assistant limiters over one shared store."""
    store: RateLimitStore
    if settings.rate_limit.backend == "redis" and redis_client is not None:
        store = RedisRateLimitStore(redis_client)
    else:
        store = InMemoryRateLimitStore()
    window = settings.rate_limit.window_sec
    return (
        FixedWindowRateLimiter(store, settings.rate_limit.max_requests, window, scope="code-executor"),
        FixedWindowRateLimiter(
            store, settings.rate_limit.assistant_max_requests, window, scope="ai-assistant"
        ),
    )


async def setup_resources(settings: Settings | None = None) -> LifespanResources:
    """Set up all shared resources.

    Returns:
        LifespanResources containing all initialized resources.
    """
    settings = settings or get_settings()
    resources = LifespanResources()

    if settings.rate_limit.backend == "redis":
        resources.redis_client = await init_redis(settings)

    resources.executor = SnippetExecutor(settings.sandbox)
    resources.identity_verifier = init_identity_verifier(settings)
    resources.execution_limiter, resources.assistant_limiter = init_rate_limiters(
        settings, resources.redis_client
    )
    resources.assistant_client = OpenAIChatClient(settings.openai)

    state.redis_client = resources.redis_client
    state.executor = resources.executor
    state.identity_verifier = resources.identity_verifier
    state.execution_limiter = resources.execution_limiter
    state.assistant_limiter = resources.assistant_limiter
    state.assistant_client = resources.assistant_client

    logger.info(
        "Resources ready: rate_limit_backend=%s sandbox_enabled=%s",
        settings.rate_limit.backend,
        settings.sandbox.enabled,
    )
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                await close()

    state.redis_client = None
    state.executor = None
    state.identity_verifier = None
    state.execution_limiter = None
    state.assistant_limiter = None
    state.assistant_client = None
