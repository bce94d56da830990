"""Tests for lifespan management."""

import os

import pytest
from unittest.mock import AsyncMock, MagicMock, patch


def _settings(env):
    from kb_api.config import Settings

    with patch.dict(os.environ, env, clear=True):
        return Settings()


class TestLifespanResources:
    """Test LifespanResources dataclass."""

    def test_lifespan_resources_defaults(self):
        """Test that LifespanResources has correct defaults."""
        from kb_api.lifespan import LifespanResources

        resources = LifespanResources()
        assert resources.redis_client is None
        assert resources.executor is None
        assert resources.identity_verifier is None
        assert resources.execution_limiter is None


class TestInitRedis:
    """Test init_redis function."""

    @pytest.mark.asyncio
    async def test_init_redis_creates_client(self):
        """Test that init_redis creates a Redis client."""
        from kb_api.lifespan import init_redis

        mock_redis_class = MagicMock()
        mock_client = MagicMock()
        mock_redis_class.return_value = mock_client

        with patch("kb_api.lifespan.redis.Redis", mock_redis_class):
            result = await init_redis(_settings({"REDIS_HOST": "localhost"}))

        assert result is mock_client
        mock_redis_class.assert_called_once()


class TestInitIdentityVerifier:
    """Test identity backend selection."""

    def test_supabase_preferred(self):
        """Test that Supabase is used when URL and key are set."""
        from kb_api.auth import SupabaseIdentityVerifier
        from kb_api.lifespan import init_identity_verifier

        settings = _settings({
            "SUPABASE_URL": "https://proj.supabase.co",
            "SUPABASE_ANON_KEY": "anon",
            "AUTH_STATIC_TOKENS": "t:u",
        })
        verifier = init_identity_verifier(settings)
        assert isinstance(verifier, SupabaseIdentityVerifier)
        assert verifier.url == "https://proj.supabase.co"

    def test_static_tokens_fallback(self):
        """Test that static tokens are used without Supabase."""
        from kb_api.auth import StaticTokenVerifier
        from kb_api.lifespan import init_identity_verifier

        verifier = init_identity_verifier(_settings({"AUTH_STATIC_TOKENS": "t:u"}))
        assert isinstance(verifier, StaticTokenVerifier)
        assert verifier.tokens == {"t": "u"}

    def test_none_configured(self):
        """Test that no verifier is returned without configuration."""
        from kb_api.lifespan import init_identity_verifier

        assert init_identity_verifier(_settings({})) is None


class TestInitRateLimiters:
    """Test rate limiter construction."""

    def test_memory_backend(self):
        """Test limiters share one in-memory store."""
        from kb_api.lifespan import init_rate_limiters
        from kb_api.sandbox import InMemoryRateLimitStore

        executions, assistant = init_rate_limiters(_settings({}), None)
        assert isinstance(executions.store, InMemoryRateLimitStore)
        assert executions.store is assistant.store
        assert executions.max_requests == 10
        assert assistant.max_requests == 20
        assert (executions.scope, assistant.scope) == ("code-executor", "ai-assistant")

    def test_redis_backend(self):
        """Test limiters use Redis when configured and connected."""
        from kb_api.lifespan import init_rate_limiters
        from kb_api.sandbox import RedisRateLimitStore

        client = MagicMock()
        executions, _ = init_rate_limiters(_settings({"RATE_LIMIT_BACKEND": "redis"}), client)
        assert isinstance(executions.store, RedisRateLimitStore)
        assert executions.store.client is client


class TestSetupResources:
    """Test setup_resources function."""

    @pytest.mark.asyncio
    async def test_setup_resources_memory_backend(self):
        """Test that setup_resources skips Redis for the memory backend."""
        from kb_api import state
        from kb_api.lifespan import LifespanResources, cleanup_resources, setup_resources

        with patch("kb_api.lifespan.init_redis", new_callable=AsyncMock) as init_redis:
            resources = await setup_resources(_settings({"AUTH_STATIC_TOKENS": "t:u"}))

        try:
            assert isinstance(resources, LifespanResources)
            init_redis.assert_not_called()
            assert resources.redis_client is None
            assert state.executor is resources.executor
            assert state.execution_limiter is resources.execution_limiter
            assert state.assistant_client is resources.assistant_client
        finally:
            await cleanup_resources(resources)
        assert state.executor is None

    @pytest.mark.asyncio
    async def test_setup_resources_redis_backend(self):
        """Test that setup_resources connects Redis for the redis backend."""
        from kb_api.lifespan import cleanup_resources, setup_resources

        mock_redis = MagicMock()
        mock_redis.aclose = AsyncMock()
        with patch("kb_api.lifespan.init_redis", new_callable=AsyncMock, return_value=mock_redis):
            resources = await setup_resources(_settings({"RATE_LIMIT_BACKEND": "redis"}))

        assert resources.redis_client is mock_redis
        await cleanup_resources(resources)
        mock_redis.aclose.assert_called_once()
