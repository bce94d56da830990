import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

import kb_api.lifespan as lifespan
import kb_api.main as main
from kb_api.config import clear_settings_cache

TEST_TOKEN = "test-token"
OTHER_TOKEN = "other-token"

BASE_ENV = {
    "AUTH_STATIC_TOKENS": f"{TEST_TOKEN}:user-1,{OTHER_TOKEN}:user-2",
    "RATE_LIMIT_MAX_REQUESTS": "5",
    "RATE_LIMIT_ASSISTANT_MAX_REQUESTS": "3",
    "RATE_LIMIT_BACKEND": "memory",
    "SANDBOX_TIMEOUT_SEC": "2",
    "SANDBOX_KILL_GRACE_SEC": "0.5",
    "OPENAI_API_KEY": "sk-test",
}


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


def _apply_env(monkeypatch, overrides=None):
    for key in ("SUPABASE_URL", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(key, raising=False)
    for key, value in {**BASE_ENV, **(overrides or {})}.items():
        monkeypatch.setenv(key, value)
    clear_settings_cache()


@pytest.fixture
def make_client(monkeypatch):
    """Build a client with extra environment overrides."""

    @contextmanager
    def _make(**overrides):
        _apply_env(monkeypatch, overrides)
        with TestClient(main.app) as c:
            yield c
        clear_settings_cache()

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as c:
        yield c


@pytest.fixture
def redis_client(make_client, monkeypatch):
    """Client whose rate limiter counts in (fake) Redis."""

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)
    with make_client(RATE_LIMIT_BACKEND="redis") as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {OTHER_TOKEN}"}
