from typing import Optional

import redis.asyncio as redis

from kb_api.assistant import OpenAIChatClient
from kb_api.auth import IdentityVerifier
from kb_api.sandbox import FixedWindowRateLimiter, SnippetExecutor

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
executor: Optional[SnippetExecutor] = None
identity_verifier: Optional[IdentityVerifier] = None
execution_limiter: Optional[FixedWindowRateLimiter] = None
assistant_limiter: Optional[FixedWindowRateLimiter] = None
assistant_client: Optional[OpenAIChatClient] = None
