from typing import Any

from fastapi import APIRouter
from redis.exceptions import RedisError

from kb_api import state
from kb_api.dependencies import OptionalRedis
from kb_api.models.execution import Language
from kb_api.sandbox import JavaScriptEvaluator, PythonEvaluator

router = APIRouter()


@router.get("/health")
async def health(redis_client: OptionalRedis) -> dict[str, Any]:
    redis_status = "disabled"
    if redis_client:
        try:
            await redis_client.ping()
            redis_status = "healthy"
        except (RedisError, OSError):
            redis_status = "unhealthy"

    sandbox: dict[str, Any] = {"python": False, "javascript": False, "languages": []}
    if state.executor:
        python = state.executor.evaluators.get(Language.PYTHON)
        javascript = state.executor.evaluators.get(Language.JAVASCRIPT)
        sandbox["python"] = isinstance(python, PythonEvaluator) and python.available
        sandbox["javascript"] = isinstance(javascript, JavaScriptEvaluator) and javascript.available
        sandbox["languages"] = [lang.value for lang, _ in state.executor.languages()]

    return {"status": "ok", "redis": redis_status, "sandbox": sandbox}
