from kb_api.sandbox.evaluators import (
    EvaluationOutcome,
    Evaluator,
    JavaScriptEvaluator,
    PythonEvaluator,
    build_evaluators,
)
from kb_api.sandbox.guard import DANGEROUS_CODE_MESSAGE, GuardVerdict, check
from kb_api.sandbox.ratelimit import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RedisRateLimitStore,
)
from kb_api.sandbox.service import ExecutionLog, SnippetExecutor

__all__ = [
    "DANGEROUS_CODE_MESSAGE",
    "EvaluationOutcome",
    "Evaluator",
    "ExecutionLog",
    "FixedWindowRateLimiter",
    "GuardVerdict",
    "InMemoryRateLimitStore",
    "JavaScriptEvaluator",
    "PythonEvaluator",
    "RedisRateLimitStore",
    "SnippetExecutor",
    "build_evaluators",
    "check",
]
