from __future__ import annotations

import hashlib
import logging
import time
from collections import deque
from datetime import UTC, datetime
from typing import Any

from kb_api.config import SandboxSettings
from kb_api.models.execution import ExecutionRequest, ExecutionResult, Language
from kb_api.sandbox import envelope, guard
from kb_api.sandbox.evaluators import EvaluationOutcome, Evaluator, build_evaluators

_logger = logging.getLogger("kb_api.sandbox")


def code_hash(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()[:16]


class ExecutionLog:
    """Bounded in-memory record of recent executions."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def record(
        self,
        caller_id: str,
        request: ExecutionRequest,
        result: ExecutionResult,
        rejected: bool,
    ) -> dict[str, Any]:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "caller_id": caller_id,
            "language": request.language,
            "code_hash": code_hash(request.code),
            "code_preview": request.code[:200] + "..." if len(request.code) > 200 else request.code,
            "exit_code": result.exit_code,
            "rejected": rejected,
            "duration_ms": int(result.execution_time),
            "output_length": len(result.output),
        }
        self._entries.append(entry)
        return entry

    def recent(self, caller_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        entries = [e for e in self._entries if caller_id is None or e["caller_id"] == caller_id]
        return entries[-limit:]

    def __len__(self) -> int:
        return len(self._entries)


class SnippetExecutor:
    """Guard, evaluate and wrap one snippet.

    Never raises for anything the snippet does: guard rejections, snippet
    errors, timeouts and evaluator crashes all come back as an
    ``ExecutionResult`` with ``exit_code`` 1.
    """

    def __init__(
        self,
        settings: SandboxSettings,
        evaluators: dict[Language, Evaluator] | None = None,
        log: ExecutionLog | None = None,
    ) -> None:
        self.settings = settings
        self.evaluators = evaluators if evaluators is not None else build_evaluators(settings)
        self.log = log if log is not None else ExecutionLog(settings.log_size)

    def languages(self) -> list[tuple[Language, bool]]:
        return [(language, evaluator.simulated) for language, evaluator in self.evaluators.items()]

    def supports(self, language: Language) -> bool:
        return language in self.evaluators

    async def run(self, request: ExecutionRequest, caller_id: str = "anonymous") -> ExecutionResult:
        start = time.perf_counter()
        verdict = guard.check(request.code, request.language)
        if not verdict.passed:
            _logger.warning(
                "Blocked dangerous code pattern for caller %s: %s",
                caller_id,
                verdict.rule.label if verdict.rule else "unknown",
            )
            result = envelope.build(verdict, (time.perf_counter() - start) * 1000)
            self._record(caller_id, request, result, rejected=True)
            return result

        outcome = await self._evaluate(request)
        result = envelope.build(outcome, (time.perf_counter() - start) * 1000)
        self._record(caller_id, request, result, rejected=False)
        return result

    async def _evaluate(self, request: ExecutionRequest) -> EvaluationOutcome:
        evaluator = self.evaluators.get(request.language)
        if evaluator is None:
            return EvaluationOutcome(output="", error=f"Unsupported language: {request.language.value}")
        try:
            return await evaluator.evaluate(request.code)
        except Exception as e:
            _logger.exception("Evaluator %s failed", request.language.value)
            return EvaluationOutcome(output="", error=str(e) or type(e).__name__)

    def _record(
        self,
        caller_id: str,
        request: ExecutionRequest,
        result: ExecutionResult,
        rejected: bool,
    ) -> None:
        entry = self.log.record(caller_id, request, result, rejected)
        _logger.info(
            "Code execution: caller=%s language=%s exit_code=%d rejected=%s duration=%dms code_hash=%s",
            caller_id,
            request.language.value,
            result.exit_code,
            rejected,
            entry["duration_ms"],
            entry["code_hash"],
        )
