"""Normalize every execution path into one ``ExecutionResult`` shape."""

from __future__ import annotations

from kb_api.models.execution import ExecutionResult
from kb_api.sandbox.evaluators import EvaluationOutcome
from kb_api.sandbox.guard import GuardVerdict


def build(outcome: GuardVerdict | EvaluationOutcome, elapsed_ms: float) -> ExecutionResult:
    """Map a guard rejection or an evaluator outcome to the wire envelope.

    ``elapsed_ms`` is measured by the caller around guard + evaluate, so it is
    filled the same way on every branch.
    """
    elapsed_ms = max(0.0, elapsed_ms)
    if isinstance(outcome, GuardVerdict):
        if outcome.passed:
            raise ValueError("a passed guard verdict has no result; evaluate the snippet")
        return ExecutionResult(output="", error=outcome.reason, execution_time=elapsed_ms, exit_code=1)

    if outcome.failed:
        return ExecutionResult(
            output=outcome.output,
            error=outcome.error,
            execution_time=elapsed_ms,
            exit_code=1,
        )
    return ExecutionResult(output=outcome.output, execution_time=elapsed_ms, exit_code=0)


def failure(message: str) -> ExecutionResult:
    """Envelope for requests rejected before any execution (auth, validation, rate limit)."""
    return ExecutionResult(output="", error=message, execution_time=0.0, exit_code=1)
