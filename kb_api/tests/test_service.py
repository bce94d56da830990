"""Tests for SnippetExecutor and the execution log."""

import pytest

from kb_api.config import SandboxSettings
from kb_api.models.execution import ExecutionRequest, ExecutionResult, Language
from kb_api.sandbox import (
    DANGEROUS_CODE_MESSAGE,
    EvaluationOutcome,
    Evaluator,
    ExecutionLog,
    SnippetExecutor,
)


class _Echo(Evaluator):
    language = Language.BASH

    def __init__(self):
        self.calls = []

    async def evaluate(self, code):
        self.calls.append(code)
        return EvaluationOutcome(output=code.upper())


class _Broken(Evaluator):
    language = Language.SQL

    async def evaluate(self, code):
        raise RuntimeError("evaluator crashed")


class TestSnippetExecutor:
    @pytest.mark.asyncio
    async def test_runs_evaluator(self):
        echo = _Echo()
        executor = SnippetExecutor(SandboxSettings(), evaluators={Language.BASH: echo})
        result = await executor.run(ExecutionRequest(code="echo hi", language=Language.BASH), "u1")
        assert result.output == "ECHO HI"
        assert result.exit_code == 0
        assert echo.calls == ["echo hi"]

    @pytest.mark.asyncio
    async def test_guard_short_circuits(self):
        echo = _Echo()
        executor = SnippetExecutor(SandboxSettings(), evaluators={Language.BASH: echo})
        result = await executor.run(ExecutionRequest(code="rm -rf /", language=Language.BASH), "u1")
        assert result.error == DANGEROUS_CODE_MESSAGE
        assert result.exit_code == 1
        assert echo.calls == []

    @pytest.mark.asyncio
    async def test_evaluator_crash_becomes_result(self):
        executor = SnippetExecutor(SandboxSettings(), evaluators={Language.SQL: _Broken()})
        result = await executor.run(ExecutionRequest(code="SELECT 1", language=Language.SQL))
        assert result.exit_code == 1
        assert result.error == "evaluator crashed"

    @pytest.mark.asyncio
    async def test_unregistered_language(self):
        executor = SnippetExecutor(SandboxSettings(), evaluators={Language.BASH: _Echo()})
        assert executor.supports(Language.SQL) is False
        result = await executor.run(ExecutionRequest(code="SELECT 1", language=Language.SQL))
        assert result.error == "Unsupported language: sql"

    @pytest.mark.asyncio
    async def test_runs_are_logged(self):
        executor = SnippetExecutor(SandboxSettings(), evaluators={Language.BASH: _Echo()})
        await executor.run(ExecutionRequest(code="echo a", language=Language.BASH), "u1")
        await executor.run(ExecutionRequest(code="rm -rf /", language=Language.BASH), "u2")
        assert len(executor.log) == 2
        [entry] = executor.log.recent(caller_id="u2")
        assert entry["rejected"] is True
        assert entry["exit_code"] == 1

    def test_default_registry(self):
        executor = SnippetExecutor(SandboxSettings())
        assert dict(executor.languages()) == {
            Language.PYTHON: False,
            Language.JAVASCRIPT: False,
            Language.BASH: True,
            Language.SQL: True,
        }


class TestExecutionLog:
    def _record(self, log, code, caller="u1"):
        request = ExecutionRequest(code=code, language=Language.PYTHON)
        result = ExecutionResult(output="out", execution_time=12.7, exit_code=0)
        return log.record(caller, request, result, rejected=False)

    def test_entry_fields(self):
        entry = self._record(ExecutionLog(), "print(1)")
        assert entry["code_preview"] == "print(1)"
        assert len(entry["code_hash"]) == 16
        assert entry["duration_ms"] == 12
        assert entry["output_length"] == 3

    def test_long_code_preview(self):
        entry = self._record(ExecutionLog(), "x" * 300)
        assert entry["code_preview"] == "x" * 200 + "..."

    def test_bounded(self):
        log = ExecutionLog(maxlen=3)
        for i in range(5):
            self._record(log, f"print({i})")
        assert len(log) == 3
        assert [e["code_preview"] for e in log.recent()] == ["print(2)", "print(3)", "print(4)"]

    def test_recent_limit_and_filter(self):
        log = ExecutionLog()
        self._record(log, "a", caller="u1")
        self._record(log, "b", caller="u2")
        self._record(log, "c", caller="u1")
        assert [e["code_preview"] for e in log.recent(caller_id="u1", limit=1)] == ["c"]
