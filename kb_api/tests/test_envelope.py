"""Tests for result normalization."""

import pytest

from kb_api.sandbox import envelope
from kb_api.sandbox.evaluators import EvaluationOutcome
from kb_api.sandbox.guard import DANGEROUS_CODE_MESSAGE, GuardVerdict, check


class TestBuild:
    def test_success(self):
        result = envelope.build(EvaluationOutcome(output="ok"), 12.5)
        assert result.wire() == {"output": "ok", "executionTime": 12.5, "exitCode": 0}

    def test_failure_keeps_partial_output(self):
        outcome = EvaluationOutcome(output="partial", error="boom")
        result = envelope.build(outcome, 3.0)
        assert result.exit_code == 1
        assert result.output == "partial"
        assert result.error == "boom"

    def test_guard_rejection(self):
        result = envelope.build(check("rm -rf /"), 0.4)
        assert result.wire() == {
            "output": "",
            "error": DANGEROUS_CODE_MESSAGE,
            "executionTime": 0.4,
            "exitCode": 1,
        }

    def test_passed_verdict_rejected(self):
        with pytest.raises(ValueError):
            envelope.build(GuardVerdict.ok(), 1.0)

    def test_negative_elapsed_clamped(self):
        assert envelope.build(EvaluationOutcome(output=""), -1.0).execution_time == 0.0


def test_failure_envelope():
    result = envelope.failure("Authorization header required")
    assert result.wire() == {
        "output": "",
        "error": "Authorization header required",
        "executionTime": 0.0,
        "exitCode": 1,
    }
