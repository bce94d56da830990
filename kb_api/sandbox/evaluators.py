"""Per-language evaluation strategies.

``PythonEvaluator`` runs the snippet in a worker process and
``JavaScriptEvaluator`` runs it in an embedded V8 isolate; both are bounded by
the sandbox timeout. The bash and sql evaluators are text simulations: they
recognize a handful of line-level idioms and fabricate plausible output. They
do not interpret programs in those languages; anything unrecognized yields a
generic "executed (simulated)" placeholder.

Adding a language means adding an ``Evaluator`` subclass and registering it
in ``build_evaluators``.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from py_mini_racer import JSOOMException, JSTimeoutException, MiniRacer
from py_mini_racer._exc import MiniRacerBaseException

from kb_api.config import SandboxSettings
from kb_api.models.execution import Language

_logger = logging.getLogger("kb_api.sandbox")

WORKER_PATH = Path(__file__).with_name("worker.py")
TRUNCATION_MARKER = "\n... [output truncated]"


@dataclass
class EvaluationOutcome:
    output: str
    error: str | None = None
    timed_out: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


class Evaluator(abc.ABC):
    language: Language
    simulated: bool = True

    @abc.abstractmethod
    async def evaluate(self, code: str) -> EvaluationOutcome:
        ...


def timeout_message(timeout_sec: float) -> str:
    return f"Execution timeout ({timeout_sec:g} seconds)"


def join_output(chunks: list[str], truncated: bool, limit: int) -> str:
    output = "\n".join(chunks)
    if len(output) > limit:
        output = output[:limit]
        truncated = True
    return output + TRUNCATION_MARKER if truncated else output


class PythonEvaluator(Evaluator):
    """Run a snippet in ``worker.py`` with a hard wall-clock bound.

    The worker interrupts itself with SIGALRM at ``timeout_sec``. A snippet
    that survives that (for example by catching ``BaseException`` inside a
    busy loop) is killed here after ``kill_grace_sec`` more seconds, so the
    caller always gets a terminal result.
    """

    language = Language.PYTHON
    simulated = False

    def __init__(self, settings: SandboxSettings, python: str | None = None) -> None:
        self.settings = settings
        self.python = python or sys.executable

    @property
    def available(self) -> bool:
        return self.settings.enabled and WORKER_PATH.exists()

    async def evaluate(self, code: str) -> EvaluationOutcome:
        if not self.settings.enabled:
            return EvaluationOutcome(output="", error="Python sandbox is disabled")

        payload = json.dumps(
            {
                "code": code,
                "timeout_sec": self.settings.timeout_sec,
                "max_output_chars": self.settings.max_output_chars,
                "memory_limit_mb": self.settings.memory_limit_mb,
            }
        ).encode("utf-8")

        # Each output line is JSON-escaped, so one line never exceeds the cap by much.
        line_limit = self.settings.max_output_chars * 8 + 64 * 1024
        try:
            proc = await asyncio.create_subprocess_exec(
                self.python,
                "-I",
                "-u",
                str(WORKER_PATH),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=line_limit,
                env={"PATH": os.environ.get("PATH", "")},
            )
        except OSError as e:
            _logger.exception("Failed to start Python worker")
            return EvaluationOutcome(output="", error=f"ERROR: could not start sandbox worker: {e}")

        assert proc.stdin is not None and proc.stdout is not None and proc.stderr is not None
        chunks: list[str] = []
        result: dict = {}
        stderr_task = asyncio.ensure_future(proc.stderr.read())

        async def _collect() -> None:
            proc.stdin.write(payload)
            await proc.stdin.drain()
            proc.stdin.close()
            while True:
                line = await proc.stdout.readline()
                if not line:
                    break
                try:
                    message = json.loads(line)
                except ValueError:
                    continue
                if message.get("type") == "output":
                    chunks.append(str(message.get("text", "")))
                elif message.get("type") == "result":
                    result.update(message)
            await proc.wait()

        deadline = self.settings.timeout_sec + self.settings.kill_grace_sec
        try:
            await asyncio.wait_for(_collect(), timeout=deadline)
        except asyncio.TimeoutError:
            _logger.warning("Python worker exceeded %.1fs, killing pid=%s", deadline, proc.pid)
            await self._kill(proc, stderr_task)
            return EvaluationOutcome(
                output=join_output(chunks, False, self.settings.max_output_chars),
                error=timeout_message(self.settings.timeout_sec),
                timed_out=True,
            )
        except (OSError, ValueError) as e:
            # ValueError: a line exceeded the stream limit
            _logger.exception("Python worker communication failed")
            await self._kill(proc, stderr_task)
            return EvaluationOutcome(
                output=join_output(chunks, False, self.settings.max_output_chars),
                error=f"ERROR: {e}",
            )

        stderr = await stderr_task
        output = join_output(chunks, bool(result.get("truncated")), self.settings.max_output_chars)
        if not result:
            if proc.returncode is not None and proc.returncode < 0:
                # killed by a signal, most likely SIGXCPU/SIGKILL from the CPU limit
                return EvaluationOutcome(
                    output=output,
                    error=timeout_message(self.settings.timeout_sec),
                    timed_out=True,
                )
            detail = stderr.decode("utf-8", errors="replace").strip()
            return EvaluationOutcome(
                output=output,
                error=detail or f"Sandbox worker exited unexpectedly (code {proc.returncode})",
            )

        return EvaluationOutcome(
            output=output,
            error=result.get("error"),
            timed_out=bool(result.get("timed_out")),
        )

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process, stderr_task: asyncio.Future) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
        stderr_task.cancel()




# Console bindings for the JavaScript context. Output is capped inside the
# engine so a runaway loop of console.log calls cannot grow unbounded.
_JS_PRELUDE = """
var __out = [], __room = %(limit)d, __truncated = false;
function __emit(text) {
  if (__room <= 0) { __truncated = true; return; }
  if (text.length > __room) { text = text.slice(0, __room); __truncated = true; }
  __room -= text.length;
  __out.push(text);
}
function __fmt(a) {
  if (typeof a === 'string') return a;
  if (typeof a === 'object') { try { return JSON.stringify(a, null, 2); } catch (e) { return String(a); } }
  return String(a);
}
var console = {
  log: function () { __emit(Array.prototype.map.call(arguments, __fmt).join(' ')); },
  error: function () { __emit('ERROR: ' + Array.prototype.map.call(arguments, String).join(' ')); },
  warn: function () { __emit('WARN: ' + Array.prototype.map.call(arguments, String).join(' ')); }
};
console.info = console.log;
function __run(src) {
  try { (0, eval)(src); return null; }
  catch (e) { return (e && e.name) ? e.name + ': ' + e.message : String(e); }
}
"""


class JavaScriptEvaluator(Evaluator):
    """Evaluate a snippet in an embedded V8 isolate (``py_mini_racer``).

    Each call gets a fresh context holding only the ECMAScript globals and a
    ``console`` that collects output. V8 terminates the script at
    ``timeout_sec``; output collected before that is returned.
    """

    language = Language.JAVASCRIPT
    simulated = False

    def __init__(self, settings: SandboxSettings) -> None:
        self.settings = settings

    @property
    def available(self) -> bool:
        return self.settings.enabled

    async def evaluate(self, code: str) -> EvaluationOutcome:
        if not self.settings.enabled:
            return EvaluationOutcome(output="", error="JavaScript sandbox is disabled")

        deadline = self.settings.timeout_sec + self.settings.kill_grace_sec
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._run, code), timeout=deadline)
        except asyncio.TimeoutError:
            _logger.warning("JavaScript evaluation exceeded %.1fs", deadline)
            return EvaluationOutcome(
                output="", error=timeout_message(self.settings.timeout_sec), timed_out=True
            )

    def _run(self, code: str) -> EvaluationOutcome:
        ctx = MiniRacer()
        try:
            ctx.eval(_JS_PRELUDE % {"limit": self.settings.max_output_chars})
            try:
                error = ctx.eval(
                    f"__run({json.dumps(code)})",
                    timeout=int(self.settings.timeout_sec * 1000),
                    max_memory=self.settings.memory_limit_mb * 1024 * 1024,
                )
            except JSTimeoutException:
                return EvaluationOutcome(
                    output=self._collect(ctx),
                    error=timeout_message(self.settings.timeout_sec),
                    timed_out=True,
                )
            except JSOOMException:
                return EvaluationOutcome(
                    output=self._collect(ctx), error="RangeError: memory limit exceeded"
                )
            return EvaluationOutcome(output=self._collect(ctx), error=error or None)
        except MiniRacerBaseException as e:
            _logger.exception("JavaScript engine failure")
            return EvaluationOutcome(output="", error=f"ERROR: {e}")
        finally:
            ctx.close()

    def _collect(self, ctx: MiniRacer) -> str:
        try:
            chunks, truncated = json.loads(ctx.eval("JSON.stringify([__out, __truncated])"))
        except MiniRacerBaseException:
            # the isolate may refuse further work after a termination
            return ""
        return join_output(chunks, truncated, self.settings.max_output_chars)


class BashSimulator(Evaluator):
    language = Language.BASH

    async def evaluate(self, code: str) -> EvaluationOutcome:
        output: list[str] = []
        for line in code.split("\n"):
            trimmed = line.strip()
            if trimmed.startswith("echo "):
                output.append(trimmed[5:].replace('"', "").replace("'", ""))
            elif "for i in {1..5}" in trimmed:
                output.extend(f"Count: {i}" for i in range(1, 6))
            elif "$(date)" in trimmed:
                output.append(f"Current date: {datetime.now(UTC).isoformat()}")
            elif "$(pwd)" in trimmed:
                output.append("Working directory: /tmp/sandbox")
        return EvaluationOutcome(output="\n".join(output) or "Bash script executed (simulated)")


_USERS_TABLE = (
    " id |     name      |        email        |         created_at",
    "----+---------------+---------------------+----------------------------",
    "  1 | Alice Johnson | alice@example.com   | 2024-01-15 10:30:00.000000",
    "  2 | Bob Smith     | bob@example.com     | 2024-01-15 10:30:00.000000",
    "  3 | Carol Davis   | carol@example.com   | 2024-01-15 10:30:00.000000",
    "(3 rows)",
)

_USER_COUNT = (
    " total_users |      latest_signup",
    "-------------+----------------------------",
    "           3 | 2024-01-15 10:30:00.000000",
    "(1 row)",
)


class SqlSimulator(Evaluator):
    language = Language.SQL

    async def evaluate(self, code: str) -> EvaluationOutcome:
        output: list[str] = []
        if "CREATE TEMP TABLE" in code:
            output.append("CREATE TABLE")
        if "INSERT INTO" in code:
            output.append("INSERT 0 3")
        if "SELECT" in code and "FROM users" in code:
            output.extend(_USERS_TABLE)
        if "COUNT(*)" in code:
            output.extend(_USER_COUNT)
        return EvaluationOutcome(output="\n".join(output) or "SQL executed (simulated)")


def build_evaluators(settings: SandboxSettings) -> dict[Language, Evaluator]:
    evaluators: list[Evaluator] = [
        PythonEvaluator(settings),
        JavaScriptEvaluator(settings),
        BashSimulator(),
        SqlSimulator(),
    ]
    return {e.language: e for e in evaluators}
