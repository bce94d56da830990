#!/usr/bin/env python3
"""
Worker process for evaluating Python snippets.

Started by ``PythonEvaluator`` as ``python -I -u worker.py`` with a JSON
payload on stdin::

    {"code": "...", "timeout_sec": 5.0, "max_output_chars": 50000,
     "memory_limit_mb": 256}

Protocol: one JSON object per stdout line. Every captured ``print`` or
``console.*`` call is written (and flushed) as ``{"type": "output", ...}``
the moment it happens, so a parent that kills this process on timeout still
holds everything printed so far. The last line is ``{"type": "result", ...}``.

Containment here is a capability fence, not isolation:
- the snippet sees only the bindings built by ``build_environment``
  (no ``open``, no ``sys``/``os``, and modules only as read-only views
  holding an explicit list of public names)
- CPU, address space, file size and process count are capped via setrlimit
- SIGALRM interrupts the snippet at the timeout

A snippet that escapes the binding fence can do whatever this process can.
The parent's hard kill is the only guaranteed bound.

This file must only depend on the standard library; it is not imported by
the application.
"""
import builtins
import importlib
import json
import signal
import sys
import traceback
import types

MODULE_EXPORTS = {
    "math": (
        "pi", "e", "tau", "inf", "nan", "sqrt", "pow", "exp", "log", "log2",
        "log10", "sin", "cos", "tan", "asin", "acos", "atan", "atan2", "hypot",
        "floor", "ceil", "trunc", "fabs", "factorial", "gcd", "lcm", "comb",
        "perm", "isclose", "isfinite", "isinf", "isnan", "degrees", "radians",
        "fsum", "prod", "dist", "isqrt", "copysign", "fmod", "modf",
    ),
    "json": ("dumps", "loads", "JSONDecodeError"),
    "datetime": ("date", "datetime", "time", "timedelta", "timezone", "MINYEAR", "MAXYEAR"),
    "time": ("time", "perf_counter", "monotonic", "sleep", "strftime", "gmtime", "localtime", "time_ns"),
    "random": (
        "random", "randint", "randrange", "choice", "choices", "shuffle",
        "sample", "uniform", "gauss", "seed", "triangular",
    ),
    "re": (
        "compile", "search", "match", "fullmatch", "findall", "finditer",
        "sub", "subn", "split", "escape", "error",
        "IGNORECASE", "I", "MULTILINE", "M", "DOTALL", "S", "VERBOSE", "X", "ASCII", "A",
    ),
    "collections": ("Counter", "OrderedDict", "defaultdict", "deque", "namedtuple", "ChainMap"),
    "itertools": (
        "accumulate", "chain", "combinations", "combinations_with_replacement",
        "compress", "count", "cycle", "dropwhile", "filterfalse", "groupby",
        "islice", "pairwise", "permutations", "product", "repeat", "starmap",
        "takewhile", "tee", "zip_longest",
    ),
    "functools": ("reduce", "partial", "lru_cache", "cache", "wraps", "total_ordering", "cmp_to_key"),
    "statistics": (
        "mean", "fmean", "geometric_mean", "harmonic_mean", "median",
        "median_low", "median_high", "mode", "multimode", "pstdev",
        "pvariance", "stdev", "variance", "quantiles",
    ),
    "string": (
        "ascii_letters", "ascii_lowercase", "ascii_uppercase", "digits",
        "hexdigits", "octdigits", "punctuation", "printable", "whitespace",
        "capwords", "Template",
    ),
}

ALLOWED_MODULES = tuple(MODULE_EXPORTS)

SAFE_BUILTINS = (
    "abs", "all", "any", "ascii", "bin", "bool", "bytes", "callable", "chr",
    "complex", "dict", "divmod", "enumerate", "filter", "float", "format",
    "frozenset", "hash", "hex", "int", "isinstance", "issubclass", "iter",
    "len", "list", "map", "max", "min", "next", "object", "oct", "ord", "pow",
    "range", "repr", "reversed", "round", "set", "slice", "sorted", "str",
    "sum", "tuple", "zip", "property", "staticmethod", "classmethod", "super",
    "True", "False", "None", "NotImplemented", "Ellipsis",
    "__build_class__",
    "BaseException", "Exception", "ArithmeticError", "AssertionError",
    "AttributeError", "IndexError", "KeyError", "LookupError", "NameError",
    "NotImplementedError", "OverflowError", "RecursionError", "RuntimeError",
    "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
    "TimeoutError", "ImportError",
)


class SnippetTimeout(BaseException):
    """Raised by SIGALRM; a BaseException so ``except Exception`` in snippets won't eat it."""


def timeout_handler(signum, frame):
    raise SnippetTimeout()


def setup_resource_limits(timeout_sec: float, memory_limit_mb: int) -> None:
    try:
        import resource
    except ImportError:
        return
    cpu = max(1, int(timeout_sec) + 1)
    memory = memory_limit_mb * 1024 * 1024
    limits = (
        (resource.RLIMIT_CPU, (cpu, cpu + 1)),
        (resource.RLIMIT_FSIZE, (0, 0)),
        (getattr(resource, "RLIMIT_AS", None), (memory, memory)),
        (getattr(resource, "RLIMIT_NPROC", None), (0, 0)),
    )
    for limit, value in limits:
        if limit is None:
            continue
        try:
            resource.setrlimit(limit, value)
        except (ValueError, OSError):
            pass


def stringify(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, indent=2, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


class OutputChannel:
    def __init__(self, stream, max_chars: int):
        self._stream = stream
        self._remaining = max_chars
        self.truncated = False

    def emit(self, text: str) -> None:
        if self._remaining <= 0:
            self.truncated = True
            return
        if len(text) > self._remaining:
            text = text[: self._remaining]
            self.truncated = True
        self._remaining -= len(text)
        self.send({"type": "output", "text": text})

    def send(self, message: dict) -> None:
        self._stream.write(json.dumps(message) + "\n")
        self._stream.flush()


class Console:
    def __init__(self, channel: OutputChannel):
        self._channel = channel

    def log(self, *args):
        self._channel.emit(" ".join(stringify(a) for a in args))

    info = log

    def error(self, *args):
        self._channel.emit("ERROR: " + " ".join(stringify(a) for a in args))

    def warn(self, *args):
        self._channel.emit("WARN: " + " ".join(stringify(a) for a in args))


class ModuleView:
    """Read-only stand-in for an allowlisted module.

    Holds only the names listed in ``MODULE_EXPORTS``; submodules and private
    helpers of the real module (``random._os``, ``json.decoder``) are absent.
    """

    __slots__ = ("_name", "_attrs")

    def __init__(self, module, names):
        attrs = {}
        for attr in names:
            value = getattr(module, attr, None)
            if value is None or isinstance(value, types.ModuleType):
                continue
            attrs[attr] = value
        object.__setattr__(self, "_name", module.__name__)
        object.__setattr__(self, "_attrs", types.MappingProxyType(attrs))

    def __getattr__(self, item):
        try:
            return self._attrs[item]
        except KeyError:
            raise AttributeError(f"module '{self._name}' has no attribute '{item}'") from None

    def __setattr__(self, key, value):
        raise AttributeError(f"module '{self._name}' is read-only")

    def __delattr__(self, key):
        raise AttributeError(f"module '{self._name}' is read-only")

    def __dir__(self):
        return sorted(self._attrs)

    def __repr__(self):
        return f"<module '{self._name}'>"


def build_modules() -> dict:
    views = {}
    for name, names in MODULE_EXPORTS.items():
        views[name] = ModuleView(importlib.import_module(name), names)
    return views


def build_import(modules: dict):
    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        root = name.split(".")[0]
        if level != 0 or root not in modules:
            raise ImportError(f"Import of '{name}' is not allowed in the sandbox")
        return modules[root]

    return guarded_import


def build_environment(channel: OutputChannel) -> dict:
    modules = build_modules()

    def captured_print(*args, sep=" ", end="\n", file=None, flush=False):
        text = (sep if sep is not None else " ").join(str(a) for a in args)
        channel.emit(text)

    safe = {name: getattr(builtins, name) for name in SAFE_BUILTINS if hasattr(builtins, name)}
    safe["print"] = captured_print
    safe["__import__"] = build_import(modules)

    env = {"__builtins__": safe, "__name__": "__main__", "console": Console(channel)}
    env.update(modules)
    return env


def describe(exc: BaseException) -> str:
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


def execute_code(
    code: str, timeout_sec: float, max_output_chars: int, memory_limit_mb: int
) -> tuple[dict, OutputChannel]:
    """Evaluate ``code``; return the final result message and its channel."""
    channel = OutputChannel(sys.stdout, max_output_chars)
    env = build_environment(channel)
    setup_resource_limits(timeout_sec, memory_limit_mb)

    has_alarm = hasattr(signal, "setitimer")
    if has_alarm:
        signal.signal(signal.SIGALRM, timeout_handler)
        signal.setitimer(signal.ITIMER_REAL, timeout_sec)

    error = None
    timed_out = False
    try:
        exec(compile(code, "<snippet>", "exec"), env)
    except SnippetTimeout:
        timed_out = True
        error = f"Execution timeout ({timeout_sec:g} seconds)"
    except MemoryError:
        error = "MemoryError: memory limit exceeded"
    except Exception as e:
        error = describe(e)
    finally:
        if has_alarm:
            signal.setitimer(signal.ITIMER_REAL, 0)

    return {
        "type": "result",
        "error": error,
        "timed_out": timed_out,
        "truncated": channel.truncated,
    }, channel


def main():
    try:
        payload = json.loads(sys.stdin.read())
        code = payload["code"]
    except (ValueError, KeyError, TypeError) as e:
        print(f"Error: invalid worker payload: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        result, channel = execute_code(
            code,
            float(payload.get("timeout_sec", 5)),
            int(payload.get("max_output_chars", 50000)),
            int(payload.get("memory_limit_mb", 256)),
        )
    except BaseException:
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)

    channel.send(result)
    sys.exit(0 if result["error"] is None else 1)


if __name__ == "__main__":
    main()
