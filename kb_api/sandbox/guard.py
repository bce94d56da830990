"""Denylist pass applied to every snippet before it reaches an evaluator.

This is plain pattern matching on source text. It is non-exhaustive and can be
bypassed by obfuscation (string concatenation, encodings, aliasing); it is not
isolation. Containment for python comes from the worker process and its
binding environment, see ``kb_api.sandbox.worker``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kb_api.models.execution import Language

DANGEROUS_CODE_MESSAGE = "Code contains potentially dangerous operations"


@dataclass(frozen=True)
class DenylistRule:
    pattern: re.Pattern[str]
    label: str
    # None applies the rule to every language.
    languages: frozenset[Language] | None = None

    def applies_to(self, language: Language | None) -> bool:
        return self.languages is None or language is None or language in self.languages

    def matches(self, code: str) -> bool:
        return self.pattern.search(code) is not None


def _rule(pattern: str, label: str, flags: int = 0) -> DenylistRule:
    return DenylistRule(re.compile(pattern, flags), label)


# Order matters only for which label is reported; any match rejects.
DENYLIST: tuple[DenylistRule, ...] = (
    _rule(r"""require\s*\(\s*['"]child_process['"]""", "node child_process require"),
    _rule(r"import\s+.*child_process", "node child_process import"),
    _rule(r"eval\s*\(", "eval"),
    _rule(r"Function\s*\(", "Function constructor"),
    _rule(r"process\.", "process object access"),
    _rule(r"fs\.", "file system access"),
    _rule(r"\.exec\s*\(", "exec method"),
    _rule(r"spawn\s*\(", "process spawn"),
    _rule(r"fork\s*\(", "process fork"),
    _rule(r"__import__", "dynamic import"),
    _rule(r"exec\s*\(", "exec"),
    _rule(r"open\s*\(", "file open"),
    _rule(r"subprocess", "subprocess"),
    _rule(r"os\.system", "os.system"),
    _rule(r"rm\s+-rf", "recursive delete"),
    _rule(r";\s*rm\s+", "chained rm"),
    _rule(r"\|\s*rm\s+", "piped rm"),
    _rule(r"wget\s+", "download"),
    _rule(r"curl\s+", "download"),
    _rule(r"DROP\s+TABLE", "sql drop table", re.IGNORECASE),
    _rule(r"DELETE\s+FROM", "sql delete", re.IGNORECASE),
    _rule(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;", "fork bomb"),
    _rule(r"importlib", "importlib"),
    _rule(r"ctypes", "ctypes"),
    _rule(r"\bsocket\b", "socket"),
    _rule(
        r"__(subclasses|globals|builtins|code|bases|mro|getattribute|closure)__",
        "dunder introspection",
    ),
    _rule(r"\b(getattr|setattr|delattr|globals|locals|vars)\s*\(", "reflection builtin"),
    DenylistRule(
        re.compile(r"\.\s*_"), "private attribute access", frozenset({Language.PYTHON})
    ),
)


@dataclass(frozen=True)
class GuardVerdict:
    passed: bool
    reason: str | None = None
    rule: DenylistRule | None = None

    @classmethod
    def ok(cls) -> GuardVerdict:
        return cls(passed=True)

    @classmethod
    def rejected(cls, rule: DenylistRule) -> GuardVerdict:
        return cls(passed=False, reason=DANGEROUS_CODE_MESSAGE, rule=rule)


def check(
    code: str,
    language: Language | None = None,
    rules: tuple[DenylistRule, ...] = DENYLIST,
) -> GuardVerdict:
    """Return the verdict for ``code``; the first matching rule wins."""
    for rule in rules:
        if rule.applies_to(language) and rule.matches(code):
            return GuardVerdict.rejected(rule)
    return GuardVerdict.ok()
