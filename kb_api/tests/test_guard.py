"""Tests for the snippet denylist."""

import pytest

from kb_api.models.execution import Language
from kb_api.sandbox.guard import DANGEROUS_CODE_MESSAGE, DENYLIST, check


class TestCheck:
    @pytest.mark.parametrize(
        "code",
        [
            "const cp = require('child_process')",
            'import { exec } from "child_process"',
            "eval('1+1')",
            "new Function('return 1')()",
            "process.exit(1)",
            "fs.readFileSync('/etc/passwd')",
            "spawn ('ls')",
            "__import__('os')",
            "exec('print(1)')",
            "open('/etc/passwd').read()",
            "import subprocess",
            "os.system('ls')",
            "rm -rf /tmp/x",
            "ls; rm file",
            "cat x | rm y",
            "wget http://example.com",
            "curl http://example.com",
            "DROP TABLE users",
            "delete from users where 1=1",
            ":(){ :|:& };:",
            "import importlib",
            "import ctypes",
            "import socket",
            "().__class__.__bases__[0].__subclasses__()",
            "getattr(math, 'pi')",
        ],
    )
    def test_rejects(self, code):
        verdict = check(code)
        assert verdict.passed is False
        assert verdict.reason == DANGEROUS_CODE_MESSAGE
        assert verdict.rule is not None

    @pytest.mark.parametrize(
        "code",
        [
            "print('hello')",
            "console.log([1, 2, 3].map(x => x * 2))",
            "for i in range(10):\n    print(i)",
            "SELECT * FROM users",
            "echo hello",
            "import math\nprint(math.sqrt(16))",
        ],
    )
    def test_passes(self, code):
        verdict = check(code, Language.PYTHON)
        assert verdict.passed is True
        assert verdict.reason is None

    def test_rules_apply_to_every_language(self):
        for language in Language:
            assert check("subprocess", language).passed is False

    def test_first_matching_rule_is_reported(self):
        verdict = check("eval(exec('x'))")
        assert verdict.rule.label == "eval"

    def test_custom_rule_set(self):
        assert check("os.system('ls')", rules=()).passed is True

    def test_denylist_labels_present(self):
        assert all(rule.label for rule in DENYLIST)

    @pytest.mark.parametrize(
        "code",
        [
            "print(random._os.getppid())",
            "print(re._compiler)",
            "json . _default_encoder",
        ],
    )
    def test_rejects_private_attribute_access_in_python(self, code):
        verdict = check(code, Language.PYTHON)
        assert verdict.passed is False
        assert verdict.rule.label == "private attribute access"

    def test_private_attribute_rule_is_python_only(self):
        assert check("const o = {_x: 1}; console.log(o._x)", Language.JAVASCRIPT).passed is True
