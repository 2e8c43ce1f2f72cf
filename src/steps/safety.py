"""
Pattern checks for obviously unsafe constructs in generated code.

This is a warning aid, not static analysis: a hit never blocks a run.
"""

import re
from dataclasses import dataclass

DANGEROUS_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"\beval\s*\("), "Use of eval() can be dangerous"),
    (re.compile(r"\bexec\s*\("), "Use of exec() can be dangerous"),
    (re.compile(r"document\.write\s*\("), "document.write() can be unsafe"),
    (re.compile(r"innerHTML\s*="), "Setting innerHTML directly can lead to XSS vulnerabilities"),
    (re.compile(r"setTimeout\s*\(\s*['\"`]"), "Passing strings to setTimeout can be unsafe"),
    (re.compile(r"setInterval\s*\(\s*['\"`]"), "Passing strings to setInterval can be unsafe"),
    (re.compile(r"new\s+Function\s*\("), "Creating functions from strings can be unsafe"),
    (re.compile(r"\bos\.system\s*\("), "os.system() runs a shell command"),
    (re.compile(r"subprocess\.\w+\([^)]*shell\s*=\s*True"), "subprocess with shell=True can allow command injection"),
    (re.compile(r"\bpickle\.loads?\s*\("), "Unpickling untrusted data can execute arbitrary code"),
)


@dataclass(frozen=True)
class SafetyReport:
    safe: bool
    warnings: tuple[str, ...] = ()


def check_code_safety(code: str) -> SafetyReport:
    """Scan code for known-dangerous patterns."""
    warnings = tuple(
        message for pattern, message in DANGEROUS_PATTERNS
        if pattern.search(code)
    )
    return SafetyReport(safe=not warnings, warnings=warnings)
