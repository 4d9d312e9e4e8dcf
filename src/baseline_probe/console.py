from __future__ import annotations

import sys
from typing import TextIO

from colorama import Fore, Style

from .findings import SEVERITY_FAIL, SEVERITY_OK, SEVERITY_WARN, ProbeFinding

_SEVERITY_COLORS = {
    SEVERITY_OK: Fore.GREEN,
    SEVERITY_WARN: Fore.YELLOW,
    SEVERITY_FAIL: Fore.RED,
}


class Console:
    """Live, human-readable progress lines."""

    def __init__(self, stream: TextIO | None = None, *, color: bool | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        if color is None:
            isatty = getattr(self.stream, "isatty", None)
            color = bool(callable(isatty) and isatty())
        self.color = color

    def _tag(self, label: str, color: str) -> str:
        if not self.color:
            return f"[{label}]"
        return f"{color}[{label}]{Style.RESET_ALL}"

    def line(self, text: str = "") -> None:
        print(text, file=self.stream, flush=True)

    def info(self, text: str) -> None:
        self.line(f"{self._tag('INFO', Fore.CYAN)} {text}")

    def warn(self, text: str) -> None:
        self.line(f"{self._tag('WARN', Fore.YELLOW)} {text}")

    def case_passed(self, name: str, method: str, endpoint: str) -> None:
        self.line(f"{self._tag('PASS', Fore.GREEN)} {name}  ({method} {endpoint})")

    def case_failed(
        self, name: str, method: str, endpoint: str, expected: int, actual: int
    ) -> None:
        self.line(f"{self._tag('FAIL', Fore.RED)} {name}  ({method} {endpoint})")
        got = str(actual) if actual else "no response"
        self.line(f"       Expected: {expected}, Got: {got}")

    def section(self, title: str) -> None:
        self.line()
        self.line("=" * 44)
        self.line(title)
        self.line("=" * 44)

    def finding(self, finding: ProbeFinding) -> None:
        label = finding.severity.upper()
        color = _SEVERITY_COLORS.get(finding.severity, Fore.WHITE)
        self.line(f"{self._tag(label, color)} {finding.message}")
