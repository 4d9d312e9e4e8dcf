from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .findings import is_passed, is_transport_error, keyed
from .jsonl import read_records, writing


@dataclass(frozen=True)
class Summary:
    total: int
    passed: int
    failed: int
    errors: int
    failed_keys: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "errors": self.errors,
            "failed_keys": list(self.failed_keys),
        }


def summarize_results(in_path: Path) -> Summary:
    items = [x for x in read_records(in_path) if isinstance(x, dict)]

    passed = sum(1 for d in items if is_passed(d))
    errors = sum(1 for d in items if is_transport_error(d))
    failed_keys = [k for k, d in keyed(items) if not is_passed(d)]

    return Summary(
        total=len(items),
        passed=passed,
        failed=len(items) - passed,
        errors=errors,
        failed_keys=failed_keys,
    )


def write_summary(summary: Summary, out_path: Path, *, as_json: bool) -> None:
    with writing(out_path) as out:
        if as_json:
            out.write(json.dumps(summary.to_dict()) + "\n")
            return

        out.write(
            f"total: {summary.total}, passed: {summary.passed}, failed: {summary.failed} "
            f"(no response: {summary.errors})\n"
        )
        if summary.failed_keys:
            out.write("failed tests:\n")
            for k in summary.failed_keys:
                out.write(f"  - {k}\n")
