from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .findings import is_passed, keyed
from .jsonl import read_records, writing


@dataclass(frozen=True)
class CompareSummary:
    total_baseline: int
    total_current: int
    failed_baseline: int
    failed_current: int
    new_failures: list[str]
    fixed: list[str]
    missing: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_baseline": self.total_baseline,
            "total_current": self.total_current,
            "failed_baseline": self.failed_baseline,
            "failed_current": self.failed_current,
            "new_failures": list(self.new_failures),
            "fixed": list(self.fixed),
            "missing": list(self.missing),
        }


def compare_results(baseline_path: Path, current_path: Path) -> CompareSummary:
    baseline_items = [x for x in read_records(baseline_path) if isinstance(x, dict)]
    current_items = [x for x in read_records(current_path) if isinstance(x, dict)]

    baseline_rows = keyed(baseline_items)
    current_rows = keyed(current_items)

    baseline_keys = {k for k, _ in baseline_rows}
    current_keys = {k for k, _ in current_rows}
    baseline_failed = [k for k, d in baseline_rows if not is_passed(d)]
    current_failed = [k for k, d in current_rows if not is_passed(d)]

    return CompareSummary(
        total_baseline=len(baseline_items),
        total_current=len(current_items),
        failed_baseline=len(baseline_failed),
        failed_current=len(current_failed),
        new_failures=sorted(set(current_failed) - set(baseline_failed)),
        fixed=sorted((set(baseline_failed) - set(current_failed)) & current_keys),
        missing=sorted(baseline_keys - current_keys),
    )


def write_compare_output(summary: CompareSummary, out_path: Path, *, as_json: bool) -> None:
    with writing(out_path) as out:
        if as_json:
            out.write(json.dumps(summary.to_dict()) + "\n")
            return

        out.write(
            f"baseline: {summary.failed_baseline} failed (of {summary.total_baseline}), "
            f"current: {summary.failed_current} failed (of {summary.total_current}), "
            f"new: {len(summary.new_failures)}, fixed: {len(summary.fixed)}\n"
        )
        if summary.new_failures:
            out.write("new failures:\n")
            for k in summary.new_failures:
                out.write(f"  - {k}\n")
        if summary.fixed:
            out.write("fixed:\n")
            for k in summary.fixed:
                out.write(f"  - {k}\n")
        if summary.missing:
            out.write("missing from current run:\n")
            for k in summary.missing:
                out.write(f"  - {k}\n")
