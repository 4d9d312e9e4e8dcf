from __future__ import annotations

import json
from pathlib import Path

from baseline_probe.summarize import summarize_results, write_summary


def _row(name: str, expected: int, actual: int) -> str:
    return json.dumps(
        {
            "test_name": name,
            "method": "GET",
            "endpoint": "/users",
            "expected_status": expected,
            "actual_status": actual,
            "response_body": "",
        }
    )


def test_summarize_counts(tmp_path: Path) -> None:
    inp = tmp_path / "in.jsonl"
    inp.write_text(
        "\n".join(
            [
                _row("anon", 401, 401),
                _row("authed", 200, 200),
                _row("admin only", 403, 200),
                _row("down", 200, 0),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    s = summarize_results(inp)
    assert s.total == 4
    assert s.passed == 2
    assert s.failed == 2
    assert s.errors == 1
    assert s.failed_keys == ["GET admin only", "GET down"]


def test_summarize_reads_json_array(tmp_path: Path) -> None:
    inp = tmp_path / "in.json"
    inp.write_text("[" + _row("anon", 401, 200) + "]\n", encoding="utf-8")
    s = summarize_results(inp)
    assert s.total == 1
    assert s.failed_keys == ["GET anon"]


def test_summarize_json_output(tmp_path: Path) -> None:
    inp = tmp_path / "in.jsonl"
    inp.write_text(_row("anon", 401, 500) + "\n", encoding="utf-8")
    out = tmp_path / "out.json"
    write_summary(summarize_results(inp), out, as_json=True)
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["failed"] == 1
    assert data["failed_keys"] == ["GET anon"]


def test_summarize_text_output(tmp_path: Path) -> None:
    inp = tmp_path / "in.jsonl"
    inp.write_text(_row("anon", 401, 401) + "\n" + _row("down", 200, 0) + "\n", encoding="utf-8")
    out = tmp_path / "out.txt"
    write_summary(summarize_results(inp), out, as_json=False)
    text = out.read_text(encoding="utf-8")
    assert "total: 2, passed: 1, failed: 1 (no response: 1)" in text
    assert "  - GET down" in text


def test_summarize_numbers_repeated_names(tmp_path: Path) -> None:
    inp = tmp_path / "in.jsonl"
    inp.write_text(
        "\n".join([_row("get user", 200, 500), _row("get user", 200, 404)]) + "\n",
        encoding="utf-8",
    )
    assert summarize_results(inp).failed_keys == ["GET get user", "GET get user #2"]
