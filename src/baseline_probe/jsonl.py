from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, TextIO

STDIO = "-"


def is_stdio(path: Path) -> bool:
    return str(path) == STDIO


def open_output(path: Path) -> TextIO:
    """Open ``path`` for writing, creating parent directories; ``-`` is stdout."""
    if is_stdio(path):
        return sys.stdout
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open("w", encoding="utf-8")


@contextmanager
def writing(path: Path) -> Iterator[TextIO]:
    out = open_output(path)
    try:
        yield out
        out.flush()
    finally:
        if not is_stdio(path):
            out.close()


def _decode_error(kind: str, source: str, line: int, exc: json.JSONDecodeError) -> SystemExit:
    return SystemExit(f"invalid {kind} in {source} at line {line}: {exc.msg} (col {exc.colno})")


def parse_jsonl(lines: Iterable[str], *, source: str = "<input>") -> list[Any]:
    rows: list[Any] = []
    for line_num, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError as exc:
            raise _decode_error("JSONL", source, line_num, exc) from exc
    return rows


def read_records(path: Path) -> list[Any]:
    """Read a results file written either as JSONL or as one JSON array."""
    source = "<stdin>" if is_stdio(path) else str(path)
    text = sys.stdin.read() if is_stdio(path) else path.read_text(encoding="utf-8")

    if not text.lstrip().startswith("["):
        return parse_jsonl(text.splitlines(), source=source)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise _decode_error("JSON", source, exc.lineno, exc) from exc
    if not isinstance(data, list):
        raise SystemExit(f"{source} must contain a JSON array")
    return data
