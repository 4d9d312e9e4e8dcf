from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

from .errors import ConfigurationError
from .findings import ProbeFinding
from .jsonl import is_stdio, writing

FORMAT_JSONL = "jsonl"
FORMAT_JSON = "json"
FORMATS = (FORMAT_JSONL, FORMAT_JSON)


def check_writable(path: Path) -> None:
    """Fail fast on an output path that could never be written."""
    if is_stdio(path):
        return
    if path.is_dir():
        raise ConfigurationError(f"output path is a directory: {path}")
    existing = path.parent
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent
    if not existing.is_dir():
        raise ConfigurationError(f"cannot write {path}: {existing} is not a directory")
    target = path if path.exists() else existing
    if not os.access(target, os.W_OK):
        raise ConfigurationError(f"cannot write {path}: permission denied")


class _Record(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


class ResultSink:
    """Append-only, ordered store of run records, persisted by ``flush``.

    ``jsonl`` writes one object per line; ``json`` writes one indented array.
    ``Path("-")`` writes to stdout.
    """

    def __init__(self, out_path: Path, *, fmt: str = FORMAT_JSONL) -> None:
        if fmt not in FORMATS:
            raise ConfigurationError(f"output format must be one of: {', '.join(FORMATS)}")
        check_writable(out_path)
        self.out_path = out_path
        self.fmt = fmt
        self._records: list[_Record] = []

    def record(self, result: _Record) -> None:
        self._records.append(result)

    def record_finding(self, finding: ProbeFinding) -> None:
        self._records.append(finding)

    @property
    def records(self) -> list[_Record]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def rows(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self._records]

    def flush(self) -> None:
        rows = self.rows()
        try:
            with writing(self.out_path) as out:
                if self.fmt == FORMAT_JSON:
                    out.write(json.dumps(rows, indent=2, ensure_ascii=False) + "\n")
                    return
                for row in rows:
                    out.write(json.dumps(row, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise ConfigurationError(
                f"could not write {self.out_path}: {exc.strerror or exc}"
            ) from exc

    @property
    def label(self) -> str:
        return "stdout" if is_stdio(self.out_path) else str(self.out_path)
