from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .document import load_document
from .errors import MalformedInputError

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD")


@dataclass(frozen=True)
class TestCase:
    name: str
    method: str
    endpoint: str
    expected_status: int
    body: Any = None
    requires_auth: bool = False
    headers: dict[str, str] = field(default_factory=dict)

    # Keep pytest from collecting this class when imported into test modules.
    __test__ = False


def _label(idx: int, raw: Mapping[str, Any]) -> str:
    name = raw.get("name")
    if isinstance(name, str) and name:
        return f"tests[{idx}] ({name!r})"
    return f"tests[{idx}]"


def _fail(idx: int, raw: Mapping[str, Any], problem: str) -> MalformedInputError:
    name = raw.get("name")
    return MalformedInputError(
        f"{_label(idx, raw)} {problem}",
        position=idx,
        name=name if isinstance(name, str) else None,
    )


def _parse_case(idx: int, raw: Any) -> TestCase:
    if not isinstance(raw, dict):
        raise MalformedInputError(f"tests[{idx}] must be a mapping", position=idx)

    for key in ("method", "endpoint", "expected_status"):
        if raw.get(key) is None:
            raise _fail(idx, raw, f"is missing required field {key!r}")

    method = raw["method"]
    if not isinstance(method, str) or method.upper() not in HTTP_METHODS:
        raise _fail(idx, raw, "method must be one of: " + ", ".join(HTTP_METHODS))

    endpoint = raw["endpoint"]
    if not isinstance(endpoint, str) or not endpoint:
        raise _fail(idx, raw, "endpoint must be a non-empty string")

    status = raw["expected_status"]
    if isinstance(status, str) and status.strip().isdigit():
        status = int(status.strip())
    if not isinstance(status, int) or isinstance(status, bool) or not 100 <= status <= 599:
        raise _fail(idx, raw, "expected_status must be an HTTP status code (100-599)")

    name = raw.get("name")
    if name is None:
        name = f"{method.upper()} {endpoint}"
    elif not isinstance(name, str):
        raise _fail(idx, raw, "name must be a string")

    auth = raw.get("auth", False)
    if auth is None:
        auth = False
    if not isinstance(auth, bool):
        raise _fail(idx, raw, "auth must be a boolean")

    headers = raw.get("headers") or {}
    if not isinstance(headers, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
    ):
        raise _fail(idx, raw, "headers must be a mapping of string->string")
    if any(k.lower() == "authorization" for k in headers):
        raise _fail(idx, raw, "headers must not set Authorization (use auth: true)")

    return TestCase(
        name=name,
        method=method.upper(),
        endpoint=endpoint,
        expected_status=status,
        body=raw.get("body"),
        requires_auth=auth,
        headers=dict(headers),
    )


def parse_cases(document: Mapping[str, Any]) -> list[TestCase]:
    """Turn a parsed document into test cases, in declaration order.

    Every entry is checked before anything is returned, so a malformed entry
    anywhere in the list stops the run before a single request goes out.
    """
    tests = document.get("tests")
    if tests is None:
        raise MalformedInputError("document must include a 'tests' list")
    if not isinstance(tests, list):
        raise MalformedInputError("'tests' must be a list")
    return [_parse_case(idx, raw) for idx, raw in enumerate(tests, start=1)]


def load_cases(path: Path) -> list[TestCase]:
    return parse_cases(load_document(path))
