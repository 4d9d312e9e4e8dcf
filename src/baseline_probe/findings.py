from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

SEVERITY_OK = "ok"
SEVERITY_WARN = "warn"
SEVERITY_FAIL = "fail"
SEVERITIES = (SEVERITY_OK, SEVERITY_WARN, SEVERITY_FAIL)


@dataclass(frozen=True)
class ProbeFinding:
    scenario: str
    severity: str
    message: str

    def __post_init__(self) -> None:
        if self.severity not in SEVERITIES:
            raise ValueError(f"severity must be one of: {', '.join(SEVERITIES)}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "severity": self.severity,
            "message": self.message,
        }


def severity_rank(value: Any) -> int:
    if value == SEVERITY_FAIL:
        return 2
    if value == SEVERITY_WARN:
        return 1
    return 0


def key(item: Mapping[str, Any]) -> str:
    """Stable identity for a persisted result row."""
    method = item.get("method")
    name = item.get("test_name")
    endpoint = item.get("endpoint")

    if isinstance(method, str):
        m = method.upper()
    else:
        m = "GET"

    if isinstance(name, str) and name:
        return f"{m} {name}"
    if isinstance(endpoint, str) and endpoint:
        return f"{m} {endpoint}"
    return m


def keyed(items: Iterable[Mapping[str, Any]]) -> list[tuple[str, Mapping[str, Any]]]:
    """Pair each row with a key that is unique within ``items``.

    Test names need not be unique, so the second and later rows sharing a
    ``key`` get a ``#n`` suffix (``GET get user #2``) counted in file order.
    """
    seen: dict[str, int] = {}
    out: list[tuple[str, Mapping[str, Any]]] = []
    for item in items:
        base = key(item)
        seen[base] = seen.get(base, 0) + 1
        n = seen[base]
        out.append((base if n == 1 else f"{base} #{n}", item))
    return out


def is_transport_error(item: Mapping[str, Any]) -> bool:
    return item.get("actual_status") == 0


def is_passed(item: Mapping[str, Any]) -> bool:
    actual = item.get("actual_status")
    expected = item.get("expected_status")
    if not isinstance(actual, int) or not isinstance(expected, int):
        return False
    return actual != 0 and actual == expected
