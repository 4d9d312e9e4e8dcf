from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol

from .console import Console
from .document import load_document
from .errors import ConfigurationError, TransportError
from .executor import DEFAULT_TIMEOUT, HttpExecutor, HttpResponse
from .loader import TestCase, parse_cases
from .session import Session, extract_token
from .sink import FORMAT_JSONL, ResultSink

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_ENDPOINT = "/login"
DEFAULT_TOKEN_FIELD = "token"

NO_RESPONSE = 0

EXIT_OK = 0
EXIT_MISMATCH = 2
EXIT_UNREACHABLE = 3


class Executor(Protocol):
    def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse: ...


@dataclass(frozen=True)
class TestResult:
    name: str
    method: str
    endpoint: str
    expected_status: int
    actual_status: int
    response_body: str
    error: str | None = None

    __test__ = False

    @property
    def passed(self) -> bool:
        return self.actual_status != NO_RESPONSE and self.actual_status == self.expected_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_name": self.name,
            "method": self.method,
            "endpoint": self.endpoint,
            "expected_status": self.expected_status,
            "actual_status": self.actual_status,
            "response_body": self.response_body,
        }


def _is_login(case: TestCase, login_endpoint: str) -> bool:
    return case.endpoint == login_endpoint


def _capture_token(
    response: HttpResponse,
    session: Session,
    *,
    token_field: str,
    console: Console | None,
) -> None:
    token = extract_token(response.body, token_field)
    if token is None:
        logger.warning("login response had no %r field; session left unset", token_field)
        if console is not None:
            console.warn(
                f"Login succeeded but no {token_field!r} in response; "
                "authenticated tests will be sent without credentials"
            )
        return
    session.set_token(token)
    logger.debug("captured session token (len %d)", len(token))
    if console is not None:
        console.info("Saved JWT token for authenticated requests")


def run_case(
    case: TestCase,
    session: Session,
    executor: Executor,
    *,
    login_endpoint: str = DEFAULT_LOGIN_ENDPOINT,
    token_field: str = DEFAULT_TOKEN_FIELD,
    console: Console | None = None,
) -> TestResult:
    # Credentials only ever come from the session, and only for auth cases.
    headers = {k: v for k, v in case.headers.items() if k.lower() != "authorization"}
    if case.requires_auth and session.has_token:
        headers.update(session.auth_header())

    try:
        response = executor.execute(case.method, case.endpoint, case.body, headers)
    except TransportError as exc:
        logger.warning("transport error for %r: %s", case.name, exc)
        result = TestResult(
            name=case.name,
            method=case.method,
            endpoint=case.endpoint,
            expected_status=case.expected_status,
            actual_status=NO_RESPONSE,
            response_body="",
            error=str(exc),
        )
    else:
        if _is_login(case, login_endpoint) and response.status == 200:
            _capture_token(response, session, token_field=token_field, console=console)
        result = TestResult(
            name=case.name,
            method=case.method,
            endpoint=case.endpoint,
            expected_status=case.expected_status,
            actual_status=response.status,
            response_body=response.body,
        )

    if console is not None:
        if result.passed:
            console.case_passed(result.name, result.method, result.endpoint)
        else:
            console.case_failed(
                result.name,
                result.method,
                result.endpoint,
                result.expected_status,
                result.actual_status,
            )
    return result


def run_cases(
    cases: Iterable[TestCase],
    session: Session,
    executor: Executor,
    *,
    login_endpoint: str = DEFAULT_LOGIN_ENDPOINT,
    token_field: str = DEFAULT_TOKEN_FIELD,
    console: Console | None = None,
    sink: ResultSink | None = None,
) -> list[TestResult]:
    """Execute cases one at a time, in order.

    Later cases may depend on the token captured by an earlier login case, so
    nothing here is ever run concurrently. A transport failure is recorded as
    a failed result with ``actual_status == 0`` and the run continues.
    """
    results: list[TestResult] = []
    for case in cases:
        result = run_case(
            case,
            session,
            executor,
            login_endpoint=login_endpoint,
            token_field=token_field,
            console=console,
        )
        results.append(result)
        if sink is not None:
            sink.record(result)
    return results


def target_unreachable(results: list[TestResult]) -> bool:
    return bool(results) and all(r.actual_status == NO_RESPONSE for r in results)


def _as_bool(value: Any, *, name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigurationError(f"{name} must be a boolean")


def _as_float(value: Any, *, name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ConfigurationError(f"{name} must be a number")


def _as_optional_str(value: Any, *, name: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise ConfigurationError(f"{name} must be a string")


def _as_non_empty_str(value: Any, *, name: str, default: str) -> str:
    parsed = _as_optional_str(value, name=name)
    if parsed is None:
        return default
    if not parsed:
        raise ConfigurationError(f"{name} must be a non-empty string")
    return parsed


def run_suite(
    tests_path: Path,
    out_path: Path,
    *,
    base_url: str | None = None,
    login_endpoint: str | None = None,
    token_field: str | None = None,
    timeout: float | None = None,
    verify_tls: bool | None = None,
    proxy: str | None = None,
    follow_redirects: bool | None = None,
    only_names: list[str] | None = None,
    fail_on_mismatch: bool = False,
    fmt: str = FORMAT_JSONL,
    console: Console | None = None,
    executor: Executor | None = None,
) -> int:
    """Load, run and persist a test-case document. Returns the exit code."""
    document = load_document(tests_path)
    cases = parse_cases(document)

    base_url_effective = base_url or _as_optional_str(document.get("base_url"), name="base_url")
    if not base_url_effective and executor is None:
        raise ConfigurationError("missing base_url (set it in the document or pass --base-url)")

    login_endpoint_effective = login_endpoint or _as_non_empty_str(
        document.get("login_endpoint"), name="login_endpoint", default=DEFAULT_LOGIN_ENDPOINT
    )
    token_field_effective = token_field or _as_non_empty_str(
        document.get("token_field"), name="token_field", default=DEFAULT_TOKEN_FIELD
    )

    if only_names:
        wanted = set(only_names)
        cases = [c for c in cases if c.name in wanted]
        if not cases:
            raise ConfigurationError(f"no tests matched filters: only-name={sorted(wanted)!r}")

    sink = ResultSink(out_path, fmt=fmt)

    owned_executor: HttpExecutor | None = None
    if executor is None:
        timeout_effective = (
            timeout
            if timeout is not None
            else _as_float(document.get("timeout"), name="timeout", default=DEFAULT_TIMEOUT)
        )
        owned_executor = HttpExecutor(
            str(base_url_effective),
            timeout=timeout_effective,
            verify_tls=(
                verify_tls
                if verify_tls is not None
                else _as_bool(document.get("verify_tls"), name="verify_tls", default=True)
            ),
            proxy=proxy or _as_optional_str(document.get("proxy"), name="proxy"),
            follow_redirects=(
                follow_redirects
                if follow_redirects is not None
                else _as_bool(
                    document.get("follow_redirects"), name="follow_redirects", default=False
                )
            ),
        )
        executor = owned_executor

    if console is None:
        console = Console()
    console.line("Running baseline tests...")
    console.line("===========================")

    session = Session()
    try:
        results = run_cases(
            cases,
            session,
            executor,
            login_endpoint=login_endpoint_effective,
            token_field=token_field_effective,
            console=console,
            sink=sink,
        )
    finally:
        if owned_executor is not None:
            owned_executor.close()

    sink.flush()

    passed = sum(1 for r in results if r.passed)
    failed = len(results) - passed
    console.line()
    console.line(
        f"Baseline testing complete: {passed} passed, {failed} failed "
        f"({len(results)} total). Results saved to {sink.label}"
    )

    if target_unreachable(results):
        logger.error("no response from %s for any request", base_url_effective)
        return EXIT_UNREACHABLE
    if fail_on_mismatch and failed:
        return EXIT_MISMATCH
    return EXIT_OK
