from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Callable

import pytest
import requests

from baseline_probe.console import Console
from baseline_probe.errors import ConfigurationError, MalformedInputError, TransportError
from baseline_probe.executor import HttpResponse
from baseline_probe.loader import TestCase
from baseline_probe.runner import TestResult, run_cases, run_suite
from baseline_probe.session import Session
from baseline_probe.sink import ResultSink


class _FakeExecutor:
    def __init__(self, respond: Callable[[dict[str, Any]], HttpResponse]) -> None:
        self.respond = respond
        self.calls: list[dict[str, Any]] = []

    def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        call = {"method": method, "path": path, "body": body, "headers": dict(headers or {})}
        self.calls.append(call)
        return self.respond(call)


class _Resp:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": "application/json"}


def _login_then_protected(call: dict[str, Any]) -> HttpResponse:
    if call["path"] == "/login":
        return HttpResponse(200, body='{"token":"abc123"}')
    if call["headers"].get("Authorization") == "Bearer abc123":
        return HttpResponse(200, body="[]")
    return HttpResponse(401, body='{"error":"unauthorized"}')


def _cases() -> list[TestCase]:
    return [
        TestCase("users anonymous", "GET", "/users", 401),
        TestCase(
            "login", "POST", "/login", 200, body={"email": "a@b.com", "password": "x"}
        ),
        TestCase("users authed", "GET", "/users", 200, requires_auth=True),
        TestCase("users anonymous again", "GET", "/users", 401),
    ]


def test_login_captures_token_for_authenticated_cases() -> None:
    executor = _FakeExecutor(_login_then_protected)
    session = Session()
    results = run_cases(_cases(), session, executor)

    assert session.token == "abc123"
    assert executor.calls[2]["headers"]["Authorization"] == "Bearer abc123"
    assert [r.passed for r in results] == [True, True, True, True]


def test_unauthenticated_cases_never_send_authorization() -> None:
    executor = _FakeExecutor(_login_then_protected)
    session = Session("preexisting")
    run_cases(_cases(), session, executor)

    for call, case in zip(executor.calls, _cases()):
        if not case.requires_auth:
            assert "Authorization" not in call["headers"]


def test_expected_401_passes_on_401() -> None:
    executor = _FakeExecutor(lambda _c: HttpResponse(401, body="nope"))
    case = TestCase("list users", "GET", "/users", 401)
    [result] = run_cases([case], Session(), executor)
    assert result.passed is True
    assert result.actual_status == 401
    assert result.response_body == "nope"


def test_expected_401_fails_on_200() -> None:
    executor = _FakeExecutor(lambda _c: HttpResponse(200, body="[]"))
    case = TestCase("list users", "GET", "/users", 401)
    [result] = run_cases([case], Session(), executor)
    assert result.passed is False
    assert result.actual_status == 200
    assert result.to_dict()["actual_status"] == 200


def test_transport_error_is_recorded_and_run_continues() -> None:
    def respond(call: dict[str, Any]) -> HttpResponse:
        if call["path"] == "/flaky":
            raise TransportError(call["method"], "https://example.test/flaky", "refused")
        return HttpResponse(200)

    executor = _FakeExecutor(respond)
    cases = [
        TestCase("a", "GET", "/a", 200),
        TestCase("flaky", "GET", "/flaky", 200),
        TestCase("b", "GET", "/b", 200),
    ]
    results = run_cases(cases, Session(), executor)

    assert [r.name for r in results] == ["a", "flaky", "b"]
    assert results[1].actual_status == 0
    assert results[1].passed is False
    assert results[1].error is not None and "refused" in results[1].error
    assert results[2].passed is True


def test_transport_error_never_passes_even_if_zero_expected() -> None:
    result = TestResult("x", "GET", "/", 200, 0, "", error="boom")
    assert result.passed is False


def test_login_without_token_leaves_session_unset() -> None:
    stream = io.StringIO()
    executor = _FakeExecutor(
        lambda c: HttpResponse(200, body="<html>welcome</html>")
        if c["path"] == "/login"
        else HttpResponse(401)
    )
    session = Session()
    cases = [
        TestCase("login", "POST", "/login", 200, body={}),
        TestCase("me", "GET", "/me", 200, requires_auth=True),
    ]
    results = run_cases(cases, session, executor, console=Console(stream, color=False))

    assert session.token is None
    assert "Authorization" not in executor.calls[1]["headers"]
    assert results[1].passed is False
    assert "[WARN]" in stream.getvalue()


def test_failed_login_does_not_capture() -> None:
    executor = _FakeExecutor(lambda _c: HttpResponse(401, body='{"token":"leaked"}'))
    session = Session()
    run_cases([TestCase("login", "POST", "/login", 401, body={})], session, executor)
    assert session.token is None


def test_later_login_replaces_token() -> None:
    tokens = iter(["first", "second"])
    executor = _FakeExecutor(
        lambda c: HttpResponse(200, body=json.dumps({"token": next(tokens)}))
        if c["path"] == "/login"
        else HttpResponse(200)
    )
    session = Session()
    cases = [
        TestCase("login 1", "POST", "/login", 200, body={}),
        TestCase("login 2", "POST", "/login", 200, body={}),
        TestCase("me", "GET", "/me", 200, requires_auth=True),
    ]
    run_cases(cases, session, executor)
    assert executor.calls[2]["headers"]["Authorization"] == "Bearer second"


def test_custom_login_endpoint_and_token_field() -> None:
    executor = _FakeExecutor(
        lambda c: HttpResponse(200, body='{"access_token":"xyz"}')
        if c["path"] == "/auth/token"
        else HttpResponse(200)
    )
    session = Session()
    run_cases(
        [TestCase("login", "POST", "/auth/token", 200, body={})],
        session,
        executor,
        login_endpoint="/auth/token",
        token_field="access_token",
    )
    assert session.token == "xyz"


def test_results_preserve_order_and_length() -> None:
    executor = _FakeExecutor(lambda c: HttpResponse(404 if c["path"] == "/b" else 200))
    cases = [TestCase(n, "GET", f"/{n}", 200) for n in "abcde"]
    sink = ResultSink(Path("-"))
    results = run_cases(cases, Session(), executor, sink=sink)
    assert [r.name for r in results] == list("abcde")
    assert [r.name for r in sink.records] == list("abcde")  # type: ignore[attr-defined]


def test_console_lines(capsys: pytest.CaptureFixture[str]) -> None:
    executor = _FakeExecutor(lambda c: HttpResponse(200 if c["path"] == "/ok" else 500))
    run_cases(
        [TestCase("good", "GET", "/ok", 200), TestCase("bad", "GET", "/bad", 200)],
        Session(),
        executor,
        console=Console(color=False),
    )
    out = capsys.readouterr().out
    assert "[PASS] good  (GET /ok)" in out
    assert "[FAIL] bad  (GET /bad)" in out
    assert "Expected: 200, Got: 500" in out


def _write_doc(tmp_path: Path, base_url: str = "https://example.test") -> Path:
    path = tmp_path / "tests.json"
    path.write_text(
        json.dumps(
            {
                "base_url": base_url,
                "tests": [
                    {"name": "anon", "method": "GET", "endpoint": "/users", "expected_status": 401},
                    {
                        "name": "login",
                        "method": "POST",
                        "endpoint": "/login",
                        "body": {"email": "a@b.com", "password": "x"},
                        "expected_status": 200,
                    },
                    {
                        "name": "authed",
                        "method": "GET",
                        "endpoint": "/users",
                        "expected_status": 200,
                        "auth": True,
                    },
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def test_run_suite_writes_results(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[dict[str, Any]] = []

    def fake_request(*args: Any, **kwargs: Any) -> _Resp:
        seen.append({"method": args[1], "url": args[2], **kwargs})
        if str(args[2]).endswith("/login"):
            return _Resp(200, '{"token":"abc123"}')
        if kwargs["headers"].get("Authorization") == "Bearer abc123":
            return _Resp(200, "[]")
        return _Resp(401, '{"error":"unauthorized"}')

    monkeypatch.setattr(requests.sessions.Session, "request", fake_request)

    out = tmp_path / "results.jsonl"
    rc = run_suite(_write_doc(tmp_path), out, console=Console(io.StringIO(), color=False))
    assert rc == 0

    rows = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert [r["test_name"] for r in rows] == ["anon", "login", "authed"]
    assert rows[0] == {
        "test_name": "anon",
        "method": "GET",
        "endpoint": "/users",
        "expected_status": 401,
        "actual_status": 401,
        "response_body": '{"error":"unauthorized"}',
    }
    assert rows[2]["actual_status"] == 200
    assert seen[1]["json"] == {"email": "a@b.com", "password": "x"}


def test_run_suite_exit_code_ignores_failures(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        requests.sessions.Session, "request", lambda *_a, **_k: _Resp(500, "boom")
    )
    out = tmp_path / "results.json"
    console = Console(io.StringIO(), color=False)
    assert run_suite(_write_doc(tmp_path), out, fmt="json", console=console) == 0
    rows = json.loads(out.read_text(encoding="utf-8"))
    assert len(rows) == 3
    assert all(r["actual_status"] == 500 for r in rows)

    assert (
        run_suite(_write_doc(tmp_path), out, fail_on_mismatch=True, console=console) == 2
    )


def test_run_suite_unreachable_target(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(*_args: Any, **_kwargs: Any) -> Any:
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests.sessions.Session, "request", fake_request)
    out = tmp_path / "results.jsonl"
    rc = run_suite(_write_doc(tmp_path), out, console=Console(io.StringIO(), color=False))

    assert rc == 3
    rows = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert len(rows) == 3
    assert all(r["actual_status"] == 0 for r in rows)


def test_malformed_document_issues_no_requests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = 0

    def fake_request(*_args: Any, **_kwargs: Any) -> _Resp:
        nonlocal calls
        calls += 1
        return _Resp(200)

    monkeypatch.setattr(requests.sessions.Session, "request", fake_request)
    path = tmp_path / "tests.json"
    path.write_text(
        '{"base_url": "https://example.test", "tests": ['
        '{"name": "fine", "method": "GET", "endpoint": "/a", "expected_status": 200},'
        '{"name": "no status", "method": "GET", "endpoint": "/b"}]}',
        encoding="utf-8",
    )
    out = tmp_path / "results.jsonl"
    with pytest.raises(MalformedInputError, match="no status"):
        run_suite(path, out, console=Console(io.StringIO(), color=False))
    assert calls == 0
    assert not out.exists()


def test_run_suite_requires_base_url(tmp_path: Path) -> None:
    path = tmp_path / "tests.json"
    path.write_text(
        '{"tests": [{"method": "GET", "endpoint": "/a", "expected_status": 200}]}',
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="base_url"):
        run_suite(path, tmp_path / "out.jsonl", console=Console(io.StringIO(), color=False))


def test_run_suite_base_url_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    urls: list[str] = []

    def fake_request(*args: Any, **_kwargs: Any) -> _Resp:
        urls.append(str(args[2]))
        return _Resp(200)

    monkeypatch.setattr(requests.sessions.Session, "request", fake_request)
    run_suite(
        _write_doc(tmp_path),
        tmp_path / "out.jsonl",
        base_url="http://127.0.0.1:9999/api",
        console=Console(io.StringIO(), color=False),
    )
    assert urls[0] == "http://127.0.0.1:9999/api/users"


def test_run_suite_only_name(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(requests.sessions.Session, "request", lambda *_a, **_k: _Resp(401))
    out = tmp_path / "out.jsonl"
    console = Console(io.StringIO(), color=False)
    run_suite(_write_doc(tmp_path), out, only_names=["anon"], console=console)
    assert len(out.read_text(encoding="utf-8").splitlines()) == 1

    with pytest.raises(ConfigurationError, match="no tests matched"):
        run_suite(_write_doc(tmp_path), out, only_names=["missing"], console=console)


def test_authorization_in_case_headers_is_dropped_without_auth() -> None:
    executor = _FakeExecutor(lambda _c: HttpResponse(401))
    case = TestCase(
        "anon", "GET", "/users", 401, headers={"authorization": "Bearer stale", "X-Trace": "1"}
    )
    run_cases([case], Session("abc123"), executor)
    assert executor.calls[0]["headers"] == {"X-Trace": "1"}


@pytest.mark.parametrize("layout", ["directory", "file-parent"])
def test_unwritable_out_path_fails_before_any_request(tmp_path: Path, layout: str) -> None:
    if layout == "directory":
        out = tmp_path / "outdir"
        out.mkdir()
    else:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        out = blocker / "results.jsonl"

    executor = _FakeExecutor(lambda _c: HttpResponse(200))
    with pytest.raises(ConfigurationError, match="cannot write|is a directory"):
        run_suite(
            _write_doc(tmp_path),
            out,
            console=Console(io.StringIO(), color=False),
            executor=executor,
        )
    assert executor.calls == []
