from __future__ import annotations

from pathlib import Path

import pytest

from baseline_probe.errors import MalformedInputError
from baseline_probe.validate import validate_tests


def test_validate_ok(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    tests = tmp_path / "tests.yml"
    tests.write_text(
        "base_url: https://example.test\n"
        "timeout: 5\n"
        "tests:\n"
        "  - name: login\n"
        "    method: POST\n"
        "    endpoint: /login\n"
        "    body:\n"
        "      email: a@b.com\n"
        "      password: x\n"
        "    expected_status: 200\n"
        "  - name: me\n"
        "    method: GET\n"
        "    endpoint: /me\n"
        "    auth: true\n"
        "    expected_status: 200\n",
        encoding="utf-8",
    )
    assert validate_tests(tests, require_env=True) == 0
    captured = capsys.readouterr()
    assert "2 tests OK" in captured.out
    assert captured.err == ""


def test_validate_warns_on_auth_before_login(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    tests = tmp_path / "tests.yml"
    tests.write_text(
        "tests:\n"
        "  - {name: me, method: GET, endpoint: /me, auth: true, expected_status: 200}\n"
        "  - {name: login, method: POST, endpoint: /login, expected_status: 200}\n",
        encoding="utf-8",
    )
    assert validate_tests(tests, require_env=False) == 0
    assert "tests[1] ('me') requires auth" in capsys.readouterr().err


def test_validate_require_env_fails_on_unexpanded(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("BASELINE_PROBE_TEST_PASSWORD", raising=False)
    tests = tmp_path / "tests.yml"
    tests.write_text(
        "base_url: https://example.test\n"
        "tests:\n"
        "  - method: POST\n"
        "    endpoint: /login\n"
        "    body: {password: '${BASELINE_PROBE_TEST_PASSWORD}'}\n"
        "    expected_status: 200\n",
        encoding="utf-8",
    )
    assert validate_tests(tests, require_env=True) == 2
    assert validate_tests(tests, require_env=False) == 0


def test_validate_rejects_bad_base_url(tmp_path: Path) -> None:
    tests = tmp_path / "tests.yml"
    tests.write_text(
        "base_url: example.test\n"
        "tests:\n  - {method: GET, endpoint: /, expected_status: 200}\n",
        encoding="utf-8",
    )
    with pytest.raises(SystemExit, match="base_url must start with http"):
        validate_tests(tests, require_env=False)


@pytest.mark.parametrize(
    ("line", "message"),
    [
        ("timeout: 0", "timeout must be > 0"),
        ("timeout: fast", "timeout must be a number"),
        ("verify_tls: maybe", "verify_tls must be a boolean"),
        ("token_field: ''", "token_field must be a non-empty string"),
    ],
)
def test_validate_rejects_bad_options(tmp_path: Path, line: str, message: str) -> None:
    tests = tmp_path / "tests.yml"
    tests.write_text(
        line + "\ntests:\n  - {method: GET, endpoint: /, expected_status: 200}\n",
        encoding="utf-8",
    )
    with pytest.raises(SystemExit, match=message):
        validate_tests(tests, require_env=False)


def test_validate_rejects_malformed_case(tmp_path: Path) -> None:
    tests = tmp_path / "tests.yml"
    tests.write_text(
        "tests:\n  - {name: broken, method: FETCH, endpoint: /, expected_status: 200}\n",
        encoding="utf-8",
    )
    with pytest.raises(MalformedInputError, match="broken"):
        validate_tests(tests, require_env=False)
