from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from .document import find_unexpanded_env_vars, load_document
from .errors import ConfigurationError
from .loader import parse_cases
from .runner import DEFAULT_LOGIN_ENDPOINT


def _require_optional_non_empty_str(value: Any, *, name: str) -> None:
    if value is None:
        return
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{name} must be a non-empty string")


def _require_bool(value: Any, *, name: str) -> None:
    if value is None:
        return
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a boolean")


def _require_positive_number(value: Any, *, name: str) -> None:
    if value is None:
        return
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number")
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0")


def validate_tests(tests_path: Path, *, require_env: bool) -> int:
    document = load_document(tests_path)
    cases = parse_cases(document)

    base_url = document.get("base_url")
    _require_optional_non_empty_str(base_url, name="base_url")
    if isinstance(base_url, str) and not base_url.startswith(("http://", "https://")):
        # May still be an unexpanded $VAR; only flag literal values.
        if not find_unexpanded_env_vars(base_url):
            raise ConfigurationError("base_url must start with http:// or https://")
    _require_optional_non_empty_str(document.get("login_endpoint"), name="login_endpoint")
    _require_optional_non_empty_str(document.get("token_field"), name="token_field")
    _require_optional_non_empty_str(document.get("proxy"), name="proxy")
    _require_positive_number(document.get("timeout"), name="timeout")
    _require_bool(document.get("verify_tls"), name="verify_tls")
    _require_bool(document.get("follow_redirects"), name="follow_redirects")

    login_endpoint = document.get("login_endpoint") or DEFAULT_LOGIN_ENDPOINT
    seen_login = False
    for idx, case in enumerate(cases, start=1):
        if case.endpoint == login_endpoint:
            seen_login = True
        elif case.requires_auth and not seen_login:
            print(
                f"warning: tests[{idx}] ({case.name!r}) requires auth but no earlier test "
                f"targets {login_endpoint}",
                file=sys.stderr,
            )

    missing = find_unexpanded_env_vars(document)
    if missing:
        msg = "unexpanded env vars found: " + ", ".join(sorted(missing))
        if require_env:
            print(msg, file=sys.stderr)
            return 2
        print("warning: " + msg, file=sys.stderr)

    print(f"{tests_path}: {len(cases)} tests OK")
    return 0
