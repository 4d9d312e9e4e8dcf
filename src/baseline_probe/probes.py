"""Scripted security and robustness probes.

Every probe is a function ``(executor, session, config) -> list[ProbeFinding]``.
The mapping from an observed status (or headers) to a severity lives in small
``classify_*`` functions so it can be checked without a server.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Mapping, Protocol
from urllib.parse import quote

from .config import Burst, ProbeConfig
from .console import Console
from .errors import ConfigurationError, TransportError
from .executor import HttpResponse
from .findings import SEVERITY_FAIL, SEVERITY_OK, SEVERITY_WARN, ProbeFinding
from .session import Session, extract_token
from .sink import ResultSink

logger = logging.getLogger(__name__)


class ProbeExecutor(Protocol):
    def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        data: str | None = None,
    ) -> HttpResponse: ...


Probe = Callable[[ProbeExecutor, Session, ProbeConfig], list[ProbeFinding]]


def _is_2xx(status: int) -> bool:
    return 200 <= status < 300


def _is_4xx(status: int) -> bool:
    return 400 <= status < 500


def _is_5xx(status: int) -> bool:
    return 500 <= status < 600


def classify_unauthenticated(status: int) -> str:
    if status in (401, 403):
        return SEVERITY_OK
    if _is_2xx(status):
        return SEVERITY_FAIL
    return SEVERITY_WARN


def classify_idor(status: int) -> str:
    if status in (401, 403, 404):
        return SEVERITY_OK
    return SEVERITY_WARN


def classify_injection(status: int) -> str:
    if _is_4xx(status):
        return SEVERITY_OK
    return SEVERITY_WARN


def classify_tampered_token(status: int) -> str:
    if status in (401, 403):
        return SEVERITY_OK
    return SEVERITY_WARN


def classify_rate_limit(statuses: Iterable[int]) -> str:
    return SEVERITY_OK if any(s == 429 for s in statuses) else SEVERITY_WARN


def classify_content_type(statuses: Iterable[int]) -> str:
    seen = list(statuses)
    if seen and all(_is_4xx(s) for s in seen):
        return SEVERITY_OK
    return SEVERITY_WARN


def classify_cors(headers: Mapping[str, str]) -> str:
    lowered = {k.lower() for k in headers}
    if "access-control-allow-origin" in lowered and "access-control-allow-methods" in lowered:
        return SEVERITY_OK
    return SEVERITY_WARN


def classify_register(status: int) -> str:
    return SEVERITY_OK if status == 201 else SEVERITY_WARN


def tamper_token(token: str) -> str:
    """Flip exactly one character of ``token``."""
    if not token:
        raise ValueError("cannot tamper with an empty token")
    if "a" in token:
        return token.replace("a", "b", 1)
    return token[:-1] + "a"


SECURITY_HEADERS: tuple[tuple[str, str | None, str], ...] = (
    ("X-Content-Type-Options", "nosniff", "X-Content-Type-Options"),
    ("X-Frame-Options", None, "X-Frame-Options"),
    ("Content-Security-Policy", None, "Content-Security-Policy"),
    ("Referrer-Policy", None, "Referrer-Policy"),
    ("Strict-Transport-Security", None, "HSTS (HTTPS expected?)"),
)


def probe_security_headers(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    resp = executor.execute("HEAD", config.security_headers_path)
    findings: list[ProbeFinding] = []
    for header, required_value, label in SECURITY_HEADERS:
        value = resp.headers.get(header)
        present = value is not None and (
            required_value is None or required_value in value.lower()
        )
        if present:
            findings.append(
                ProbeFinding("security-headers", SEVERITY_OK, f"{header} present")
            )
        else:
            findings.append(
                ProbeFinding("security-headers", SEVERITY_WARN, f"Missing {label}")
            )
    return findings


def probe_register(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    payload = dict(config.login_payload(), name=config.display_name)
    status = executor.execute("POST", config.register_endpoint, payload).status
    severity = classify_register(status)
    if status == 201:
        message = "Registered new user"
    elif status == 409:
        message = "User already exists (409). Continuing."
    else:
        message = f"Register returned {status}; continuing."
    return [ProbeFinding("register", severity, message)]


def probe_login(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    resp = executor.execute("POST", config.login_endpoint, config.login_payload())
    if resp.status != 200:
        return [
            ProbeFinding(
                "login",
                SEVERITY_FAIL,
                f"Expected HTTP 200 for {config.login_endpoint}, got {resp.status}",
            )
        ]
    token = extract_token(resp.body, config.token_field)
    if token is None:
        return [ProbeFinding("login", SEVERITY_FAIL, "No token returned")]
    session.set_token(token)
    return [ProbeFinding("login", SEVERITY_OK, f"Got token (len {len(token)})")]


def probe_unauthenticated(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    findings: list[ProbeFinding] = []
    for path in config.protected_paths:
        status = executor.execute("GET", path).status
        severity = classify_unauthenticated(status)
        if severity == SEVERITY_OK:
            message = f"{path} protected ({status})"
        elif severity == SEVERITY_FAIL:
            message = f"{path} served {status} without credentials"
        else:
            message = f"{path} returned {status} without credentials; check if intended public"
        findings.append(ProbeFinding("unauthenticated", severity, message))
    return findings


def probe_crud(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    auth = session.auth_header()
    collection = config.crud_collection_path.rstrip("/")
    findings: list[ProbeFinding] = []

    def expect(want: int, desc: str, resp: HttpResponse) -> None:
        if resp.status == want:
            findings.append(
                ProbeFinding("crud", SEVERITY_OK, f"HTTP {want} as expected for {desc}")
            )
        else:
            message = f"Expected HTTP {want} for {desc}, got {resp.status}"
            findings.append(ProbeFinding("crud", SEVERITY_FAIL, message))

    created = executor.execute("POST", collection, config.crud_create_body, auth)
    expect(201, f"POST {collection}", created)
    data = created.json()
    resource_id = data.get(config.crud_id_field) if isinstance(data, dict) else None
    if resource_id is None or resource_id == "":
        findings.append(ProbeFinding("crud", SEVERITY_FAIL, "No id from create"))
        return findings
    findings.append(ProbeFinding("crud", SEVERITY_OK, f"Created resource id={resource_id}"))

    item = f"{collection}/{resource_id}"
    expect(200, f"GET {collection}/{{id}}", executor.execute("GET", item, None, auth))
    expect(
        200,
        f"PUT {collection}/{{id}}",
        executor.execute("PUT", item, config.crud_update_body, auth),
    )
    expect(200, f"DELETE {collection}/{{id}}", executor.execute("DELETE", item, None, auth))
    return findings


def probe_idor(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    status = executor.execute(
        config.idor_method, config.idor_path, config.idor_body, session.auth_header()
    ).status
    messages = {
        401: "Unauthorized without scope",
        403: "IDOR blocked with 403",
        404: "Not found or access-controlled",
        200: f"Potential IDOR: {config.idor_method} {config.idor_path} succeeded",
    }
    message = messages.get(status, f"Unexpected {status} on IDOR probe")
    return [ProbeFinding("idor", classify_idor(status), message)]


def probe_injection(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    auth = session.auth_header()
    findings: list[ProbeFinding] = []

    path = config.injection_path_prefix + quote(config.injection_payload, safe="=")
    status = executor.execute("GET", path, None, auth).status
    if _is_4xx(status):
        message = f"Handled suspicious ID safely ({status})"
    elif _is_5xx(status):
        message = f"{status} on odd ID; check sanitization/handlers (possible unhandled input)"
    elif _is_2xx(status):
        message = f"Returned {status} on suspicious ID; verify validators"
    else:
        message = f"Unexpected code {status} for suspicious ID"
    findings.append(ProbeFinding("injection", classify_injection(status), message))

    status = executor.execute(
        "POST", config.injection_collection_path, config.injection_body, auth
    ).status
    if _is_4xx(status):
        message = f"Rejected suspicious payload ({status})"
    elif _is_5xx(status):
        message = (
            f"{status} on SQL-like payload; check sanitization/handlers "
            "(possible unhandled input)"
        )
    elif _is_2xx(status):
        message = f"SQL-like value accepted ({status}); OK if parameterized, review"
    else:
        message = f"Unexpected code {status} for SQL-like payload"
    findings.append(ProbeFinding("injection", classify_injection(status), message))
    return findings


def probe_tampered_token(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    if not session.has_token:
        return [ProbeFinding("tampered-token", SEVERITY_WARN, "No token available; skipped")]
    bad = tamper_token(str(session.token))
    status = executor.execute(
        "GET", config.tamper_path, None, {"Authorization": f"Bearer {bad}"}
    ).status
    severity = classify_tampered_token(status)
    if severity == SEVERITY_OK:
        message = f"Tampered token rejected ({status})"
    elif status == 200:
        message = "Tampered token accepted! Investigate JWT validation."
    else:
        message = f"Unexpected {status} for tampered token"
    return [ProbeFinding("tampered-token", severity, message)]


def rate_limit_burst(
    executor: ProbeExecutor,
    session: Session,
    burst: Burst,
    *,
    login_payload: Any = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeFinding:
    """Send ``burst.count`` requests one after another, pausing between them."""
    headers = session.auth_header() if burst.auth else {}
    body = login_payload if burst.login_body else burst.body
    statuses: list[int] = []
    no_response = 0
    for _ in range(burst.count):
        try:
            statuses.append(executor.execute(burst.method, burst.path, body, headers).status)
        except TransportError as exc:
            logger.warning("rate-limit burst request failed: %s", exc)
            no_response += 1
        sleep(burst.delay_s)

    limited = sum(1 for s in statuses if s == 429)
    severity = classify_rate_limit(statuses)
    if severity == SEVERITY_OK:
        message = f"Saw {limited} x 429 on {burst.label}"
    else:
        message = f"No 429s on {burst.label} after {burst.count} requests; consider rate limits"
    if no_response:
        message += f" ({no_response} without response)"
    return ProbeFinding("rate-limit", severity, message)


def probe_rate_limit(
    executor: ProbeExecutor,
    session: Session,
    config: ProbeConfig,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> list[ProbeFinding]:
    findings: list[ProbeFinding] = []
    for burst in config.bursts:
        payload = config.login_payload() if burst.login_body else None
        findings.append(
            rate_limit_burst(executor, session, burst, login_payload=payload, sleep=sleep)
        )
    return findings


def probe_content_type(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    auth = session.auth_header()
    path = config.content_type_path
    missing = executor.execute("POST", path, None, auth, data='{"name":"NoHeader"}').status
    wrong = executor.execute(
        "POST",
        path,
        None,
        dict(auth, **{"Content-Type": "text/plain"}),
        data='{"name":"WrongType"}',
    ).status

    def describe(label: str, status: int) -> str:
        verb = "rejected" if _is_4xx(status) else "accepted"
        return f"{verb} {label} ({status})"

    severity = classify_content_type([missing, wrong])
    message = "; ".join(
        [describe("request without Content-Type", missing), describe("wrong Content-Type", wrong)]
    )
    return [ProbeFinding("content-type", severity, message[:1].upper() + message[1:])]


def probe_cors(
    executor: ProbeExecutor, session: Session, config: ProbeConfig
) -> list[ProbeFinding]:
    resp = executor.execute(
        "OPTIONS",
        config.cors_path,
        None,
        {
            "Origin": config.cors_origin,
            "Access-Control-Request-Method": config.cors_request_method,
            "Access-Control-Request-Headers": config.cors_request_headers,
        },
    )
    severity = classify_cors(resp.headers)
    if severity == SEVERITY_OK:
        origin = resp.headers.get("Access-Control-Allow-Origin")
        message = f"CORS preflight answered (Allow-Origin: {origin})"
    else:
        missing = [
            h
            for h in ("Access-Control-Allow-Origin", "Access-Control-Allow-Methods")
            if resp.headers.get(h) is None
        ]
        message = "CORS preflight missing " + ", ".join(missing)
    return [ProbeFinding("cors", severity, message)]


PROBES: dict[str, tuple[str, Probe]] = {
    "security-headers": ("HEADERS: security headers", probe_security_headers),
    "register": ("OPTIONAL: register", probe_register),
    "login": ("AUTH: login", probe_login),
    "unauthenticated": ("ACCESS CONTROL: unauthenticated", probe_unauthenticated),
    "crud": ("CRUD: collection with auth", probe_crud),
    "idor": ("IDOR: modify another user's resource", probe_idor),
    "injection": ("INPUT VALIDATION: odd IDs & SQL-ish values", probe_injection),
    "tampered-token": ("AUTHN: tampered token", probe_tampered_token),
    "rate-limit": ("RATE LIMIT: bursts", probe_rate_limit),
    "content-type": ("CONTENT-TYPE checks", probe_content_type),
    "cors": ("CORS: preflight", probe_cors),
}


def _needs_credentials(name: str, config: ProbeConfig) -> bool:
    if name in ("register", "login"):
        return True
    if name == "rate-limit":
        return any(b.login_body for b in config.bursts)
    return False


def select_probes(only: Iterable[str] | None, config: ProbeConfig) -> list[str]:
    """Resolve the probes to run, in canonical order, and check their config."""
    if only:
        wanted = list(dict.fromkeys(only))
        unknown = [n for n in wanted if n not in PROBES]
        if unknown:
            raise ConfigurationError(
                f"unknown probe(s): {', '.join(unknown)} (choose from: {', '.join(PROBES)})"
            )
        selected = [n for n in PROBES if n in wanted]
    else:
        selected = list(PROBES)

    if any(_needs_credentials(n, config) for n in selected):
        if not config.email or not config.password:
            raise ConfigurationError(
                "email and password are required for the login/register/rate-limit probes"
            )
    return selected


def run_probes(
    executor: ProbeExecutor,
    session: Session,
    config: ProbeConfig,
    *,
    only: Iterable[str] | None = None,
    console: Console | None = None,
    sink: ResultSink | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[ProbeFinding]:
    """Run the selected probes one after another and collect their findings.

    A probe that loses its connection produces a single ``fail`` finding and
    the remaining probes still run.
    """
    selected = select_probes(only, config)
    findings: list[ProbeFinding] = []
    for name in selected:
        title, probe = PROBES[name]
        if console is not None:
            console.section(title)
        try:
            if name == "rate-limit":
                produced = probe_rate_limit(executor, session, config, sleep=sleep)
            else:
                produced = probe(executor, session, config)
        except TransportError as exc:
            logger.warning("probe %s: %s", name, exc)
            produced = [ProbeFinding(name, SEVERITY_FAIL, f"No response: {exc}")]
        for finding in produced:
            findings.append(finding)
            if console is not None:
                console.finding(finding)
            if sink is not None:
                sink.record_finding(finding)
    return findings
