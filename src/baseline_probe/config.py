from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from .document import load_document
from .errors import ConfigurationError
from .executor import DEFAULT_TIMEOUT


@dataclass(frozen=True)
class Burst:
    method: str
    path: str
    count: int
    delay_s: float
    auth: bool = False
    login_body: bool = False
    body: Any = None

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"


def _default_bursts() -> tuple[Burst, ...]:
    return (
        Burst(method="POST", path="/login", count=15, delay_s=0.1, login_body=True),
        Burst(method="GET", path="/properties", count=30, delay_s=0.05, auth=True),
    )


@dataclass(frozen=True)
class ProbeConfig:
    """Target-specific knobs for the probe library.

    Defaults describe a typical JSON API with ``/login``, ``/users`` and a
    ``/properties`` collection; override any of them from a config file.
    """

    base_url: str | None = None
    email: str | None = None
    password: str | None = None
    display_name: str = "Probe User"
    login_endpoint: str = "/login"
    register_endpoint: str = "/register"
    token_field: str = "token"
    timeout: float = DEFAULT_TIMEOUT
    verify_tls: bool = True
    security_headers_path: str = "/"
    protected_paths: tuple[str, ...] = ("/users", "/properties")
    idor_method: str = "PUT"
    idor_path: str = "/users/1"
    idor_body: Any = field(default_factory=lambda: {"name": "Pwned"})
    injection_path_prefix: str = "/users/"
    injection_payload: str = "1' OR '1'='1"
    injection_collection_path: str = "/users"
    injection_body: Any = field(
        default_factory=lambda: {
            "email": "inj@example.com",
            "password": "x",
            "name": "Robert' OR '1'='1 --",
        }
    )
    tamper_path: str = "/properties"
    bursts: tuple[Burst, ...] = field(default_factory=_default_bursts)
    content_type_path: str = "/properties"
    cors_path: str = "/properties"
    cors_origin: str = "https://evil.example"
    cors_request_method: str = "POST"
    cors_request_headers: str = "Authorization, Content-Type"
    crud_collection_path: str = "/properties"
    crud_create_body: Any = field(
        default_factory=lambda: {
            "landlord_id": 77,
            "name": "Probe House",
            "address": "1 Test Ln",
            "city": "Testville",
            "state": "TS",
            "zip": "00000",
        }
    )
    crud_update_body: Any = field(default_factory=lambda: {"name": "Probe House (Updated)"})
    crud_id_field: str = "id"

    def login_payload(self) -> dict[str, str]:
        if not self.email or not self.password:
            raise ConfigurationError("email and password are required for this probe")
        return {"email": self.email, "password": self.password}

    def with_overrides(self, **overrides: Any) -> ProbeConfig:
        given = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **given)

    def with_bursts(
        self, *, count: int | None = None, delay_s: float | None = None
    ) -> ProbeConfig:
        if count is None and delay_s is None:
            return self
        if count is not None and count <= 0:
            raise ConfigurationError("burst count must be > 0")
        if delay_s is not None and delay_s < 0:
            raise ConfigurationError("burst delay must be >= 0")
        bursts = tuple(
            replace(
                b,
                count=b.count if count is None else count,
                delay_s=b.delay_s if delay_s is None else delay_s,
            )
            for b in self.bursts
        )
        return replace(self, bursts=bursts)


def _as_mapping(value: Any, *, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a mapping")
    return value


def _str(value: Any, *, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{name} must be a non-empty string")
    return value


def _optional_str(value: Any, *, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"{name} must be a string")
    return value or None


def _bool(value: Any, *, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a boolean")
    return value


def _positive_int(value: Any, *, name: str, default: int) -> int:
    if value is None:
        return default
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{name} must be an integer > 0")
    return value


def _non_negative_number(value: Any, *, name: str, default: float) -> float:
    if value is None:
        return default
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ConfigurationError(f"{name} must be a number >= 0")
    return float(value)


def _str_tuple(value: Any, *, name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"{name} must be a list of non-empty strings")
    return tuple(value)


def _parse_burst(raw: Any, *, idx: int) -> Burst:
    name = f"rate_limit.bursts[{idx}]"
    data = _as_mapping(raw, name=name)
    path = data.get("path")
    if not isinstance(path, str) or not path:
        raise ConfigurationError(f"{name}.path must be a non-empty string")
    return Burst(
        method=_str(data.get("method"), name=f"{name}.method", default="GET").upper(),
        path=path,
        count=_positive_int(data.get("count"), name=f"{name}.count", default=15),
        delay_s=_non_negative_number(data.get("delay_s"), name=f"{name}.delay_s", default=0.1),
        auth=_bool(data.get("auth"), name=f"{name}.auth", default=False),
        login_body=_bool(data.get("login_body"), name=f"{name}.login_body", default=False),
        body=data.get("body"),
    )


def probe_config_from_mapping(data: Mapping[str, Any]) -> ProbeConfig:
    d = ProbeConfig()

    timeout = data.get("timeout")
    if timeout is not None and (
        not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0
    ):
        raise ConfigurationError("timeout must be a number > 0")

    idor = _as_mapping(data.get("idor"), name="idor")
    injection = _as_mapping(data.get("injection"), name="injection")
    rate_limit = _as_mapping(data.get("rate_limit"), name="rate_limit")
    cors = _as_mapping(data.get("cors"), name="cors")
    crud = _as_mapping(data.get("crud"), name="crud")

    login_endpoint = _str(
        data.get("login_endpoint"), name="login_endpoint", default=d.login_endpoint
    )
    bursts = tuple(replace(b, path=login_endpoint) if b.login_body else b for b in d.bursts)
    raw_bursts = rate_limit.get("bursts")
    if raw_bursts is not None:
        if not isinstance(raw_bursts, list) or not raw_bursts:
            raise ConfigurationError("rate_limit.bursts must be a non-empty list")
        bursts = tuple(_parse_burst(b, idx=i) for i, b in enumerate(raw_bursts, start=1))

    return ProbeConfig(
        base_url=_optional_str(data.get("base_url"), name="base_url"),
        email=_optional_str(data.get("email"), name="email"),
        password=_optional_str(data.get("password"), name="password"),
        display_name=_str(data.get("display_name"), name="display_name", default=d.display_name),
        login_endpoint=login_endpoint,
        register_endpoint=_str(
            data.get("register_endpoint"), name="register_endpoint", default=d.register_endpoint
        ),
        token_field=_str(data.get("token_field"), name="token_field", default=d.token_field),
        timeout=float(timeout) if timeout is not None else d.timeout,
        verify_tls=_bool(data.get("verify_tls"), name="verify_tls", default=d.verify_tls),
        security_headers_path=_str(
            data.get("security_headers_path"),
            name="security_headers_path",
            default=d.security_headers_path,
        ),
        protected_paths=_str_tuple(
            data.get("protected_paths"), name="protected_paths", default=d.protected_paths
        ),
        idor_method=_str(idor.get("method"), name="idor.method", default=d.idor_method).upper(),
        idor_path=_str(idor.get("path"), name="idor.path", default=d.idor_path),
        idor_body=idor.get("body", d.idor_body),
        injection_path_prefix=_str(
            injection.get("path_prefix"),
            name="injection.path_prefix",
            default=d.injection_path_prefix,
        ),
        injection_payload=_str(
            injection.get("payload"), name="injection.payload", default=d.injection_payload
        ),
        injection_collection_path=_str(
            injection.get("collection_path"),
            name="injection.collection_path",
            default=d.injection_collection_path,
        ),
        injection_body=injection.get("body", d.injection_body),
        tamper_path=_str(data.get("tamper_path"), name="tamper_path", default=d.tamper_path),
        bursts=bursts,
        content_type_path=_str(
            data.get("content_type_path"), name="content_type_path", default=d.content_type_path
        ),
        cors_path=_str(cors.get("path"), name="cors.path", default=d.cors_path),
        cors_origin=_str(cors.get("origin"), name="cors.origin", default=d.cors_origin),
        cors_request_method=_str(
            cors.get("request_method"), name="cors.request_method", default=d.cors_request_method
        ),
        cors_request_headers=_str(
            cors.get("request_headers"),
            name="cors.request_headers",
            default=d.cors_request_headers,
        ),
        crud_collection_path=_str(
            crud.get("collection_path"),
            name="crud.collection_path",
            default=d.crud_collection_path,
        ),
        crud_create_body=crud.get("create_body", d.crud_create_body),
        crud_update_body=crud.get("update_body", d.crud_update_body),
        crud_id_field=_str(crud.get("id_field"), name="crud.id_field", default=d.crud_id_field),
    )


def load_probe_config(path: Path | None) -> ProbeConfig:
    if path is None:
        return ProbeConfig()
    return probe_config_from_mapping(load_document(path))
