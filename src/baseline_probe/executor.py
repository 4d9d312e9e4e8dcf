from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests
from requests.structures import CaseInsensitiveDict

from .errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

_JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: CaseInsensitiveDict[str] = field(default_factory=CaseInsensitiveDict)
    body: str = ""

    def json(self) -> Any:
        """Parsed body, or None when the body is not JSON."""
        if not self.body.strip():
            return None
        try:
            return json.loads(self.body)
        except json.JSONDecodeError:
            return None


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    expected = name.lower()
    return any(k.lower() == expected for k in headers)


def _proxies(proxy: str | None) -> dict[str, str] | None:
    if proxy is None:
        return None
    p = proxy.strip()
    if not p:
        return None
    return {"http": p, "https": p}


def join_url(base_url: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    if not path:
        return base_url
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class HttpExecutor:
    """Issues single HTTP requests against one base URL.

    Any HTTP status, 4xx and 5xx included, is a normal result. Only failures to
    get a response at all raise ``TransportError``. There are no retries.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify_tls: bool = True,
        proxy: str | None = None,
        follow_redirects: bool = False,
        http: requests.Session | None = None,
    ) -> None:
        if not isinstance(base_url, str) or not base_url:
            raise ConfigurationError("base_url must be a non-empty string")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"base_url must start with http:// or https://: {base_url}")
        if timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
        self.base_url = base_url
        self.timeout = float(timeout)
        self.verify_tls = verify_tls
        self.proxies = _proxies(proxy)
        self.follow_redirects = follow_redirects
        self._http = http if http is not None else requests.Session()

    def url_for(self, path: str) -> str:
        return join_url(self.base_url, path)

    def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        *,
        data: str | None = None,
    ) -> HttpResponse:
        """Send one request.

        ``body`` is sent as JSON (adding ``Content-Type: application/json``
        unless the caller set a Content-Type). ``data`` is sent verbatim with
        no implicit Content-Type.
        """
        method = method.upper()
        url = self.url_for(path)
        request_headers = dict(headers or {})
        if body is not None and not _has_header(request_headers, "Content-Type"):
            request_headers["Content-Type"] = _JSON_CONTENT_TYPE

        logger.debug("%s %s", method, url)
        start = time.time()
        try:
            resp = self._http.request(
                method,
                url,
                headers=request_headers,
                json=body,
                data=data,
                timeout=self.timeout,
                verify=self.verify_tls,
                proxies=self.proxies,
                allow_redirects=self.follow_redirects,
            )
        except requests.Timeout as exc:
            raise TransportError(method, url, f"timed out after {self.timeout:g}s") from exc
        except requests.ConnectionError as exc:
            raise TransportError(method, url, f"connection failed: {exc}") from exc
        except requests.RequestException as exc:
            raise TransportError(method, url, str(exc)) from exc

        elapsed_ms = int((time.time() - start) * 1000)
        status = int(getattr(resp, "status_code", 0))
        text = getattr(resp, "text", "") or ""
        if not isinstance(text, str):
            text = str(text)
        logger.debug("%s %s -> %d (%d ms)", method, url, status, elapsed_ms)
        return HttpResponse(
            status=status,
            headers=CaseInsensitiveDict(dict(getattr(resp, "headers", None) or {})),
            body=text,
        )

    def close(self) -> None:
        self._http.close()
