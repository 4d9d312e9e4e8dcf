from __future__ import annotations


class ConfigurationError(SystemExit):
    """Missing or invalid configuration; raised before any request is sent.

    Like a plain ``SystemExit("...")``, an uncaught instance prints its message
    and exits with status 1.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MalformedInputError(SystemExit):
    """A test-case document that cannot be turned into test cases."""

    def __init__(
        self, message: str, *, position: int | None = None, name: str | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.position = position
        self.name = name

    def __str__(self) -> str:
        return self.message


class TransportError(Exception):
    """No HTTP response was obtained (DNS, refused connection, timeout, ...)."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"{method} {url}: {reason}")
        self.method = method
        self.url = url
        self.reason = reason
