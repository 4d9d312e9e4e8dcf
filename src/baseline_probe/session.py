from __future__ import annotations

import json
from typing import Any


class Session:
    """In-run holder of the bearer token captured from a login response.

    One instance per run; nothing is kept across runs.
    """

    def __init__(self, token: str | None = None) -> None:
        self.token = token

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def set_token(self, token: str) -> None:
        if not isinstance(token, str) or not token:
            raise ValueError("token must be a non-empty string")
        self.token = token

    def auth_header(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def __repr__(self) -> str:
        state = "set" if self.token else "unset"
        return f"Session(token={state})"


def extract_token(body: str, field: str = "token") -> str | None:
    """Return the string at ``field`` in a JSON object body, if any."""
    try:
        data: Any = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    token = data.get(field)
    if not isinstance(token, str) or not token:
        return None
    return token
