from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import ConfigurationError, MalformedInputError

_ENV_PATTERN = re.compile(r"\$\{[A-Za-z_][A-Za-z0-9_]*\}|\$[A-Za-z_][A-Za-z0-9_]*")


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    return value


def read_document(path: Path) -> Any:
    """Parse a YAML or JSON file without env expansion."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"could not read {path}: {exc.strerror or exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedInputError(f"{path} is not valid YAML/JSON: {exc}") from exc


def load_document(path: Path) -> dict[str, Any]:
    data = read_document(path)
    if not isinstance(data, dict):
        raise MalformedInputError(f"{path} must contain a mapping at the top level")
    expanded = expand_env(data)
    return cast(dict[str, Any], expanded)


def find_unexpanded_env_vars(value: Any) -> set[str]:
    found: set[str] = set()

    def walk(v: Any) -> None:
        if isinstance(v, str):
            for m in _ENV_PATTERN.findall(v):
                found.add(m)
            return
        if isinstance(v, list):
            for x in v:
                walk(x)
            return
        if isinstance(v, dict):
            for x in v.values():
                walk(x)
            return

    walk(value)
    return found
