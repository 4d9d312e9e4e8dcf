from __future__ import annotations

from .errors import ConfigurationError, MalformedInputError, TransportError
from .executor import HttpExecutor, HttpResponse
from .findings import ProbeFinding
from .loader import TestCase, load_cases, parse_cases
from .runner import TestResult, run_cases
from .session import Session
from .sink import ResultSink

__all__ = [
    "ConfigurationError",
    "HttpExecutor",
    "HttpResponse",
    "MalformedInputError",
    "ProbeFinding",
    "ResultSink",
    "Session",
    "TestCase",
    "TestResult",
    "TransportError",
    "load_cases",
    "parse_cases",
    "run_cases",
]
