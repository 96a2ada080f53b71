"""Bearer token and request-context extraction.

``extract_bearer_token`` is the framework-free parser used by the pipeline;
``request_context`` reads the current Flask request.
"""

from __future__ import annotations

from typing import Final

from flask import request

from .principals import RequestContext

AUTHORIZATION_HEADER: Final[str] = "Authorization"
REQUEST_CONTEXT_HEADER: Final[str] = "RequestContext"

_SCHEME: Final[str] = "bearer"


def extract_bearer_token(header_value: str | None) -> str:
    """Return the token from an ``Authorization`` header value.

    A leading ``Bearer`` scheme (any case) is stripped and the remainder
    trimmed. Returns '' when nothing is left.
    """
    value = (header_value or "").strip()
    head = value[: len(_SCHEME)]
    rest = value[len(_SCHEME) :]
    if head.lower() == _SCHEME and (not rest or rest[0].isspace()):
        value = rest
    return value.strip()


def request_context() -> RequestContext:
    """RequestContext selected by the current Flask request's headers."""
    return RequestContext.from_header(request.headers.get(REQUEST_CONTEXT_HEADER))
