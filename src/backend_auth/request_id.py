"""Request id middleware.

Each request gets a short random id, stored on ``flask.g`` for log lines and
echoed back in the ``X-Request-ID`` response header.
"""

from __future__ import annotations

import secrets
from typing import Final

from flask import Flask, Response, g, has_request_context

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
_REQUEST_ID_LENGTH: Final[int] = 8


def new_request_id() -> str:
    return secrets.token_urlsafe(_REQUEST_ID_LENGTH)[:_REQUEST_ID_LENGTH]


def get_request_id() -> str:
    """Current request id, '' outside a request."""
    if not has_request_context():
        return ""
    return g.get("request_id", "")


def _assign_request_id() -> None:
    g.request_id = new_request_id()


def _echo_request_id(response: Response) -> Response:
    request_id = get_request_id()
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def init_app(app: Flask) -> None:
    """Register the request id hooks; call before other before_request hooks."""
    app.before_request_funcs.setdefault(None, []).insert(0, _assign_request_id)
    app.after_request(_echo_request_id)
