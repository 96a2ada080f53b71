"""Request/response logging and the recovery boundary.

install_request_logging logs one line when a request starts and one when it
finishes, with the level chosen from the response status:

- >= 402: ERROR
- 400 / 401: WARNING
- otherwise: INFO, and successful GETs log the status only

install_recovery turns any unhandled exception into a logged traceback and a
500 ``{"error": "Internal server error"}``. HTTP errors raised with ``abort``
are returned unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Final

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE: Final[str] = "Internal server error"
_SKIP_MARKER: Final[str] = "swagger"


def _skipped() -> bool:
    return _SKIP_MARKER in request.full_path


def _request_line() -> str:
    return f"[{request.method}] {request.full_path.rstrip('?')}"


def _log_request_start() -> None:
    if _skipped():
        return
    body = "" if request.method == "GET" else request.get_data(cache=True, as_text=True)
    if body:
        logger.info(
            "Start handling request for URI: %s - Params: %s, Body: [%s].",
            _request_line(),
            dict(request.view_args or {}),
            body,
        )
    else:
        logger.info(
            "Start handling request for URI: %s - Params: %s.",
            _request_line(),
            dict(request.view_args or {}),
        )


def _response_body(response: Response) -> str:
    if response.is_streamed:
        return "<streamed>"
    return response.get_data(as_text=True)


def _log_request_end(response: Response) -> Response:
    if _skipped():
        return response

    status = response.status_code
    if status >= 402:
        logger.error(
            "Finished handling request for URI: %s - Response is: [%s] %s.",
            _request_line(),
            status,
            _response_body(response),
        )
    elif status in (400, 401):
        logger.warning(
            "Finished handling request for URI: %s - Response is: [%s] %s.",
            _request_line(),
            status,
            _response_body(response),
        )
    elif request.method == "GET":
        # GET bodies can be large; the status is enough on success.
        logger.info(
            "Finished handling request for URI: %s - Response code is: [%s].",
            _request_line(),
            status,
        )
    else:
        logger.info(
            "Finished handling request for URI: %s - Response is: [%s] %s.",
            _request_line(),
            status,
            _response_body(response),
        )
    return response


def install_request_logging(app: Flask) -> None:
    app.before_request(_log_request_start)
    app.after_request(_log_request_end)


def _recover(error: Exception) -> Any:
    if isinstance(error, HTTPException):
        return error

    logger.exception(
        "Unhandled exception while handling %s: %s", _request_line(), error
    )
    return jsonify({"error": INTERNAL_ERROR_MESSAGE}), 500


def install_recovery(app: Flask) -> None:
    """Register the global handler for exceptions no view dealt with."""
    app.register_error_handler(Exception, _recover)
