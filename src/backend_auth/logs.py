"""Logging setup for services using backend_auth.

``setup_logging`` configures the root logger once at process start:

- ``prod``: one JSON object per line (python-json-logger), suitable for
  structured log sinks
- anything else: a plain, human-readable line

Every record passes through RequestContextFilter, which stamps it with the
service name, environment, request id, HTTP request details and a summary of
the authenticated principal when a Flask request is active.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Final

from flask import has_request_context, request
from pythonjsonlogger.json import JsonFormatter

from .accessors import peek_auth_state
from .request_id import get_request_id

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

PLAIN_FORMAT: Final[str] = (
    "[%(severity)s] [%(asctime)s] - %(message)s "
    "[%(service_name)s:%(env)s:%(request_id)s - %(filename)s:%(lineno)d]%(auth_info)s"
)

_PLAIN_SEVERITY: Final[dict[int, str]] = {
    logging.CRITICAL: "FATAL",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARN",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
}

_JSON_SEVERITY: Final[dict[int, str]] = {
    logging.CRITICAL: "CRITICAL",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARNING",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
}

_HANDLER_MARK: Final[str] = "_backend_auth_handler"


class RequestContextFilter(logging.Filter):
    """Adds service, request and principal details to every record."""

    def __init__(self, service_name: str, env: str, *, json_severity: bool = False) -> None:
        super().__init__()
        self.service_name = service_name
        self.env = env
        self._severity = _JSON_SEVERITY if json_severity else _PLAIN_SEVERITY

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        record.env = self.env
        record.severity = self._severity.get(record.levelno, record.levelname)
        record.request_id = get_request_id()
        record.auth_info = ""

        if has_request_context():
            record.http_request = {
                "requestMethod": request.method,
                "requestUrl": request.full_path.rstrip("?"),
                "remoteIp": request.remote_addr,
            }
            state = peek_auth_state()
            summary = state.summary() if state else ""
            if summary:
                record.auth_info = f" [{summary}]"

        return True


def _json_formatter() -> logging.Formatter:
    return JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "timestamp"},
        datefmt=TIMESTAMP_FORMAT,
    )


def build_handler(
    service_name: str,
    env: str,
    stream: Any = None,
    *,
    path: str | None = None,
) -> logging.Handler:
    """Create a handler formatted and filtered for ``env``."""
    handler: logging.Handler
    if path:
        handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream or sys.stdout)

    is_prod = env == "prod"
    handler.setFormatter(
        _json_formatter() if is_prod else logging.Formatter(PLAIN_FORMAT, TIMESTAMP_FORMAT)
    )
    handler.addFilter(RequestContextFilter(service_name, env, json_severity=is_prod))
    setattr(handler, _HANDLER_MARK, True)
    return handler


def setup_logging(
    env: str,
    service_name: str,
    path: str | None = None,
    level: int = logging.INFO,
    stream: Any = None,
) -> logging.Logger:
    """Configure the root logger; calling it again replaces earlier handlers.

    Args:
        env: Deployment environment; ``prod`` switches to JSON lines.
        service_name: Stamped on every record.
        path: Optional log file written in addition to the stream.
        level: Root log level.
        stream: Stream for the console handler (stdout by default).
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    root.addHandler(build_handler(service_name, env, stream))
    if path:
        root.addHandler(build_handler(service_name, env, path=path))

    root.setLevel(level)
    return root
