"""Flask extension wiring the authorization pipeline into request handling.

Key Components:
- AuthExtension: decorators guarding views, plus an optional app-wide
  stage 1 running in ``before_request``
- JSON error handlers turning 401/500 aborts into ``{"error": <message>}``

Request Model:
1. A fresh RequestAuthState is stored in ``flask.g.auth`` when the request
   starts, with the context taken from the ``RequestContext`` header.
2. Guards run the pipeline stages the view needs.
3. Pipeline errors become ``abort(status, description=...)``.
4. Views read the outcome through ``backend_auth.accessors``.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, jsonify, request
from werkzeug.exceptions import HTTPException

from .accessors import get_auth_state
from .errors import AuthError
from .extractors import AUTHORIZATION_HEADER

if TYPE_CHECKING:
    from .pipeline import AuthPipeline
    from .protocols import ViewFunc

_EXT_KEY: Final[str] = "backend_auth"
"""Flask extensions registry key for AuthExtension."""


def error_response(error: HTTPException) -> tuple[Any, int]:
    """Render an HTTP error as ``{"error": <description>}``."""
    return jsonify({"error": error.description}), error.code or 500


class AuthExtension:
    """
    Flask glue for the authorization pipeline.

    Pattern:
        auth = AuthExtension()
        auth.init_app(app, pipeline=initialize(settings), whitelist=["/health"])

    Usage:
        @app.get("/orders")
        @auth.require_auth()
        def orders(): ...

        @app.get("/admin/stats")
        @auth.require_admin()
        def stats(): ...
    """

    def __init__(
        self,
        pipeline: AuthPipeline | None = None,
        *,
        protect_all: bool = False,
        whitelist: Iterable[str] = (),
    ) -> None:
        self._pipeline: AuthPipeline | None = pipeline
        self._protect_all = protect_all
        self._whitelist: tuple[str, ...] = tuple(whitelist)

    def init_app(
        self,
        app: Flask,
        *,
        pipeline: AuthPipeline | None = None,
        protect_all: bool | None = None,
        whitelist: Iterable[str] | None = None,
        register_error_handlers: bool = True,
    ) -> None:
        """Register the extension on ``app``.

        Args:
            app: The Flask application instance.
            pipeline: Pipeline built at process start. Overrides the one
                given to the constructor.
            protect_all: Run stage 1 for every request whose path is not
                whitelisted.
            whitelist: Paths bypassing the app-wide stage. An entry ending in
                ``/`` matches every path below it.
            register_error_handlers: Install the JSON 401/500 handlers.
        """
        if pipeline is not None:
            self._pipeline = pipeline
        if protect_all is not None:
            self._protect_all = protect_all
        if whitelist is not None:
            self._whitelist = tuple(whitelist)

        app.extensions[_EXT_KEY] = self
        app.before_request(self._start_request)

        if register_error_handlers:
            app.register_error_handler(401, error_response)
            app.register_error_handler(500, error_response)

    @property
    def pipeline(self) -> AuthPipeline:
        if self._pipeline is None:
            raise RuntimeError("AuthExtension has no pipeline; pass one to init_app()")
        return self._pipeline

    def is_whitelisted(self, path: str) -> bool:
        for entry in self._whitelist:
            if path == entry or (entry.endswith("/") and path.startswith(entry)):
                return True
        return False

    def _start_request(self) -> None:
        get_auth_state()
        if self._protect_all and not self.is_whitelisted(request.path):
            self._run(require_principal=False, require_admin=False)

    def _run(self, *, require_principal: bool, require_admin: bool) -> None:
        state = get_auth_state()
        try:
            self.pipeline.run(
                request.headers.get(AUTHORIZATION_HEADER),
                state,
                require_principal=require_principal,
                require_admin=require_admin,
            )
        except AuthError as e:
            abort(e.status_code, description=e.description)

    def _guard(self, *, require_principal: bool, require_admin: bool):
        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                self._run(require_principal=require_principal, require_admin=require_admin)
                return view(*args, **kwargs)

            return wrapper

        return decorator

    def require_identity(self):
        """Guard needing only a verified identity (stage 1)."""
        return self._guard(require_principal=False, require_admin=False)

    def require_auth(self):
        """Guard needing a resolved principal (stages 1 and 2)."""
        return self._guard(require_principal=True, require_admin=False)

    def require_admin(self):
        """Guard needing an admin back-office principal (stages 1, 2 and guard)."""
        return self._guard(require_principal=True, require_admin=True)
