"""Handler-facing accessors for the current request's auth state.

Views read the outcome of the pipeline through these functions instead of
poking at ``flask.g``. Every accessor has a safe default for requests that
were never authenticated.
"""

from __future__ import annotations

import logging
from typing import Final

from flask import g, has_request_context

from .extractors import request_context
from .state import RequestAuthState

logger = logging.getLogger(__name__)

STATE_ATTR: Final[str] = "auth"
"""Attribute of ``flask.g`` holding the RequestAuthState."""


def get_auth_state() -> RequestAuthState:
    """Return the current request's state, creating it on first access."""
    state = g.get(STATE_ATTR)
    if state is None:
        state = RequestAuthState(context=request_context())
        setattr(g, STATE_ATTR, state)
    return state


def peek_auth_state() -> RequestAuthState | None:
    """Return the state if a request is active and has one; never creates it."""
    if not has_request_context():
        return None
    return g.get(STATE_ATTR)


def get_authenticated_consumer_id() -> int:
    """Authenticated consumer id, 0 if none."""
    state = peek_auth_state()
    return (state.consumer_id or 0) if state else 0


def get_authenticated_backoffice_id() -> int:
    """Authenticated back-office user id, 0 if none."""
    state = peek_auth_state()
    return (state.backoffice_id or 0) if state else 0


def get_is_admin() -> bool:
    """Admin flag, False if absent."""
    state = peek_auth_state()
    return bool(state and state.is_admin)


def get_is_guest() -> bool:
    """Guest flag, True if absent."""
    state = peek_auth_state()
    if state is None or state.is_guest is None:
        return True
    return state.is_guest


def get_external_id() -> str | None:
    """External identity id authenticated by stage 1."""
    state = peek_auth_state()
    return state.external_id if state else None


def get_external_email() -> str | None:
    state = peek_auth_state()
    return state.email if state else None


def validate_authorized(consumer_id: int) -> bool:
    """Check the caller may act on ``consumer_id``.

    Admins may act on anyone; everyone else only on their own consumer id.
    """
    if get_is_admin():
        return True

    authenticated = get_authenticated_consumer_id()
    if authenticated == 0 or consumer_id != authenticated:
        logger.error(
            "got unauthenticated consumer id! consumer id: %s authenticatedConsumerId: %s",
            consumer_id,
            authenticated,
        )
        return False
    return True
