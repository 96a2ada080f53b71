"""Principal model and the request-context discriminator.

A principal is the application-level user record resolved from an external
identity. Two variants exist, one per request context:

- ``ConsumerPrincipal``: consumer-facing users (``is_guest`` flag)
- ``BackofficePrincipal``: traders / back-office users (``is_admin`` flag)

``id == 0`` is a valid negative result meaning "no principal for this email".
It is cached like any other principal so unknown emails don't hit the store
on every request.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

BACKOFFICE_HEADER_VALUE: Final[str] = "Backoffice"
"""Exact ``RequestContext`` header value selecting back-office resolution."""


class RequestContext(str, Enum):
    CONSUMER = "consumer"
    BACKOFFICE = "backoffice"

    @classmethod
    def from_header(cls, value: str | None) -> RequestContext:
        """Map the raw ``RequestContext`` header to a context.

        Only the exact value ``"Backoffice"`` selects back-office; anything
        else, including a missing header, selects consumer.
        """
        if value == BACKOFFICE_HEADER_VALUE:
            return cls.BACKOFFICE
        return cls.CONSUMER


@dataclass(frozen=True, slots=True)
class ConsumerPrincipal:
    id: int
    is_guest: bool = True

    context = RequestContext.CONSUMER

    @property
    def found(self) -> bool:
        return self.id != 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "is_guest": self.is_guest}


@dataclass(frozen=True, slots=True)
class BackofficePrincipal:
    id: int
    is_admin: bool = False

    context = RequestContext.BACKOFFICE

    @property
    def found(self) -> bool:
        return self.id != 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "is_admin": self.is_admin}


type Principal = ConsumerPrincipal | BackofficePrincipal


def not_found(context: RequestContext) -> Principal:
    """Return the negative principal for ``context``."""
    if context is RequestContext.BACKOFFICE:
        return BackofficePrincipal(id=0, is_admin=False)
    return ConsumerPrincipal(id=0, is_guest=True)


def principal_from_dict(context: RequestContext, data: Mapping[str, Any]) -> Principal:
    """Rebuild a principal from its ``to_dict`` form.

    Raises:
        ValueError: If ``data`` lacks an integer ``id``.
    """
    raw_id = data.get("id")
    if not isinstance(raw_id, int) or isinstance(raw_id, bool) or raw_id < 0:
        raise ValueError(f"Invalid principal id: {raw_id!r}")

    if context is RequestContext.BACKOFFICE:
        return BackofficePrincipal(id=raw_id, is_admin=bool(data.get("is_admin", False)))
    return ConsumerPrincipal(id=raw_id, is_guest=bool(data.get("is_guest", True)))
