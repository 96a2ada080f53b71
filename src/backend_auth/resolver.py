"""Principal resolver: email -> internal principal via the relational store.

One point query per call, against the table owning the request context:

    SELECT id, is_guest FROM consumers.consumers WHERE email = :email
    SELECT id, is_admin FROM traders.traders WHERE email = :email

No row is a successful lookup with ``id == 0``. Query errors surface as
PrincipalLookupFailed and are never cached.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .errors import PrincipalLookupFailed
from .principals import (
    BackofficePrincipal,
    ConsumerPrincipal,
    Principal,
    RequestContext,
    not_found,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

_IDENTIFIER: Final = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


@dataclass(frozen=True, slots=True)
class PrincipalTables:
    """Schema-qualified tables holding each principal kind.

    Attributes:
        consumers: Table with ``id``, ``email``, ``is_guest`` columns.
        backoffice: Table with ``id``, ``email``, ``is_admin`` columns.
    """

    consumers: str = "consumers.consumers"
    backoffice: str = "traders.traders"

    def __post_init__(self) -> None:
        for name in (self.consumers, self.backoffice):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid table name: {name!r}")


class PrincipalResolver:
    """PrincipalStore backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine, tables: PrincipalTables | None = None) -> None:
        self._engine = engine
        self._tables = tables or PrincipalTables()
        self._queries = {
            RequestContext.CONSUMER: text(
                f"SELECT id, is_guest FROM {self._tables.consumers} WHERE email = :email"
            ),
            RequestContext.BACKOFFICE: text(
                f"SELECT id, is_admin FROM {self._tables.backoffice} WHERE email = :email"
            ),
        }

    def resolve_principal(
        self, external_id: str, email: str, context: RequestContext
    ) -> Principal:
        """Look up the principal owning ``email`` in ``context``'s table.

        Raises:
            PrincipalLookupFailed: The query failed.
        """
        try:
            with self._engine.connect() as conn:
                row = conn.execute(self._queries[context], {"email": email}).first()
        except SQLAlchemyError as e:
            logger.error(
                "Principal lookup failed for uid %s (%s): %s", external_id, context.value, e
            )
            raise PrincipalLookupFailed(str(e)) from e

        if row is None or not row[0]:
            logger.info("No %s principal for uid %s", context.value, external_id)
            return not_found(context)

        if context is RequestContext.BACKOFFICE:
            return BackofficePrincipal(id=int(row[0]), is_admin=bool(row[1]))
        return ConsumerPrincipal(id=int(row[0]), is_guest=bool(row[1]))
