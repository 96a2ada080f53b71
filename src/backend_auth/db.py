"""Connections to the principal store and the shared cache."""

from __future__ import annotations

import logging
from typing import Any

import redis
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

logger = logging.getLogger(__name__)


def create_db_engine(url: str, timeout: int = 5, echo: bool = False) -> Engine:
    """Engine for the principal store.

    ``timeout`` becomes the driver's connect timeout where it has one.
    """
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        args: dict[str, Any] = {"check_same_thread": False, "timeout": timeout}
    elif backend in ("postgresql", "mysql"):
        args = {"connect_timeout": timeout}
    else:
        args = {}

    engine = create_engine(url, echo=echo, connect_args=args, pool_pre_ping=True)
    logger.info("Principal store engine created for %s", backend)
    return engine


def connect_redis(url: str) -> redis.Redis:
    """Client for the shared caches; values are read back as ``str``."""
    client = redis.Redis.from_url(url, decode_responses=True)
    logger.info("Redis client created for %s", make_url_safe(url))
    return client


def make_url_safe(url: str) -> str:
    """``url`` with any password masked, for log lines."""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
