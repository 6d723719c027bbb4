"""Step store for the nightly protocol.

The CLI resolves one process-wide store through :func:`get_repository`.
Tests and embedding code can swap it with :func:`set_repository` and drop
it again with :func:`reset_repository`.
"""

from __future__ import annotations

import os
from typing import Optional

from ..config import VesperConfig, load_config
from .inmemory import InMemoryStepRepository
from .models import SessionRecord, StepRecord, StepStatus
from .repository import StepRepository
from .sqlite import SQLiteStepRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresStepRepository
except Exception:  # pragma: no cover - optional dependency
    PostgresStepRepository = None  # type: ignore

_repository_instance: StepRepository | None = None


def repository_from_url(database_url: Optional[str]) -> StepRepository:
    """Build a fresh store for ``database_url``; empty means in-memory.

    ``sqlite:///nightly.db`` is relative to the working directory and
    ``sqlite:////var/lib/vesper.db`` is absolute.
    """

    if not database_url:
        return InMemoryStepRepository()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://") :]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStepRepository(path or ":memory:")
    if database_url.startswith(("postgres://", "postgresql://")):
        if PostgresStepRepository is None:
            raise RuntimeError("Postgres support not available (asyncpg is not installed)")
        return PostgresStepRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[VesperConfig] = None
) -> StepRepository:
    """Return the process-wide step store, creating it on first use.

    The URL comes from ``database_url``, then ``VESPER_DATABASE_URL`` or
    ``DATABASE_URL``, then ``database_url`` in the loaded config. Passing
    either argument always builds and caches a new store.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("VESPER_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )
    _repository_instance = repository_from_url(database_url)
    return _repository_instance


def set_repository(repository: StepRepository) -> None:
    """Install ``repository`` as the store :func:`get_repository` hands out."""
    global _repository_instance
    _repository_instance = repository


def reset_repository() -> None:
    global _repository_instance
    _repository_instance = None


__all__ = [
    "SessionRecord",
    "StepRecord",
    "StepStatus",
    "StepRepository",
    "SQLiteStepRepository",
    "PostgresStepRepository",
    "InMemoryStepRepository",
    "get_repository",
    "repository_from_url",
    "reset_repository",
    "set_repository",
]
