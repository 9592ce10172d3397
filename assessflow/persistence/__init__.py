"""Persistence layer for assessflow flows and runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AssessFlowConfig, load_config
from .inmemory import InMemoryFlowRepository
from .models import Run, StepResponse
from .repository import FlowRepository
from .sqlite import SQLiteFlowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresFlowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresFlowRepository = None  # type: ignore

_repository_instance: FlowRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[AssessFlowConfig] = None
) -> FlowRepository:
    """Factory function to obtain a flow repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``ASSESSFLOW_DATABASE_URL``
    or ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ASSESSFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryFlowRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteFlowRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresFlowRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresFlowRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "Run",
    "StepResponse",
    "FlowRepository",
    "SQLiteFlowRepository",
    "PostgresFlowRepository",
    "InMemoryFlowRepository",
    "get_repository",
]
