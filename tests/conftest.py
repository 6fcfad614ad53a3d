"""Shared fixtures: mocked connection factory and executor wired into a repository."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("LOG_LEVEL", "DEBUG")

from db.connection import ConnectionFactory
from db.executor import QueryExecutor
from repositories.user_repo import UserRepository

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def user_row(user_id: int, email: str, name: str, deleted: bool = False) -> dict:
    """A users-table row as the executor's dict cursor returns it."""
    return {
        "id": user_id,
        "email": email,
        "name": name,
        "is_deleted": deleted,
        "deleted_at": NOW if deleted else None,
        "created_at": NOW,
        "updated_at": NOW,
    }


@pytest.fixture()
def connection() -> MagicMock:
    conn = MagicMock(name="connection")
    conn.closed = 0
    return conn


@pytest.fixture()
def connection_factory(connection) -> MagicMock:
    factory = MagicMock(spec=ConnectionFactory)
    factory.create_connection.return_value = connection
    return factory


@pytest.fixture()
def executor() -> MagicMock:
    return MagicMock(spec=QueryExecutor)


@pytest.fixture()
def repository(connection_factory, executor) -> UserRepository:
    return UserRepository(connection_factory, executor)
