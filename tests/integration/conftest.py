"""
Integration test fixtures — PostgreSQL testcontainer.

Provides a real PostgreSQL instance for the test session via testcontainers.
The repository creates its own table (ensure_schema); each test starts from
an empty table because the fixture drops it first.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

TABLE = "product_certificates"


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN with the products table dropped."""
    connection_url = postgres_container.get_connection_url().replace(
        "postgresql+psycopg2", "postgresql"
    )
    with psycopg.connect(connection_url) as conn:
        conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
        conn.commit()
    return connection_url
