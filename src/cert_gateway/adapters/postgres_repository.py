"""
PostgreSQL adapter — product documents as JSONB rows.

Adapter layer — implements the ProductRepository port using psycopg (v3)
with parameterized queries. An alternative to Firestore for deployments that
already run PostgreSQL; the stored JSON is the same ProductRecord document.

Table (name from configuration):
    product_id  TEXT PRIMARY KEY
    document    JSONB NOT NULL
    created_at  TIMESTAMPTZ NOT NULL
    updated_at  TIMESTAMPTZ NOT NULL

No ORM — raw parameterized SQL. The table name is always passed through
psycopg.sql.Identifier, never interpolated as text.
"""

from __future__ import annotations

from typing import Any

import psycopg
import structlog
from psycopg import sql
from psycopg.types.json import Jsonb
from railway import ErrorCode
from railway.result import Result

from cert_gateway.domain.models import ProductRecord

log = structlog.get_logger()

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    product_id  TEXT PRIMARY KEY,
    document    JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

_SELECT_ONE = "SELECT document FROM {table} WHERE product_id = %s"

_UPSERT = """
INSERT INTO {table} (product_id, document, updated_at)
VALUES (%s, %s, now())
ON CONFLICT (product_id) DO UPDATE
SET document = EXCLUDED.document, updated_at = EXCLUDED.updated_at
"""

_DELETE = "DELETE FROM {table} WHERE product_id = %s"

_SELECT_IDS = "SELECT product_id FROM {table} ORDER BY created_at, product_id"


class PsycopgProductRepository:
    """
    Persist ProductRecords to PostgreSQL, one row per product.

    All exceptions are caught at this adapter boundary via Result.from_computation().
    """

    def __init__(self, dsn: str, table: str = "certificates") -> None:
        self._dsn = dsn
        self._table = sql.Identifier(table)

    def ensure_schema(self) -> Result[bool]:
        """Create the products table if it is missing."""
        return Result.from_computation(
            lambda: self._execute(_CREATE_TABLE) or True,
            ErrorCode.DATABASE_ERROR,
            "Failed to create product table",
        )

    def load(self, product_id: str) -> Result[ProductRecord]:
        return Result.from_computation(
            lambda: self._load(product_id),
            ErrorCode.DATABASE_ERROR,
            f"Failed to read product {product_id}",
        )

    def save(self, product: ProductRecord) -> Result[ProductRecord]:
        return Result.from_computation(
            lambda: self._save(product),
            ErrorCode.DATABASE_ERROR,
            f"Failed to write product {product.product_id}",
        )

    def remove(self, product_id: str) -> Result[str]:
        return Result.from_computation(
            lambda: self._execute(_DELETE, (product_id,)) or product_id,
            ErrorCode.DATABASE_ERROR,
            f"Failed to delete product {product_id}",
        )

    def product_ids(self) -> Result[list[str]]:
        return Result.from_computation(
            self._product_ids,
            ErrorCode.DATABASE_ERROR,
            "Failed to list products",
        )

    def _query(self, statement: str) -> sql.Composed:
        return sql.SQL(statement).format(table=self._table)

    def _execute(self, statement: str, params: tuple[Any, ...] = ()) -> None:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(statement), params)

    def _load(self, product_id: str) -> ProductRecord:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_SELECT_ONE), (product_id,))
            row = cur.fetchone()
        return ProductRecord.from_document(product_id, row[0] if row else None)

    def _save(self, product: ProductRecord) -> ProductRecord:
        self._execute(_UPSERT, (product.product_id, Jsonb(product.to_document())))
        log.info(
            "postgres.saved",
            product_id=product.product_id,
            certificates=len(product.certificates),
        )
        return product

    def _product_ids(self) -> list[str]:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_SELECT_IDS))
            return [row[0] for row in cur.fetchall()]
