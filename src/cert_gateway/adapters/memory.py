"""
In-memory storage adapters — the "mock storage" mode for development and tests.

Implements BlobStore and ProductRepository on plain dicts. Each instance owns
its own state; the composition root creates one pair per CertificateStore, so
nothing is shared process-wide and tests never leak into each other.

Locators use the `mock://` scheme so records written in this mode are
recognisable if they ever end up next to durable ones.
"""

from __future__ import annotations

import threading

import structlog
from railway.result import Result

from cert_gateway.domain.models import ProductRecord

log = structlog.get_logger()

MOCK_SCHEME = "mock://"


class InMemoryBlobStore:
    """Keeps document bytes keyed by locator."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, bytes] = {}

    def put(self, object_name: str, data: bytes) -> Result[str]:
        locator = f"{MOCK_SCHEME}{object_name}"
        with self._lock:
            self._objects[locator] = data
        log.debug("memory_blob.stored", locator=locator, size_bytes=len(data))
        return Result.success(locator)

    def delete(self, locator: str) -> Result[bool]:
        with self._lock:
            self._objects.pop(locator, None)
        return Result.success(True)

    def get(self, locator: str) -> bytes | None:
        with self._lock:
            return self._objects.get(locator)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


class InMemoryProductRepository:
    """Keeps ProductRecords keyed by product id, in insertion order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._products: dict[str, ProductRecord] = {}

    def load(self, product_id: str) -> Result[ProductRecord]:
        with self._lock:
            product = self._products.get(product_id)
        return Result.success(product or ProductRecord(product_id=product_id))

    def save(self, product: ProductRecord) -> Result[ProductRecord]:
        with self._lock:
            self._products[product.product_id] = product
        log.debug(
            "memory_repository.saved",
            product_id=product.product_id,
            certificates=len(product.certificates),
        )
        return Result.success(product)

    def remove(self, product_id: str) -> Result[str]:
        with self._lock:
            self._products.pop(product_id, None)
        return Result.success(product_id)

    def product_ids(self) -> Result[list[str]]:
        with self._lock:
            return Result.success(list(self._products))
