"""
Firestore adapter — one document per product in a configured collection.

Adapter layer — implements the ProductRepository port with google-cloud-firestore.

Document id = product id; body = ProductRecord.to_document():
    {"productId": "...", "certificates": [{...}, ...]}

`save` overwrites the whole document so that removed certificates disappear.
Deleting a document that does not exist is a no-op in Firestore.
"""

from __future__ import annotations

import structlog
from google.cloud import firestore
from railway import ErrorCode
from railway.result import Result

from cert_gateway.domain.models import ProductRecord

log = structlog.get_logger()


class FirestoreProductRepository:
    """Persist ProductRecords as Firestore documents."""

    def __init__(
        self,
        collection_name: str,
        project_id: str | None = None,
        client: firestore.Client | None = None,
    ) -> None:
        self._client = client or firestore.Client(project=project_id)
        self._collection = self._client.collection(collection_name)

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
            lambda: self._remove(product_id),
            ErrorCode.DATABASE_ERROR,
            f"Failed to delete product {product_id}",
        )

    def product_ids(self) -> Result[list[str]]:
        return Result.from_computation(
            self._product_ids,
            ErrorCode.DATABASE_ERROR,
            "Failed to list products",
        )

    def _load(self, product_id: str) -> ProductRecord:
        snapshot = self._collection.document(product_id).get()
        return ProductRecord.from_document(product_id, snapshot.to_dict() if snapshot.exists else None)

    def _save(self, product: ProductRecord) -> ProductRecord:
        self._collection.document(product.product_id).set(product.to_document())
        log.info(
            "firestore.saved",
            product_id=product.product_id,
            certificates=len(product.certificates),
        )
        return product

    def _remove(self, product_id: str) -> str:
        self._collection.document(product_id).delete()
        log.info("firestore.deleted", product_id=product_id)
        return product_id

    def _product_ids(self) -> list[str]:
        ids = []
        for snapshot in self._collection.stream():
            data = snapshot.to_dict() or {}
            ids.append(str(data.get("productId") or snapshot.id))
        return ids
