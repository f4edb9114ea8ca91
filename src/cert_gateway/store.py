"""
Certificate Store — upload/verify/persist pipeline and product bookkeeping.

Domain layer — no I/O of its own. The registry, the blob store and the
product repository are injected ports, so the same store runs over the
in-memory adapters (mock storage) or over GCS + Firestore/PostgreSQL.

Upload railway:

  validate(productId, file, certificateId)
    → registry.lookup(certificateId)  ensure verdict.is_valid
      → [product lock] load product
        → blobs.put(certificates/<product>_<id>.pdf)
          → products.save(product + record)

Every mutation of a product runs under that product's lock (KeyedLocks), so
concurrent uploads and deletes on one product never lose updates.

Two faces:
  - `upload`, `list`, `list_for_product`, `delete_product`, `delete_certificate`
    keep the plain bool/list contract: failures become False or [].
  - the `*_result` variants return Result with an ErrorCode, so callers that
    care can tell "registry says invalid" (BUSINESS_RULE_ERROR) from
    "registry unreachable" (EXTERNAL_SERVICE_ERROR / TIMEOUT_ERROR).

Not transactional across stores: a blob written before a failed metadata
save stays behind as an orphan.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog
from railway import ErrorCode, FailureDescription
from railway.result import Result

from cert_gateway.domain.models import (
    CertificateRecord,
    ProductRecord,
    RegistryVerdict,
    UploadRequest,
    as_identifier,
    decode_document,
    generate_certificate_id,
    object_name_for,
)
from cert_gateway.domain.ports import BlobStore, CertificateRegistry, ProductRepository
from cert_gateway.locks import KeyedLocks

log = structlog.get_logger()


def validate_upload(product_id: Any, document: bytes | None, certificate_id: Any) -> Result[UploadRequest]:
    """All three inputs must be present; nothing else is touched when one is missing."""
    pid = as_identifier(product_id)
    cid = as_identifier(certificate_id)
    if pid is None:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "productId is required")
    if not document:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "file is required")
    if cid is None:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "certificateId is required")
    return Result.success(UploadRequest(product_id=pid, document=document, certificate_id=cid))


class CertificateStore:
    """Stores registry-verified certificate documents under their products."""

    def __init__(
        self,
        registry: CertificateRegistry,
        blobs: BlobStore,
        products: ProductRepository,
        locks: KeyedLocks | None = None,
        id_factory: Callable[[], str] = generate_certificate_id,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._registry = registry
        self._blobs = blobs
        self._products = products
        self._locks = locks or KeyedLocks()
        self._id_factory = id_factory
        self._clock = clock

    # ──────────────────────── bool / list contract ────────────────────────

    def upload(self, product_id: Any, file: bytes | None, certificate_id: Any) -> bool:
        return self.upload_result(product_id, file, certificate_id).is_success()

    def list(self) -> list[str]:
        return self.list_result().get_or_else([])

    def list_for_product(self, product_id: Any) -> list[CertificateRecord]:
        return self.list_for_product_result(product_id).get_or_else([])

    def delete_product(self, product_id: Any) -> bool:
        return self.delete_product_result(product_id).is_success()

    def delete_certificate(self, product_id: Any, certificate_id: Any) -> bool:
        return self.delete_certificate_result(product_id, certificate_id).is_success()

    # ──────────────────────── Result variants ────────────────────────

    def upload_result(
        self, product_id: Any, document: bytes | None, certificate_id: Any
    ) -> Result[CertificateRecord]:
        """Validate, verify against the registry, then persist blob + metadata."""
        return (
            validate_upload(product_id, document, certificate_id)
            .flat_map(self._verify)
            .flat_map(lambda verified: self._persist(*verified))
            .peek(
                lambda record: log.info(
                    "store.uploaded",
                    product_id=as_identifier(product_id),
                    certificate_id=record.id,
                    locator=record.storage_locator,
                )
            )
            .peek_failure(lambda err: _log_failure("store.upload_rejected", err, product_id=product_id))
        )

    def upload_encoded_result(
        self, product_id: Any, encoded_file: Any, certificate_id: Any
    ) -> Result[CertificateRecord]:
        """Same as upload_result for a base64 document; undecodable input is a VALIDATION_ERROR."""
        if as_identifier(product_id) is None or as_identifier(certificate_id) is None:
            return self.upload_result(product_id, None, certificate_id)
        return (
            decode_document(encoded_file)
            .peek_failure(lambda err: _log_failure("store.upload_rejected", err, product_id=product_id))
            .flat_map(lambda document: self.upload_result(product_id, document, certificate_id))
        )

    def list_result(self) -> Result[list[str]]:
        return self._products.product_ids().peek_failure(
            lambda err: _log_failure("store.list_failed", err)
        )

    def list_for_product_result(self, product_id: Any) -> Result[list[CertificateRecord]]:
        pid = as_identifier(product_id)
        if pid is None:
            return Result.success([])
        return (
            self._products.load(pid)
            .map(lambda product: list(product.certificates))
            .peek_failure(lambda err: _log_failure("store.list_failed", err, product_id=pid))
        )

    def delete_product_result(self, product_id: Any) -> Result[str]:
        """Remove every blob and the product record; an unknown product is a no-op success."""
        pid = as_identifier(product_id)
        if pid is None:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "productId is required")
        with self._locks.hold(pid):
            result = self._products.load(pid).flat_map(self._remove_product)
        return result.peek(lambda _: log.info("store.product_deleted", product_id=pid)).peek_failure(
            lambda err: _log_failure("store.delete_failed", err, product_id=pid)
        )

    def delete_certificate_result(self, product_id: Any, certificate_id: Any) -> Result[CertificateRecord]:
        """
        Remove one certificate and its blob.

        NOT_FOUND when the product or the certificate does not exist. A product
        left without certificates is deleted entirely.
        """
        pid = as_identifier(product_id)
        cid = as_identifier(certificate_id)
        if pid is None or cid is None:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "productId and certificateId are required")
        with self._locks.hold(pid):
            result = self._products.load(pid).flat_map(lambda product: self._remove_certificate(product, cid))
        return result.peek(
            lambda _: log.info("store.certificate_deleted", product_id=pid, certificate_id=cid)
        ).peek_failure(
            lambda err: _log_failure("store.delete_failed", err, product_id=pid, certificate_id=cid)
        )

    # ──────────────────────── pipeline stages ────────────────────────

    def _verify(self, request: UploadRequest) -> Result[tuple[UploadRequest, RegistryVerdict]]:
        return (
            self._registry.lookup(request.certificate_id)
            .ensure(
                lambda verdict: verdict.is_valid,
                ErrorCode.BUSINESS_RULE_ERROR,
                f"Certificate {request.certificate_id} is not valid in the registry",
            )
            .map(lambda verdict: (request, verdict))
        )

    def _persist(self, request: UploadRequest, verdict: RegistryVerdict) -> Result[CertificateRecord]:
        with self._locks.hold(request.product_id):
            return self._products.load(request.product_id).flat_map(
                lambda product: self._append(product, request, verdict)
            )

    def _append(
        self, product: ProductRecord, request: UploadRequest, verdict: RegistryVerdict
    ) -> Result[CertificateRecord]:
        certificate_id = self._fresh_id(product)
        return (
            self._blobs.put(object_name_for(product.product_id, certificate_id), request.document)
            .map(
                lambda locator: CertificateRecord(
                    id=certificate_id,
                    storage_locator=locator,
                    uploaded_at=self._clock(),
                    verified=True,
                    valid_until=verdict.valid_until,
                )
            )
            .flat_map(
                lambda record: self._products.save(product.with_certificate(record))
                .peek_failure(
                    lambda _: log.warning(
                        "store.orphaned_blob",
                        product_id=product.product_id,
                        locator=record.storage_locator,
                    )
                )
                .map(lambda _: record)
            )
        )

    def _fresh_id(self, product: ProductRecord) -> str:
        taken = product.certificate_ids()
        certificate_id = self._id_factory()
        while certificate_id in taken:
            certificate_id = self._id_factory()
        return certificate_id

    def _remove_certificate(self, product: ProductRecord, certificate_id: str) -> Result[CertificateRecord]:
        return Result.from_optional(
            product.find(certificate_id),
            f"Certificate {certificate_id} not found for product {product.product_id}",
            ErrorCode.NOT_FOUND,
        ).flat_map(
            lambda certificate: self._blobs.delete(certificate.storage_locator)
            .flat_map(lambda _: self._write_remaining(product.without_certificate(certificate_id)))
            .map(lambda _: certificate)
        )

    def _write_remaining(self, product: ProductRecord) -> Result[str]:
        """A product with no certificates must not persist."""
        if product.is_empty:
            return self._products.remove(product.product_id)
        return self._products.save(product).map(lambda saved: saved.product_id)

    def _remove_product(self, product: ProductRecord) -> Result[str]:
        return Result.all_of(
            [self._blobs.delete(certificate.storage_locator) for certificate in product.certificates]
        ).flat_map(lambda _: self._products.remove(product.product_id))


def _log_failure(event: str, failure: FailureDescription, **context: Any) -> None:
    level = log.warning if failure.code in _EXPECTED_FAILURES else log.error
    level(event, error_code=failure.code.value, reason=failure.message, **context)


_EXPECTED_FAILURES = frozenset(
    {ErrorCode.VALIDATION_ERROR, ErrorCode.BUSINESS_RULE_ERROR, ErrorCode.NOT_FOUND}
)
