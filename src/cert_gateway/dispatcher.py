"""
Request Dispatcher — operation name → store call → response envelope.

Shared by the message channel; pure mapping with no transport knowledge.

| operationType             | store call                                 | response fields                        |
|---------------------------|--------------------------------------------|----------------------------------------|
| upload                    | upload(productId, file, certificateId)     | status                                 |
| delete                    | delete_certificate(productId, certificateId)| productId, certificateId, status      |
| deleteProductCertificate  | delete_certificate(productId, certificateId)| productId, certificateId, status      |
| deleteProduct             | delete_product(productId)                  | productId, status                      |
| list                      | list()                                     | productIds, total                      |
| listProductCertificates   | list_for_product(productId)                | productId, certificates, total         |

Responses carry `operationType` = request operationType + "Response".
An unrecognized operationType yields None: no response is produced.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

import structlog

from cert_gateway.store import CertificateStore

log = structlog.get_logger()

RESPONSE_SUFFIX = "Response"


class Operation(StrEnum):
    UPLOAD = "upload"
    DELETE = "delete"
    DELETE_PRODUCT_CERTIFICATE = "deleteProductCertificate"
    DELETE_PRODUCT = "deleteProduct"
    LIST = "list"
    LIST_PRODUCT_CERTIFICATES = "listProductCertificates"


Handler = Callable[[Mapping[str, Any]], dict[str, Any]]


class RequestDispatcher:
    """Maps request envelopes onto CertificateStore calls."""

    def __init__(self, store: CertificateStore) -> None:
        self._store = store
        self._handlers: dict[str, Handler] = {
            Operation.UPLOAD: self._upload,
            Operation.DELETE: self._delete_certificate,
            Operation.DELETE_PRODUCT_CERTIFICATE: self._delete_certificate,
            Operation.DELETE_PRODUCT: self._delete_product,
            Operation.LIST: self._list,
            Operation.LIST_PRODUCT_CERTIFICATES: self._list_product_certificates,
        }

    def supports(self, operation_type: Any) -> bool:
        return isinstance(operation_type, str) and operation_type in self._handlers

    def dispatch(self, operation_type: str, data: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """Run the operation and build its response envelope; None for unknown operations."""
        if not self.supports(operation_type):
            log.warning("dispatcher.unknown_operation", operation_type=operation_type)
            return None
        body = self._handlers[operation_type](data or {})
        log.info("dispatcher.dispatched", operation_type=operation_type)
        return {"operationType": f"{operation_type}{RESPONSE_SUFFIX}", **body}

    def _upload(self, data: Mapping[str, Any]) -> dict[str, Any]:
        result = self._store.upload_encoded_result(
            data.get("productId"), data.get("file"), data.get("certificateId")
        )
        return {"status": result.is_success()}

    def _delete_certificate(self, data: Mapping[str, Any]) -> dict[str, Any]:
        product_id = data.get("productId")
        certificate_id = data.get("certificateId")
        return {
            "productId": product_id,
            "certificateId": certificate_id,
            "status": self._store.delete_certificate(product_id, certificate_id),
        }

    def _delete_product(self, data: Mapping[str, Any]) -> dict[str, Any]:
        product_id = data.get("productId")
        return {"productId": product_id, "status": self._store.delete_product(product_id)}

    def _list(self, data: Mapping[str, Any]) -> dict[str, Any]:
        product_ids = self._store.list()
        return {"productIds": product_ids, "total": len(product_ids)}

    def _list_product_certificates(self, data: Mapping[str, Any]) -> dict[str, Any]:
        product_id = data.get("productId")
        certificates = [c.to_document() for c in self._store.list_for_product(product_id)]
        return {"productId": product_id, "certificates": certificates, "total": len(certificates)}
