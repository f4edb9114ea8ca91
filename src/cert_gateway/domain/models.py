"""
Domain models — immutable value objects for products and their certificates.

A ProductRecord owns an ordered sequence of CertificateRecords; certificate
records are never referenced outside their product. Both serialize to the
camelCase document shape shared by every metadata backend and by the wire
protocol:

    {"productId": "p1", "certificates": [
        {"id": "...", "storageLocator": "gs://...", "uploadedAt": "...",
         "verified": true, "validUntil": "2999-01-01"}]}
"""

from __future__ import annotations

import base64
import binascii
import secrets
import string
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from typing import Any

from railway import ErrorCode
from railway.result import Result

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_certificate_id() -> str:
    """Time-ordered id with a short random suffix, e.g. "1760862543210-k3f9qa"."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{time.time_ns() // 1_000_000}-{suffix}"


def object_name_for(product_id: str, certificate_id: str) -> str:
    """Blob path derived deterministically from the owning product and certificate id."""
    return f"certificates/{product_id}_{certificate_id}.pdf"


def as_identifier(value: Any) -> str | None:
    """Coerce a caller-supplied identifier (string or JSON number) to text; blank → None."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def decode_document(encoded: Any) -> Result[bytes]:
    """Decode a base64 document payload. Non-strings, bad padding or foreign characters fail."""
    if not isinstance(encoded, str) or not encoded.strip():
        return Result.failure(ErrorCode.VALIDATION_ERROR, "file is required")
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "file is not valid base64", e)
    if not decoded:
        return Result.failure(ErrorCode.VALIDATION_ERROR, "file is empty")
    return Result.success(decoded)


@dataclass(frozen=True, slots=True)
class RegistryVerdict:
    """Outcome of a registry lookup: the certificate's expiry and whether it is currently valid."""

    valid_until: date | None
    is_valid: bool


INVALID_VERDICT = RegistryVerdict(valid_until=None, is_valid=False)


@dataclass(frozen=True, slots=True)
class UploadRequest:
    """A validated upload: every field present, document already decoded."""

    product_id: str
    document: bytes = field(repr=False)
    certificate_id: str


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """
    Metadata for one uploaded, registry-verified document.

    `verified` is always True for stored records: unverifiable uploads are
    rejected before anything is persisted.
    """

    id: str
    storage_locator: str
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    verified: bool = True
    valid_until: date | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "storageLocator": self.storage_locator,
            "uploadedAt": self.uploaded_at.isoformat(),
            "verified": self.verified,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
        }

    @staticmethod
    def from_document(doc: dict[str, Any]) -> CertificateRecord:
        """Inverse of to_document. Older documents name the locator `bucketPath`."""
        uploaded_at = doc.get("uploadedAt")
        valid_until = doc.get("validUntil")
        return CertificateRecord(
            id=str(doc["id"]),
            storage_locator=str(doc.get("storageLocator") or doc.get("bucketPath") or ""),
            uploaded_at=_parse_datetime(uploaded_at),
            verified=bool(doc.get("verified", True)),
            valid_until=parse_iso_date(valid_until),
        )


@dataclass(frozen=True, slots=True)
class ProductRecord:
    """A product keyed by its caller-supplied id, owning its certificates in upload order."""

    product_id: str
    certificates: tuple[CertificateRecord, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.certificates

    def certificate_ids(self) -> set[str]:
        return {cert.id for cert in self.certificates}

    def find(self, certificate_id: str) -> CertificateRecord | None:
        return next((c for c in self.certificates if c.id == certificate_id), None)

    def with_certificate(self, certificate: CertificateRecord) -> ProductRecord:
        return replace(self, certificates=(*self.certificates, certificate))

    def without_certificate(self, certificate_id: str) -> ProductRecord:
        return replace(
            self,
            certificates=tuple(c for c in self.certificates if c.id != certificate_id),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "certificates": [c.to_document() for c in self.certificates],
        }

    @staticmethod
    def from_document(product_id: str, doc: dict[str, Any] | None) -> ProductRecord:
        """Build from a stored document; a missing or malformed list means no certificates."""
        doc = doc or {}
        raw = doc.get("certificates")
        certificates = tuple(
            CertificateRecord.from_document(c)
            for c in (raw if isinstance(raw, list) else [])
            if isinstance(c, dict) and c.get("id") is not None
        )
        return ProductRecord(product_id=str(doc.get("productId") or product_id), certificates=certificates)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.fromtimestamp(0, UTC)


def parse_iso_date(value: Any) -> date | None:
    """Leading YYYY-MM-DD of a string (or a date/datetime) as a date; anything else → None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None
