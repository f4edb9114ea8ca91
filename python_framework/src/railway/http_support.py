"""
HTTP integration — ErrorCode→HTTP status mapping and error bodies.

Framework-agnostic: callers pick the status with HttpStatusMapper and
render ErrorResponse with whatever response class their framework offers.

    status = HttpStatusMapper.map_error_code(ErrorCode.NOT_FOUND)  # → 404
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Mapping

from railway.failure import ErrorCode, FailureDescription


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        # Client errors (4xx)
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.BUSINESS_RULE_ERROR: 409,
        # Server errors (5xx)
        ErrorCode.TECHNICAL_ERROR: 500,
        ErrorCode.DATABASE_ERROR: 500,
        ErrorCode.CONFIGURATION_ERROR: 500,
        ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
        ErrorCode.TIMEOUT_ERROR: 504,
        ErrorCode.UNKNOWN_ERROR: 500,
    }

    @classmethod
    def map_error_code(
        cls,
        code: ErrorCode,
        overrides: Mapping[ErrorCode, int] | None = None,
    ) -> int:
        """
        Map an ErrorCode to an HTTP status code.

        `overrides` lets an endpoint collapse codes onto its own contract,
        e.g. report every verification failure as 400.
        """
        if overrides and code in overrides:
            return overrides[code]
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def map_failure(
        cls,
        failure: FailureDescription,
        overrides: Mapping[ErrorCode, int] | None = None,
    ) -> int:
        return cls.map_error_code(failure.code, overrides)


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error response body.

        {
            "error_code": "VALIDATION_ERROR",
            "message": "productId is required",
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    message: str
    timestamp: str

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            message=failure.message,
            timestamp=failure.timestamp.isoformat(),
        )

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
