"""
Railway-Oriented Programming (ROP) support for cert-gateway.

Explicit, composable error handling — adapters return Result instead of raising.

    from railway import Result, ErrorCode

    def require(value: str | None, field: str) -> Result[str]:
        if not value:
            return Result.failure(ErrorCode.VALIDATION_ERROR, f"{field} is required")
        return Result.success(value)
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.http_support import ErrorResponse, HttpStatusMapper
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ErrorResponse",
    "HttpStatusMapper",
    "ResultAssertions",
]

__version__ = "1.0.0"
