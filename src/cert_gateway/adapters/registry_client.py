"""
Registry adapter — ISCC certificate database lookup via httpx.

Adapter layer — implements the CertificateRegistry port.

The registry has no API; it is a public wpDataTables page. A lookup is two
requests:
  1. GET the certificate database page and scrape the table nonce
     (hidden input `wdtNonceFrontendEdit_2`)
  2. POST the DataTables AJAX query filtered by the certificate id

Validity = exactly one row, the row's certificate number equals the query,
and today lies within [valid_from, valid_until] with both dates present.

The response shape is untrusted: every field is checked before use.
Retry/backoff via tenacity on transient errors (network, timeout), bounded
by an overall deadline. Nothing escapes as an exception — failures become
Result failures and `verify` collapses them to (None, False).
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from datetime import date
from typing import Any

import httpx
import structlog
from railway import ErrorCode
from railway.result import Result
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from cert_gateway.domain.models import INVALID_VERDICT, RegistryVerdict, parse_iso_date

log = structlog.get_logger()

DEFAULT_SEARCH_PAGE_URL = (
    "https://www.iscc-system.org/certification/certificate-database/all-certificates/"
)
DEFAULT_TABLE_URL = (
    "https://www.iscc-system.org/wp-admin/admin-ajax.php?action=get_wdtable&table_id=2"
)

_NONCE_PATTERN = re.compile(r'wdtNonceFrontendEdit_2.*?value="([^"]+)"', re.DOTALL)

# Column order of the registry table; index 1 is the certificate number,
# 7 and 8 are the validity dates.
_COLUMNS = (
    "cert_ikon",
    "cert_number",
    "cert_owner",
    "scope",
    "cert_in_put",
    "cert_add_on",
    "cert_products",
    "cert_valid_from",
    "cert_valid_until",
    "cert_suspended_date",
    "cert_issuer",
    "cert_map",
    "cert_file",
    "cert_audit",
    "cert_status",
)
_NUMBER_COLUMN = 1
_VALID_FROM_COLUMN = 7
_VALID_UNTIL_COLUMN = 8


class RegistryDeadlineExceeded(TimeoutError):
    """The overall lookup deadline elapsed before the registry answered."""


class MalformedRegistryResponse(ValueError):
    """The registry answered with something other than the expected page or table."""


def build_table_query(certificate_id: str, nonce: str) -> dict[str, str]:
    """DataTables form body: all columns searchable, ordered by expiry, filtered by id."""
    form: dict[str, str] = {"draw": "4"}
    for index, name in enumerate(_COLUMNS):
        prefix = f"columns[{index}]"
        form[f"{prefix}[data]"] = str(index)
        form[f"{prefix}[name]"] = name
        form[f"{prefix}[searchable]"] = "true"
        form[f"{prefix}[orderable]"] = "true"
        form[f"{prefix}[search][value]"] = ""
        form[f"{prefix}[search][regex]"] = "false"
    form.update(
        {
            "order[0][column]": str(_VALID_UNTIL_COLUMN),
            "order[0][dir]": "desc",
            "start": "0",
            "length": "10",
            "search[value]": certificate_id,
            "search[regex]": "false",
            "wdtNonce": nonce,
            "sRangeSeparator": "|",
        }
    )
    return form


def extract_nonce(page: str) -> str:
    match = _NONCE_PATTERN.search(page)
    if match is None:
        raise MalformedRegistryResponse("registry page has no table nonce")
    return match.group(1)


def evaluate_rows(certificate_id: str, payload: Any, today: date) -> RegistryVerdict:
    """
    Decide validity from the decoded table response.

    An empty result set is a negative verdict, not an error; a payload that is
    not `{"data": [[...], ...]}` raises MalformedRegistryResponse.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise MalformedRegistryResponse("registry table response has no data list")
    rows = payload["data"]
    if not rows:
        return INVALID_VERDICT
    row = rows[0]
    if not isinstance(row, list) or len(row) <= _VALID_UNTIL_COLUMN:
        raise MalformedRegistryResponse("registry table row has an unexpected shape")

    valid_from = parse_iso_date(row[_VALID_FROM_COLUMN])
    valid_until = parse_iso_date(row[_VALID_UNTIL_COLUMN])
    is_valid = (
        len(rows) == 1
        and str(row[_NUMBER_COLUMN]) == certificate_id
        and valid_from is not None
        and valid_until is not None
        and valid_from <= today <= valid_until
    )
    return RegistryVerdict(valid_until=valid_until, is_valid=is_valid)


class IsccRegistryClient:
    """
    Look certificates up in the ISCC certificate database.

    Implements the CertificateRegistry port.
    Every lookup runs under `deadline_seconds`; running out is a TIMEOUT_ERROR.
    """

    def __init__(
        self,
        search_page_url: str = DEFAULT_SEARCH_PAGE_URL,
        table_url: str = DEFAULT_TABLE_URL,
        deadline_seconds: float = 20.0,
        max_attempts: int = 3,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._search_page_url = search_page_url
        self._table_url = table_url
        self._deadline_seconds = deadline_seconds
        self._max_attempts = max_attempts
        self._today = today

    def verify(self, certificate_id: str) -> tuple[date | None, bool]:
        """
        Backward-compatible contract: (valid_until, is_valid).

        Network failures, malformed answers and unknown certificates are
        indistinguishable here — all yield (None, False).
        """
        verdict = self.lookup(certificate_id).get_or_else(INVALID_VERDICT)
        return verdict.valid_until, verdict.is_valid

    def lookup(self, certificate_id: str) -> Result[RegistryVerdict]:
        """
        Query the registry for `certificate_id`.

        Returns Success(verdict) whenever the registry answered sensibly,
        Failure(TIMEOUT_ERROR) past the deadline, and
        Failure(EXTERNAL_SERVICE_ERROR) for network errors or malformed answers.
        """
        deadline = time.monotonic() + self._deadline_seconds
        try:
            payload = self._query(certificate_id, deadline)
            verdict = evaluate_rows(certificate_id, payload, self._today())
        except (RegistryDeadlineExceeded, httpx.TimeoutException) as e:
            log.warning("registry.lookup_timeout", certificate_id=certificate_id, error=str(e))
            return Result.failure(ErrorCode.TIMEOUT_ERROR, "Registry lookup timed out", e)
        except Exception as e:
            log.warning("registry.lookup_failed", certificate_id=certificate_id, error=str(e))
            return Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "Registry lookup failed", e)

        log.info(
            "registry.lookup_complete",
            certificate_id=certificate_id,
            valid=verdict.is_valid,
            valid_until=verdict.valid_until.isoformat() if verdict.valid_until else None,
        )
        return Result.success(verdict)

    def _query(self, certificate_id: str, deadline: float) -> Any:
        """Both HTTP steps, retried as a unit on transient errors until the deadline."""
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts) | stop_after_delay(self._deadline_seconds),
            wait=wait_exponential(multiplier=1, min=0.1, max=5),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True,
        )
        for attempt in retrying:
            with attempt, httpx.Client(follow_redirects=True) as client:
                page = client.get(self._search_page_url, timeout=_remaining(deadline))
                page.raise_for_status()
                nonce = extract_nonce(page.text)

                response = client.post(
                    self._table_url,
                    data=build_table_query(certificate_id, nonce),
                    timeout=_remaining(deadline),
                )
                response.raise_for_status()
                return response.json()
        raise RegistryDeadlineExceeded("registry lookup exhausted its attempts")  # pragma: no cover


def _remaining(deadline: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise RegistryDeadlineExceeded("registry deadline exceeded")
    return remaining
