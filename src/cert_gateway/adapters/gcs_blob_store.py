"""
Google Cloud Storage adapter — certificate documents as bucket objects.

Adapter layer — implements the BlobStore port with google-cloud-storage.
Objects are written as application/pdf and addressed by `gs://<bucket>/<name>`
locators. Deleting an object that no longer exists is treated as success.
All exceptions are caught at this adapter boundary via Result.from_computation().
"""

from __future__ import annotations

import structlog
from google.api_core.exceptions import NotFound
from google.cloud import storage
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()


class GcsBlobStore:
    """Store certificate documents in a single GCS bucket."""

    def __init__(
        self,
        bucket_name: str,
        project_id: str | None = None,
        client: storage.Client | None = None,
    ) -> None:
        self._bucket_name = bucket_name
        self._client = client or storage.Client(project=project_id)
        self._bucket = self._client.bucket(bucket_name)

    @property
    def locator_prefix(self) -> str:
        return f"gs://{self._bucket_name}/"

    def put(self, object_name: str, data: bytes) -> Result[str]:
        return Result.from_computation(
            lambda: self._upload(object_name, data),
            ErrorCode.DATABASE_ERROR,
            "Failed to write certificate document to bucket",
        )

    def delete(self, locator: str) -> Result[bool]:
        """
        Delete the object behind a `gs://` locator in this bucket.

        Locators pointing elsewhere (another bucket, mock://) are left alone
        and reported as Success(False).
        """
        if not locator.startswith(self.locator_prefix):
            log.warning("gcs.delete_skipped", locator=locator, bucket=self._bucket_name)
            return Result.success(False)
        object_name = locator[len(self.locator_prefix):]
        return Result.from_computation(
            lambda: self._delete_object(object_name),
            ErrorCode.DATABASE_ERROR,
            "Failed to delete certificate document from bucket",
        )

    def _upload(self, object_name: str, data: bytes) -> str:
        self._bucket.blob(object_name).upload_from_string(data, content_type="application/pdf")
        locator = f"{self.locator_prefix}{object_name}"
        log.info("gcs.stored", locator=locator, size_bytes=len(data))
        return locator

    def _delete_object(self, object_name: str) -> bool:
        try:
            self._bucket.blob(object_name).delete()
        except NotFound:
            log.info("gcs.already_deleted", object_name=object_name)
        return True
