"""S3-compatible blob storage client.

Provides put, download, signed URL and delete operations using boto3
against any S3-compatible endpoint.
"""

from __future__ import annotations

import logging
import os

import boto3
from botocore.exceptions import ClientError

from audio_notes.storage.interface import BlobStore
from audio_notes.utils.errors import AudioFetchError, StorageError

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore(BlobStore):
    """S3-compatible client for the audio bucket.

    Reads configuration from environment variables:
        BLOB_ENDPOINT, BLOB_BUCKET, BLOB_ACCESS_KEY_ID, BLOB_SECRET_ACCESS_KEY
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        bucket: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url or os.environ.get("BLOB_ENDPOINT", "")
        self.bucket = bucket or os.environ.get("BLOB_BUCKET", "")
        self.access_key_id = access_key_id or os.environ.get(
            "BLOB_ACCESS_KEY_ID", ""
        )
        self.secret_access_key = secret_access_key or os.environ.get(
            "BLOB_SECRET_ACCESS_KEY", ""
        )

        if not self.endpoint_url:
            raise StorageError("BLOB_ENDPOINT is required", operation="init")
        if not self.bucket:
            raise StorageError("BLOB_BUCKET is required", operation="init")

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",
        )

    def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        """Store an object.

        Raises:
            StorageError: If the object cannot be stored.
        """
        try:
            kwargs: dict = {"Bucket": self.bucket, "Key": key, "Body": data}
            if content_type:
                kwargs["ContentType"] = content_type
            self._client.put_object(**kwargs)
        except ClientError as exc:
            raise StorageError(
                f"Failed to put object '{key}': {_error_code(exc)}",
                operation="put_object",
                status_code=_http_status(exc),
            ) from exc

    def download_to(self, key: str, destination: str) -> None:
        """Download an object to a local file.

        Raises:
            AudioFetchError: If the object cannot be retrieved.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            data = response["Body"].read()
        except ClientError as exc:
            raise AudioFetchError(
                f"Failed to fetch object '{key}': {_error_code(exc)}",
                key=key,
                status_code=_http_status(exc),
            ) from exc

        with open(destination, "wb") as f:
            f.write(data)

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Generate a presigned GET URL.

        Raises:
            StorageError: If the URL cannot be generated.
        """
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except ClientError as exc:
            raise StorageError(
                f"Failed to sign URL for '{key}': {_error_code(exc)}",
                operation="signed_url",
            ) from exc

    def delete_object(self, key: str) -> None:
        """Delete an object. A missing object is ignored.

        Raises:
            StorageError: If deletion fails for any other reason.
        """
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = _error_code(exc)
            if code in _MISSING_OBJECT_CODES:
                logger.debug("Object '%s' already absent", key)
                return
            raise StorageError(
                f"Failed to delete object '{key}': {code}",
                operation="delete_object",
                status_code=_http_status(exc),
            ) from exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", "Unknown"))


def _http_status(exc: ClientError) -> int | None:
    return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
