"""
Thin adapter over an aiobotocore S3 client for the target bucket.

All S3-compatible providers are reached through the same client; provider
differences (bulk deletion, prefixed listing) are exposed as properties.
"""

import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional

from botocore.exceptions import ClientError

from harbor_sync.config import StorageConfig
from harbor_sync.exceptions import BucketNotFoundError, TransferError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.paginator import ListObjectsV2Paginator

logger: logging.Logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class BucketStorage:
    """Object operations on the configured bucket."""

    def __init__(
        self, client: "S3Client", config: StorageConfig, prefix: str
    ) -> None:
        """
        Initializes the adapter.

        Args:
            client (S3Client): An open aiobotocore S3 client.
            config (StorageConfig): The storage configuration.
            prefix (str): The assets prefix used to scope listings.
        """
        self._client: "S3Client" = client
        self._config: StorageConfig = config
        self._prefix: str = prefix

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def supports_bulk_delete(self) -> bool:
        return self._config.is_aws

    def _not_found(self) -> BucketNotFoundError:
        return BucketNotFoundError(
            f"{self._config.provider} Bucket: {self.bucket} not found."
        )

    async def exists(self) -> bool:
        """Checks whether the bucket exists."""
        try:
            await self._client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                return False
            raise
        return True

    async def ensure_exists(self) -> None:
        """Raises `BucketNotFoundError` unless the bucket exists."""
        if not await self.exists():
            raise self._not_found()

    async def iter_keys(self) -> AsyncIterator[str]:
        """
        Lists the object keys under the assets prefix.

        Backblaze buckets are listed without a prefix.

        Yields:
            str: Each object key.
        """
        paginator: "ListObjectsV2Paginator" = self._client.get_paginator(
            "list_objects_v2"
        )
        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        if self._prefix and not self._config.is_backblaze:
            kwargs["Prefix"] = f"{self._prefix}/"
        try:
            async for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                raise self._not_found() from e
            raise

    async def list_keys(self) -> List[str]:
        """Returns a live listing of the object keys under the assets prefix."""
        return [key async for key in self.iter_keys()]

    async def get_object(self, key: str) -> Optional[bytes]:
        """
        Downloads an object.

        Returns:
            Optional[bytes]: The body, or None when the object does not exist.
        """
        try:
            response: Any = await self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_KEY_CODES:
                return None
            raise
        return await response["Body"].read()

    async def put_object(self, body: bytes, **params: Any) -> None:
        """
        Uploads an object.

        Args:
            body (bytes): The object body.
            **params (Any): PutObject parameters; `Key` is required.
        """
        try:
            await self._client.put_object(Bucket=self.bucket, Body=body, **params)
        except ClientError as e:
            raise TransferError(f"Failed to upload '{params['Key']}': {e}") from e

    async def delete_object(self, key: str) -> None:
        """Deletes one object."""
        try:
            await self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise TransferError(f"Failed to delete '{key}': {e}") from e

    async def delete_objects(self, keys: List[str]) -> None:
        """
        Deletes up to 1000 objects in a single request.

        Raises:
            TransferError: If the request fails or reports per-key errors.
        """
        try:
            response: Any = await self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except ClientError as e:
            raise TransferError(
                f"Bulk delete of {len(keys)} objects failed: {e}"
            ) from e
        errors: List[Any] = response.get("Errors", [])
        if errors:
            failed: str = ", ".join(
                f"'{err.get('Key')}' ({err.get('Code')})" for err in errors
            )
            raise TransferError(f"Failed to delete {failed}")
