"""
Tubely S3-Compatible Object Store Client

Bucket-scoped put and delete by key over boto3, usable against AWS S3 or a
MinIO endpoint. The blocking boto3 calls run in a worker thread so the event
loop keeps serving other requests.

Every transport or service failure surfaces as StorageUnavailable. The client
is configured with a single attempt per call: an upload that fails is
reported to the caller immediately instead of being retried.

A cancelled put sets an abort flag that the boto3 transfer progress callback
checks, so the worker thread stops sending bytes shortly after the request
that started it has gone away.
"""

import asyncio
import logging
import threading

from functools import wraps
from pathlib import Path
from typing import Any, Callable, TypeVar

import boto3

from boto3.exceptions import S3UploadFailedError
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings, get_settings
from tubely.core.errors import StorageUnavailable


# Configure module-level logger
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Singleton container for storage client instance
# Using a dict container allows modification without global statement
_singleton_container: dict[str, "StorageClient"] = {}


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to wrap synchronous boto3 operations for async execution.

    Uses asyncio.to_thread to run blocking boto3 operations in a separate
    thread pool, preventing event loop blocking during S3 operations.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper


class TransferAborted(Exception):
    """Raised from the progress callback to stop an in-flight transfer."""


class StorageClient:
    """
    S3-compatible storage client supporting both MinIO and AWS S3.

    Attributes:
        settings: Application settings containing S3 configuration
        s3_client: Initialized boto3 S3 client
        bucket_name: Default bucket for processed videos

    Example usage:
        ```python
        from tubely.core.storage import get_storage_client

        storage = get_storage_client()
        await storage.put_object(
            storage.bucket_name, "landscape/abc.mp4", "/tmp/x.mp4", "video/mp4"
        )
        ```
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

        # Single attempt per call, failures go straight back to the caller
        client_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},  # Use path-style for MinIO compatibility
            retries={"max_attempts": 1, "mode": "standard"},
        )

        # When endpoint_url is None, boto3 defaults to AWS S3
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=self.settings.s3_endpoint_url,
                aws_access_key_id=self.settings.s3_access_key_id,
                aws_secret_access_key=self.settings.s3_secret_access_key,
                region_name=self.settings.s3_region,
                config=client_config,
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception(
                "Failed to initialize S3 storage client",
                extra={"endpoint": self.settings.s3_endpoint_url},
            )
            raise StorageUnavailable("Could not initialize object storage client") from e

        self.bucket_name = self.settings.s3_bucket_name

        logger.info(
            "S3 storage client initialized successfully",
            extra={
                "bucket": self.bucket_name,
                "region": self.settings.s3_region,
                "endpoint": self.settings.s3_endpoint_url or "AWS S3 (default)",
            },
        )

    # =========================================================================
    # Upload
    # =========================================================================

    def put_object_sync(
        self,
        bucket: str,
        key: str,
        file_path: str | Path,
        content_type: str,
        abort: threading.Event | None = None,
    ) -> None:
        """
        Upload a local file under ``key`` with the given Content-Type.

        Args:
            bucket: Target bucket.
            key: Object key, e.g. ``landscape/<token>.mp4``.
            file_path: Local file holding the bytes to upload.
            content_type: Value sent as the object's Content-Type.
            abort: Optional flag; once set the transfer stops at the next
                progress tick.

        Raises:
            StorageUnavailable: On any S3 error or local read failure.
            TransferAborted: If ``abort`` was set during the transfer.
        """

        def _progress(_bytes_transferred: int) -> None:
            if abort is not None and abort.is_set():
                raise TransferAborted(key)

        try:
            self.s3_client.upload_file(
                Filename=str(file_path),
                Bucket=bucket,
                Key=key,
                ExtraArgs={"ContentType": content_type},
                Callback=_progress,
            )
        except TransferAborted:
            logger.info("Aborted S3 upload", extra={"bucket": bucket, "key": key})
            raise
        except (ClientError, BotoCoreError, S3UploadFailedError, OSError) as e:
            logger.exception(
                "Failed to upload file to S3",
                extra={"bucket": bucket, "key": key, "file_path": str(file_path)},
            )
            raise StorageUnavailable("Failed to upload object", details={"key": key}) from e

        logger.info(
            "Uploaded file to S3",
            extra={"bucket": bucket, "key": key, "content_type": content_type},
        )

    async def put_object(
        self,
        bucket: str,
        key: str,
        file_path: str | Path,
        content_type: str,
    ) -> None:
        """Async put; cancelling the awaiting task aborts the worker-thread transfer."""
        abort = threading.Event()
        try:
            await asyncio.to_thread(
                self.put_object_sync, bucket, key, file_path, content_type, abort
            )
        except asyncio.CancelledError:
            abort.set()
            raise

    # =========================================================================
    # Delete
    # =========================================================================

    @async_wrap
    def delete_object(self, bucket: str, key: str) -> None:
        """
        Delete ``key`` from ``bucket``. Deleting a missing key is not an error.

        Raises:
            StorageUnavailable: On any S3 error.
        """
        try:
            self.s3_client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.exception("Failed to delete file from S3", extra={"bucket": bucket, "key": key})
            raise StorageUnavailable("Failed to delete object", details={"key": key}) from e

        logger.info("Deleted file from S3", extra={"bucket": bucket, "key": key})


def get_storage_client() -> StorageClient:
    """
    Get the singleton StorageClient instance.

    The boto3 client is thread-safe, so one instance is shared by every
    request. Also used as a FastAPI dependency, which tests override.
    """
    if "instance" not in _singleton_container:
        _singleton_container["instance"] = StorageClient()
        logger.info("Created new StorageClient singleton instance")

    return _singleton_container["instance"]


__all__ = ["StorageClient", "TransferAborted", "async_wrap", "get_storage_client"]
