"""Object store backends for the transfer job."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import StorageTargetConfig
from .interfaces import ObjectStore
from .models import ObjectDescriptor

logger = logging.getLogger(__name__)


class S3ObjectStore(ObjectStore):
    """
    S3 object store backed by a single boto3 client.

    Optional params:
    - region: AWS region (default: resolved by boto3)
    - endpoint_url: Custom S3 endpoint (for LocalStack testing)
    - connect_timeout / read_timeout: per-call socket timeouts in seconds
    - max_attempts: attempts per call, 1 disables retries (default: 1)
    - retry_backoff: exponential backoff multiplier in seconds (default: 1)
    - multipart_threshold: upload size above which multipart is used (default: 8 MB)
    - multipart_chunksize: bytes per uploaded part (default: 8 MB)

    Credentials always come from boto3's default provider chain.
    """

    # Streaming chunk size for downloads
    CHUNK_SIZE = 1024 * 1024  # 1 MB

    # Single PUTs are capped at 5 GB; parts must be >= 5 MB except the last
    MULTIPART_THRESHOLD = 8 * 1024 * 1024  # 8 MB
    MULTIPART_CHUNKSIZE = 8 * 1024 * 1024  # 8 MB per part

    # Error codes worth another attempt; anything else fails fast
    TRANSIENT_ERROR_CODES = frozenset(
        {
            "InternalError",
            "RequestTimeout",
            "RequestTimeTooSkewed",
            "ServiceUnavailable",
            "SlowDown",
            "Throttling",
            "ThrottlingException",
        }
    )

    def __init__(self, config: StorageTargetConfig, client: Any = None) -> None:
        params = config.params
        self._region = params.get("region")
        self._max_attempts = int(params.get("max_attempts", 1))
        self._retry_backoff = float(params.get("retry_backoff", 1))
        self._multipart_threshold = int(params.get("multipart_threshold", self.MULTIPART_THRESHOLD))
        self._multipart_chunksize = int(params.get("multipart_chunksize", self.MULTIPART_CHUNKSIZE))
        if self._max_attempts < 1:
            raise ValueError("S3ObjectStore requires max_attempts >= 1")
        if self._multipart_chunksize < 1:
            raise ValueError("S3ObjectStore requires multipart_chunksize >= 1")

        if client is None:
            client = boto3.client(
                "s3",
                region_name=self._region,
                endpoint_url=params.get("endpoint_url"),
                config=self._build_client_config(params),
            )
        self._s3_client = client

        logger.debug(
            "Initialized S3ObjectStore region=%s, max_attempts=%d",
            self._region,
            self._max_attempts,
        )

    @staticmethod
    def _build_client_config(params: Dict[str, Any]) -> BotoConfig:
        timeouts = {
            name: float(params[name])
            for name in ("connect_timeout", "read_timeout")
            if params.get(name) is not None
        }
        return BotoConfig(**timeouts)

    @classmethod
    def _is_transient(cls, exc: BaseException) -> bool:
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
            return error.get("Code") in cls.TRANSIENT_ERROR_CODES or status >= 500
        # Client-side validation never succeeds on a second try
        if isinstance(exc, ParamValidationError):
            return False
        return isinstance(exc, BotoCoreError)

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_backoff, max=10),
            retry=retry_if_exception(self._is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)

    def list_objects(self, bucket: str) -> List[ObjectDescriptor]:
        """List the first page of the bucket, which always holds the first object."""
        try:
            response = self._call(self._s3_client.list_objects_v2, Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to list bucket %s: %s", bucket, e)
            raise

        # Empty buckets come back without a Contents entry
        descriptors = [
            ObjectDescriptor(
                key=item["Key"],
                size=item.get("Size"),
                etag=item.get("ETag"),
                last_modified=item.get("LastModified"),
                metadata={"storage_class": item["StorageClass"]} if "StorageClass" in item else {},
            )
            for item in response.get("Contents", [])
        ]
        logger.debug("Listed %d objects in bucket %s", len(descriptors), bucket)
        return descriptors

    def download(self, bucket: str, key: str, destination: Path) -> int:
        def _fetch() -> int:
            response = self._s3_client.get_object(Bucket=bucket, Key=key)
            written = 0
            with open(destination, "wb") as fh:
                for chunk in response["Body"].iter_chunks(self.CHUNK_SIZE):
                    fh.write(chunk)
                    written += len(chunk)
            return written

        try:
            written = self._call(_fetch)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to download s3://%s/%s: %s", bucket, key, e)
            raise
        logger.debug("Downloaded s3://%s/%s (%d bytes) to %s", bucket, key, written, destination)
        return written

    def upload(self, bucket: str, key: str, source: Path) -> Optional[str]:
        """Upload the file, switching to multipart above the threshold."""
        size = Path(source).stat().st_size
        upload_fn = self._multipart_upload if size > self._multipart_threshold else self._simple_upload

        try:
            response = self._call(upload_fn, bucket, key, source)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to upload %s to s3://%s/%s: %s", source, bucket, key, e)
            raise
        etag = response.get("ETag")
        logger.debug("Uploaded s3://%s/%s (%d bytes) etag=%s", bucket, key, size, etag)
        return etag

    def _simple_upload(self, bucket: str, key: str, source: Path) -> Dict[str, Any]:
        # Reopened per attempt so a retry streams from the start
        with open(source, "rb") as fh:
            return self._s3_client.put_object(Bucket=bucket, Key=key, Body=fh)

    def _multipart_upload(self, bucket: str, key: str, source: Path) -> Dict[str, Any]:
        mpu = self._s3_client.create_multipart_upload(Bucket=bucket, Key=key)
        upload_id = mpu["UploadId"]

        try:
            parts = []
            with open(source, "rb") as fh:
                part_number = 1
                while True:
                    chunk = fh.read(self._multipart_chunksize)
                    if not chunk:
                        break
                    response = self._s3_client.upload_part(
                        Bucket=bucket,
                        Key=key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=chunk,
                    )
                    parts.append({"PartNumber": part_number, "ETag": response["ETag"]})
                    part_number += 1

            result = self._s3_client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except Exception as e:
            self._s3_client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
            logger.error("Aborted multipart upload for s3://%s/%s: %s", bucket, key, e)
            raise

        logger.debug("Completed multipart upload for s3://%s/%s (%d parts)", bucket, key, len(parts))
        return result


class LocalFilesystemObjectStore(ObjectStore):
    """Buckets are directories under base_path and objects are files inside them."""

    def __init__(self, config: StorageTargetConfig) -> None:
        base_path = config.params.get("base_path")
        if not base_path:
            raise ValueError("LocalFilesystemObjectStore requires base_path param")
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    def _bucket_path(self, bucket: str) -> Path:
        if not bucket:
            raise ValueError("Bucket name is required")
        path = self._base_path / bucket
        if not path.is_dir():
            raise FileNotFoundError(f"No such bucket: {bucket}")
        return path

    def _object_path(self, bucket: str, key: str) -> Path:
        bucket_path = self._bucket_path(bucket)
        path = (bucket_path / key).resolve()
        if bucket_path.resolve() not in path.parents:
            raise ValueError(f"Key escapes bucket {bucket}: {key}")
        return path

    def list_objects(self, bucket: str) -> List[ObjectDescriptor]:
        bucket_path = self._bucket_path(bucket)
        return [
            ObjectDescriptor(key=path.relative_to(bucket_path).as_posix(), size=path.stat().st_size)
            for path in sorted(bucket_path.rglob("*"))
            if path.is_file()
        ]

    def download(self, bucket: str, key: str, destination: Path) -> int:
        source = self._object_path(bucket, key)
        shutil.copyfile(source, destination)
        return source.stat().st_size

    def upload(self, bucket: str, key: str, source: Path) -> Optional[str]:
        target = self._object_path(bucket, key)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return None


class InMemoryObjectStore(ObjectStore):
    """Dict-backed store that keeps objects in insertion order.

    Optional params (when built from config):
    - buckets: mapping of bucket name to ``{key: text}`` seed objects
    - auto_create_buckets: treat unknown bucket names as empty (default: True)

    Built directly without config, unknown buckets are rejected. Failures can
    be injected per operation with :meth:`fail`, and every call is recorded in
    ``calls`` as ``(operation, bucket, key)``.
    """

    def __init__(
        self,
        config: Optional[StorageTargetConfig] = None,
        buckets: Optional[Dict[str, Dict[str, bytes]]] = None,
    ) -> None:
        params = config.params if config is not None else {}
        seed = buckets if buckets is not None else params.get("buckets", {})
        self.buckets: Dict[str, Dict[str, bytes]] = {
            name: {
                key: data.encode("utf-8") if isinstance(data, str) else bytes(data)
                for key, data in objects.items()
            }
            for name, objects in seed.items()
        }
        self._auto_create = bool(params.get("auto_create_buckets", config is not None))
        self.calls: List[Tuple[str, Optional[str], Optional[str]]] = []
        self._failures: Dict[str, Exception] = {}

    def fail(self, operation: str, error: Exception) -> None:
        self._failures[operation] = error

    def _enter(self, operation: str, bucket: str, key: Optional[str] = None) -> Dict[str, bytes]:
        self.calls.append((operation, bucket, key))
        if operation in self._failures:
            raise self._failures[operation]
        if not bucket:
            raise ValueError("Bucket name is required")
        if self._auto_create:
            return self.buckets.setdefault(bucket, {})
        try:
            return self.buckets[bucket]
        except KeyError as exc:
            raise LookupError(f"No such bucket: {bucket}") from exc

    def list_objects(self, bucket: str) -> List[ObjectDescriptor]:
        objects = self._enter("list", bucket)
        return [ObjectDescriptor(key=key, size=len(data)) for key, data in objects.items()]

    def download(self, bucket: str, key: str, destination: Path) -> int:
        data = self._enter("download", bucket, key)[key]
        Path(destination).write_bytes(data)
        return len(data)

    def upload(self, bucket: str, key: str, source: Path) -> Optional[str]:
        objects = self._enter("upload", bucket, key)
        objects[key] = Path(source).read_bytes()
        return None


def build_object_store(config: StorageTargetConfig) -> ObjectStore:
    store_type = config.type.lower()
    if store_type == "s3":
        return S3ObjectStore(config)
    if store_type == "local_fs":
        return LocalFilesystemObjectStore(config)
    if store_type == "memory":
        return InMemoryObjectStore(config)
    raise ValueError(f"Unsupported object store type: {store_type}")
