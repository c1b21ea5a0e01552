"""Transfer runner: copy the first object of one bucket into another."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .config import TransferConfig
from .errors import DownloadError, ListError, TransferError, UploadError
from .interfaces import ObjectStore
from .models import ObjectDescriptor, TransferOutcome, TransferResult
from .storage import build_object_store

logger = logging.getLogger(__name__)


class TransferRunner:
    """Runs list -> download -> upload -> cleanup for a single object.

    The object store is injected so tests (and dry runs) can substitute an
    in-memory backend; it is built from ``config.storage`` otherwise. The
    runner keeps no state between runs, so re-running against an unchanged
    source bucket repeats the same copy.
    """

    def __init__(self, config: TransferConfig, store: Optional[ObjectStore] = None) -> None:
        self._config = config
        self._store: ObjectStore = store if store is not None else build_object_store(config.storage)

    def run(self) -> TransferResult:
        """Transfer the first listed object.

        Failures of the list, download and upload stages are logged and
        returned on a ``FAILED`` result. The temporary file is only removed
        after a successful upload; an error while removing it propagates.
        """
        source = self._config.source_bucket
        destination = self._config.destination_bucket
        logger.info("Reading from: %s", source)
        logger.info("Uploading to: %s", destination)

        result = TransferResult(
            source_bucket=source,
            destination_bucket=destination,
            outcome=TransferOutcome.FAILED,
        )
        try:
            listing = self._list(source)
            if not listing:
                logger.info("No objects found in source bucket %s", source)
                result.outcome = TransferOutcome.EMPTY
                return result

            # Backend order is opaque; never re-sorted
            selected = listing[0]
            result.key = selected.key
            logger.info("First object found: %s", selected.key)

            local_path = self._local_path(source, selected.key)
            result.local_path = local_path
            result.bytes_transferred = self._download(source, selected, local_path)
            logger.info("Downloaded %s to local file system (%d bytes)", selected.key, result.bytes_transferred)

            self._upload(destination, selected.key, local_path)
            logger.info("Successfully uploaded %s to destination bucket %s", selected.key, destination)
        except TransferError as exc:
            logger.error("Transfer failed during %s stage: %s", exc.stage, exc)
            result.error = exc
            return result

        local_path.unlink()
        logger.debug("Removed temporary file %s", local_path)
        result.outcome = TransferOutcome.TRANSFERRED
        return result

    def _list(self, bucket: Optional[str]) -> List[ObjectDescriptor]:
        try:
            return self._store.list_objects(bucket)
        except Exception as exc:
            raise ListError(f"Failed to list bucket {bucket}: {exc}", bucket=bucket) from exc

    def _local_path(self, bucket: Optional[str], key: str) -> Path:
        work_dir = self._config.work_dir.resolve()
        path = (work_dir / key).resolve()
        if work_dir not in path.parents:
            raise DownloadError(
                f"Refusing to write {key} outside working directory {work_dir}",
                bucket=bucket,
                key=key,
            )
        return path

    def _download(self, bucket: Optional[str], selected: ObjectDescriptor, local_path: Path) -> int:
        try:
            return self._store.download(bucket, selected.key, local_path)
        except Exception as exc:
            raise DownloadError(
                f"Failed to download {selected.key} from {bucket}: {exc}",
                bucket=bucket,
                key=selected.key,
            ) from exc

    def _upload(self, bucket: Optional[str], key: str, local_path: Path) -> Optional[str]:
        try:
            etag = self._store.upload(bucket, key, local_path)
        except Exception as exc:
            raise UploadError(
                f"Failed to upload {key} to {bucket}: {exc}",
                bucket=bucket,
                key=key,
            ) from exc
        logger.debug("Upload response for %s: etag=%s", key, etag)
        return etag
