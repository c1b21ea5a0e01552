"""Error taxonomy for the stages of a transfer run."""

from __future__ import annotations

from typing import Optional


class TransferError(Exception):
    """Base class for failures of a single transfer run."""

    stage = "transfer"

    def __init__(self, message: str, bucket: Optional[str] = None, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class ListError(TransferError):
    """Enumerating the source bucket failed."""

    stage = "list"


class DownloadError(TransferError):
    """Fetching the selected object into the working directory failed."""

    stage = "download"


class UploadError(TransferError):
    """Storing the local copy in the destination bucket failed."""

    stage = "upload"
