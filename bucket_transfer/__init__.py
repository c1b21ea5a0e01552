"""bucket_transfer package exposing the public API for the relay job."""

from .config import StorageTargetConfig, TransferConfig
from .errors import DownloadError, ListError, TransferError, UploadError
from .models import TransferOutcome, TransferResult
from .pipeline import TransferRunner

__all__ = [
    "DownloadError",
    "ListError",
    "StorageTargetConfig",
    "TransferConfig",
    "TransferError",
    "TransferOutcome",
    "TransferResult",
    "TransferRunner",
    "UploadError",
]
