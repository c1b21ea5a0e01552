"""Domain models used throughout the transfer pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .errors import TransferError


@dataclass
class ObjectDescriptor:
    key: str
    size: Optional[int] = None
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)


class TransferOutcome(str, Enum):
    TRANSFERRED = "transferred"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class TransferResult:
    source_bucket: Optional[str]
    destination_bucket: Optional[str]
    outcome: TransferOutcome
    key: Optional[str] = None
    local_path: Optional[Path] = None
    bytes_transferred: int = 0
    error: Optional["TransferError"] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not TransferOutcome.FAILED

    def to_dict(self) -> Dict[str, object]:
        return {
            "source_bucket": self.source_bucket,
            "destination_bucket": self.destination_bucket,
            "outcome": self.outcome.value,
            "key": self.key,
            "local_path": str(self.local_path) if self.local_path else None,
            "bytes_transferred": self.bytes_transferred,
            "error": (
                {"stage": self.error.stage, "message": str(self.error)}
                if self.error
                else None
            ),
        }
