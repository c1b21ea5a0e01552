"""Interface definitions for storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from .models import ObjectDescriptor


class ObjectStore(ABC):
    """An object-storage backend addressed by bucket and key.

    Credential resolution belongs to the concrete store; callers only ever
    see already-authenticated operations.
    """

    @abstractmethod
    def list_objects(self, bucket: str) -> List[ObjectDescriptor]:
        """Return the bucket's object descriptors in backend order."""

    @abstractmethod
    def download(self, bucket: str, key: str, destination: Path) -> int:
        """Write the full object content to destination and return its size."""

    @abstractmethod
    def upload(self, bucket: str, key: str, source: Path) -> Optional[str]:
        """Store the content of source under key and return its ETag, if any."""
