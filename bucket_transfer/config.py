"""Configuration models and helpers for the transfer job."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


@dataclass
class StorageTargetConfig:
    """Which object store backend to build and its settings."""

    type: str = "s3"
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferConfig:
    """Top-level configuration for a single transfer run.

    Bucket identifiers are passed through as given. A missing value is left
    as ``None`` and rejected by the backend on the first call that uses it.
    """

    source_bucket: Optional[str]
    destination_bucket: Optional[str]
    work_dir: Path = field(default_factory=lambda: Path("."))
    storage: StorageTargetConfig = field(default_factory=StorageTargetConfig)

    def __post_init__(self) -> None:
        self.work_dir = Path(self.work_dir)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferConfig":
        storage = StorageTargetConfig(**(data.get("storage") or {}))
        return cls(
            source_bucket=data.get("source_bucket"),
            destination_bucket=data.get("destination_bucket"),
            work_dir=Path(data.get("work_dir") or "."),
            storage=storage,
        )

    @classmethod
    def from_json(cls, path: Path) -> "TransferConfig":
        data = json.loads(path.read_text())
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TransferConfig":
        env = os.environ if environ is None else environ
        backend = env.get("STORAGE_BACKEND", "s3")
        params: Dict[str, Any] = {}
        if backend == "s3":
            if env.get("S3_ENDPOINT_URL"):
                params["endpoint_url"] = env["S3_ENDPOINT_URL"]
            if env.get("AWS_REGION"):
                params["region"] = env["AWS_REGION"]
        elif backend == "local_fs" and env.get("STORAGE_BASE_PATH"):
            params["base_path"] = env["STORAGE_BASE_PATH"]
        return cls(
            source_bucket=env.get("SOURCE_BUCKET"),
            destination_bucket=env.get("DESTINATION_BUCKET"),
            work_dir=Path(env.get("TRANSFER_WORK_DIR", ".")),
            storage=StorageTargetConfig(type=backend, params=params),
        )
