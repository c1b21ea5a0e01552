"""Command-line entrypoint that runs one transfer."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from .config import TransferConfig
from .pipeline import TransferRunner

logger = logging.getLogger(__name__)


def load_env_file(env_path: str = ".env") -> bool:
    """Load a .env file into the environment; variables already set win."""
    if not Path(env_path).is_file():
        logger.debug("Environment file not found: %s", env_path)
        return False
    logger.info("Loading environment from: %s", env_path)
    return load_dotenv(env_path, override=False)


def expand_env_vars(data: Any) -> Any:
    """Expand ${VAR} and $VAR in every string of a parsed JSON config.

    Unset variables are left as written.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    if isinstance(data, str):
        return os.path.expandvars(data)
    return data


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Copy the first object of SOURCE_BUCKET into DESTINATION_BUCKET"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional path to a JSON config file used instead of the environment",
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        help="Directory holding the temporary local copy",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Verbosity for logging output",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    return parser.parse_args(argv)


def load_config(path: Path | None) -> TransferConfig:
    if not path:
        return TransferConfig.from_env()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = json.load(f)

    expanded_config = expand_env_vars(raw_config)
    return TransferConfig.from_dict(expanded_config)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    load_env_file(args.env_file)

    config = load_config(args.config)
    if args.work_dir:
        config.work_dir = args.work_dir

    result = TransferRunner(config).run()
    logger.info("Transfer finished: %s", json.dumps(result.to_dict()))
    return 0 if result.ok else 1
