"""Loguru sink configuration for command-line entry points."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from src.utils.config import LoggingConfig


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Replace the default Loguru sink with the configured ones."""
    cfg = config or LoggingConfig()
    level = cfg.level
    serialize = cfg.format == "json"

    logger.remove()
    logger.add(sys.stderr, level=level, serialize=serialize)

    if cfg.file:
        target = Path(cfg.file)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(target),
            level=level,
            serialize=serialize,
            rotation=f"{cfg.max_size_mb} MB",
            retention=cfg.backup_count,
            compression="zip",
        )
