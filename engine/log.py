"""Logging initialization utilities using loguru."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def init_logging(debug: bool = False, log_dir: Optional[Path] = None) -> None:
    """Route loguru output to stderr and, optionally, a rotating log file."""
    level = "DEBUG" if debug else "INFO"

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | {name}: {message}",
        backtrace=False,
        diagnose=False,
    )

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path / "kiosk_{time:YYYYMMDD}.log"),
            rotation="10 MB",
            retention="10 days",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            level=level,
        )
