"""loguru sink setup shared by the app and scripts."""

import sys
from pathlib import Path

from loguru import logger

from .config import LOG_DIR, LOG_LEVEL


def setup_logging(level: str = LOG_LEVEL, log_dir: Path | None = LOG_DIR) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name} - {message}",
    )
    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logger.add(Path(log_dir) / "visionquest_{time:YYYY-MM-DD}.log", level=level, rotation="1 day", retention=7)
