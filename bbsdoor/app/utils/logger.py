import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import get_config


def setup_logging(name: str = "door", verbose: bool = False) -> logging.Logger:
    config = get_config()
    log_config = config.logging

    logger = logging.getLogger(name)
    # --verbose wins over logging.level so drop file dumps always show.
    logger.setLevel(logging.DEBUG if verbose else getattr(logging, log_config.level.upper()))
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(log_config.format)

    # stdout may be the player's connection, so diagnostics go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_config.file_path:
        log_path = Path(log_config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=log_config.max_bytes,
            backupCount=log_config.backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger("door")
    return logging.getLogger(f"door.{name}")
