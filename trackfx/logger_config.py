import logging
import os
from logging import StreamHandler
from logging.handlers import RotatingFileHandler
from typing import Optional

from appdirs import user_log_dir

APP_NAME = "trackfx"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def default_log_file() -> str:
    """Return the per-user log file path, creating its directory."""
    log_dir = user_log_dir(APP_NAME)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, "trackfx.log")


def setup_logger(
    level: int = logging.INFO, log_file: Optional[str] = None, to_file: bool = True
) -> None:
    """Set up logging configuration.

    Args:
        level: Minimum level for both handlers.
        log_file: Log file path; defaults to the per-user log directory.
        to_file: Disable to log to the console only.
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler
    stream_handler = StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not to_file:
        return

    # File handler
    path = log_file or default_log_file()
    file_handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3)
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
