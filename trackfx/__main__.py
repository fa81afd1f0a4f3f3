"""Entry point for python -m trackfx."""

import logging
import sys

from .cli import parse_args
from .errors import TrackFxError
from .logger_config import setup_logger
from .runners.headless import run_headless

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    config = parse_args()
    setup_logger(
        level=logging.DEBUG if config.verbose else logging.INFO,
        log_file=config.log_file,
    )
    try:
        run_headless(config)
    except TrackFxError as e:
        logger.error("%s: %s", type(e).__name__, e)
        sys.exit(1)


if __name__ == "__main__":
    main()
