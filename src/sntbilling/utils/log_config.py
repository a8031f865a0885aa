"""Logging configuration for the command-line front end.

Level comes from the --verbose flag or the SNTBILLING_LOG_LEVEL environment
variable (default WARNING). Library modules only create their own loggers;
they never configure handlers.
"""

import logging
import os
from typing import Optional

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_handler: Optional[logging.Handler] = None


def get_log_level(verbose: bool = False) -> int:
    """Get logging level from the verbose flag or SNTBILLING_LOG_LEVEL."""
    if verbose:
        return logging.DEBUG
    level_str = os.getenv("SNTBILLING_LOG_LEVEL", "WARNING").upper()
    return LOG_LEVEL_MAP.get(level_str, logging.WARNING)


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger to write to stderr."""
    global _handler

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(get_log_level(verbose))

    # Repeated CLI invocations in one process (tests) must not stack handlers
    teardown_logging()

    _handler = logging.StreamHandler()
    _handler.setFormatter(formatter)
    root_logger.addHandler(_handler)


def teardown_logging() -> None:
    """Remove handlers installed by setup_logging()."""
    global _handler
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler = None
