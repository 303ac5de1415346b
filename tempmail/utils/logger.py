"""
Logging setup shared by the backend and the client package.

Every module gets its logger through get_logger(__name__) so that
setup_logging() controls the whole tree from one place.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(debug: bool = False) -> None:
    """
    Configure the root logger with a single console handler.

    Safe to call more than once: existing handlers are replaced,
    so reloading the app does not duplicate log lines.

    Args:
        debug: If True, log at DEBUG. Otherwise INFO.
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
