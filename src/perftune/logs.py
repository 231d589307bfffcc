"""Logging setup: rich console handler plus a per-run log file.

Modules log through ``logging.getLogger(__name__)``; only the CLI configures
handlers. The run log captures everything at DEBUG, including per-action
state transitions, and lives next to the manifest it describes.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "perftune"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str | int = logging.WARNING, console: Console | None = None) -> logging.Logger:
    """Install a RichHandler on stderr for the perftune logger tree."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    return logger


@contextmanager
def run_log(path: Path) -> Iterator[logging.Handler]:
    """Write every perftune log record to ``path`` while the block runs."""
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    logger = logging.getLogger(LOGGER_NAME)
    if logger.level == logging.NOTSET or logger.level > logging.DEBUG:
        logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        handler.close()
