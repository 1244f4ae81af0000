"""
Logging setup for load test runs.
"""

import logging

from rich.logging import RichHandler


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Route log records through a rich handler.

    Args:
        verbose: Log at DEBUG instead of INFO

    Returns:
        The package logger
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
        force=True,
    )
    return logging.getLogger("loadprobe")
