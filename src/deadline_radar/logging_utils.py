"""Logging setup with a custom trace level for per-match diagnostics."""

import logging
from typing import Any

# Below DEBUG; used for one line per pattern hit
TRACE_LEVEL = 5

VERBOSE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def add_trace_level() -> None:
    """Register the TRACE level name and a ``Logger.trace`` method."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        """Log a message with severity 'TRACE'."""
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    logging.Logger.trace = trace  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """Get a logger that supports ``.trace()``."""
    if not hasattr(logging.Logger, "trace"):
        add_trace_level()

    return logging.getLogger(name)


def configure_logging(verbose: bool = False, trace: bool = False) -> None:
    """
    Configure root logging for the command line tools.

    Args:
        verbose: Log DEBUG and above with logger names
        trace: Log everything, including per-match TRACE lines
    """
    add_trace_level()

    if trace:
        logging.basicConfig(level=TRACE_LEVEL, format=VERBOSE_FORMAT)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, format=VERBOSE_FORMAT)
    else:
        logging.basicConfig(level=logging.INFO, format=DEFAULT_FORMAT)

    # FastMCP and its HTTP stack are chatty at INFO
    logging.getLogger("mcp").setLevel(logging.INFO if verbose or trace else logging.WARNING)
