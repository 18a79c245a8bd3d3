"""Logging setup for CLI invocations.

Library modules only create module-level loggers; handlers are installed here,
once, by the CLI callback.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "almanac"
_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "watchdog")


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Route ``almanac.*`` log records to stderr through rich.

    WARNING and above by default; DEBUG with *verbose*. Safe to call twice.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
    return logger
