"""Logging configuration for applications embedding cli-exec."""

from __future__ import annotations

import logging
import sys

from .config import Config, get_config

__all__ = ["configure_logging", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config | None = None) -> logging.Handler:
    """Install a log handler and raise the cli_exec namespace level.

    Default mode logs INFO to stderr. With log_debug, DEBUG goes to
    config.log_file instead. The root logger stays at WARNING so third-party
    libraries stay quiet.

    Returns:
        The installed handler
    """
    config = config or get_config()

    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_level = logging.INFO

    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("cli_exec").setLevel(log_level)
    return handler
