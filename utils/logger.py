"""
============================================================================
LOGGING SETUP
============================================================================
Configures console + file logging once at startup.
Modules get their own logger with logging.getLogger(__name__).
"""

import logging
from pathlib import Path

import discord

import config


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = None, log_file: str = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level name (defaults to config.LOG_LEVEL)
        log_file: Log file path (defaults to config.LOG_FILE when LOG_TO_FILE is on)

    Returns:
        The root logger
    """
    level_name = (level or config.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Console output with discord.py's colour formatter
    discord.utils.setup_logging(level=log_level, root=True)

    root = logging.getLogger()

    if log_file is None and config.LOG_TO_FILE:
        log_file = config.LOG_FILE

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(filename=log_file, encoding="utf-8", mode="a")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(log_level)
        root.addHandler(handler)

    # discord.py is chatty at DEBUG
    if log_level < logging.INFO:
        logging.getLogger("discord.gateway").setLevel(logging.INFO)

    return root
