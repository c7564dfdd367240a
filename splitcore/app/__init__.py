"""
app/__init__.py — Split session factory.

Pattern: create_session(config_name) creates and returns a configured
         SplitSession. Nothing is initialised at import time. This enables:
           - Multiple isolated test sessions
           - Clean separation between configuration and use

Responsibilities:
  1. Resolve configuration from config_by_name[config_name]
  2. Fail fast on a misconfigured production environment
  3. Configure the "splitcore" logger (level from config, one stream handler)
  4. Return a SplitSession owning its own audit history and ledgers
"""

from __future__ import annotations

import logging

from splitcore.config import config_by_name, validate_production_config


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def create_session(config_name: str = "development"):
    """
    Creates and returns a configured SplitSession.

    Args:
        config_name: One of "development", "testing", "production".
                     Unknown names resolve to "development".

    Returns:
        A SplitSession with an empty audit history and no ledgers.
    """
    config_class = config_by_name.get(config_name, config_by_name["development"])

    if config_name == "production":
        validate_production_config(config_class)  # raises ValueError if misconfigured

    _configure_logging(config_class)

    # Import here (not at module top) so importing splitcore.app stays cheap.
    from splitcore.app.session import SplitSession
    return SplitSession(config_class)


def _configure_logging(config_class) -> None:
    """
    Sets the package logger level and attaches a stream handler once.

    Module loggers (logging.getLogger(__name__)) all live under "splitcore",
    so they inherit this level and handler.
    """
    logger = logging.getLogger("splitcore")
    logger.setLevel(config_class.LOG_LEVEL)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
