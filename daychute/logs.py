"""Logging setup for embedding applications."""

import logging

from daychute.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging with the daychute format and level."""
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
    )
