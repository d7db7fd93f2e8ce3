"""Logging setup (credential-safe)"""
import logging
import os
import re
import sys

from harvester.core.config import settings


# DEBUG logs are disabled in production
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development") == "production"

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)


def setup_logging() -> logging.Logger:
    """Initialise and configure the harvester logger"""

    logger = logging.getLogger("listing_harvester")

    # INFO at minimum in production
    log_level = settings.log_level.upper()
    if IS_PRODUCTION and log_level == "DEBUG":
        log_level = "INFO"

    logger.setLevel(getattr(logging, log_level))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level))

    if IS_PRODUCTION:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(console_handler)

    return logger


logger = setup_logging()


def set_debug(enabled: bool) -> None:
    """Toggle DEBUG output at runtime (run input `debug_log`)."""
    level = logging.DEBUG if enabled and not IS_PRODUCTION else getattr(logging, settings.log_level.upper())
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def sanitize_for_log(value: str, max_length: int = 200) -> str:
    """Return a log-safe string with URL credentials masked

    Args:
        value: string to log (usually a proxy or page URL)
        max_length: maximum length

    Returns:
        masked and truncated string
    """
    if not value:
        return "[empty]"

    result = _URL_CREDENTIALS.sub(r"\g<scheme>***@", value)

    if len(result) > max_length:
        result = result[:max_length] + "..."

    return result
