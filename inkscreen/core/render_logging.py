"""
Central logging configuration for inkscreen.

Keeps renderer diagnostics visible while suppressing the chatty debug output of
the browser driver and HTTP libraries.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add the current request correlation ID to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        from inkscreen.api.middleware import get_request_id

        record.request_id = get_request_id()
        return True


# Third-party loggers that flood DEBUG output during a render
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "pyppeteer": logging.WARNING,
    "websockets": logging.WARNING,
    "PIL": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for inkscreen.

    Args:
        debug_mode: Whether to enable debug logging for inkscreen modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        INKSCREEN_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        INKSCREEN_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("INKSCREEN_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("INKSCREEN_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("inkscreen").setLevel(logging.DEBUG if final_debug else logging.INFO)

    if final_debug:
        root_logger.info("Debug logging enabled for inkscreen modules")
    else:
        root_logger.info("Production logging configuration applied")

