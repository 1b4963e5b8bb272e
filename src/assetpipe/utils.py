"""Utility functions for assetpipe"""

import logging
import os


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_int_env(key: str, default: int = 0) -> int:
    """Get integer value from environment variable, return default if not set or invalid."""
    val = os.getenv(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_float_env(key: str, default: float = 0.0) -> float:
    """Get float value from environment variable, return default if not set or invalid."""
    val = os.getenv(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


def get_str_env(key: str, default: str) -> str:
    """
    Get string from environment variable, return default if not set.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        String value or default
    """
    return os.getenv(key, default)


def get_bool_env(key: str, default: bool) -> bool:
    """
    Get boolean from environment variable, return default if not set.

    Recognizes: true/false, yes/no, 1/0 (case-insensitive)

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Boolean value or default
    """
    val = os.getenv(key)
    if val is None:
        return default
    val_lower = val.lower()
    if val_lower in ('true', 'yes', '1'):
        return True
    elif val_lower in ('false', 'no', '0'):
        return False
    return default


def get_log_level_name() -> str:
    return get_str_env('ASSETPIPE_LOG_LEVEL', 'INFO').upper()


def configure_logging(level_name: str | None = None) -> int:
    """Configure root logging for CLI and server entry points.

    Args:
        level_name: Level name override (defaults to ASSETPIPE_LOG_LEVEL or INFO)

    Returns:
        The numeric level that was applied
    """
    name = (level_name or get_log_level_name()).upper()
    level = getattr(logging, name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return level


class ShutdownFilter(logging.Filter):
    """
    Logging filter to suppress shutdown-related error tracebacks.

    Filters out KeyboardInterrupt, CancelledError, and SystemExit errors
    that occur during graceful shutdown of uvicorn/asyncio servers.
    """

    def filter(self, record):
        if record.levelname == 'ERROR':
            msg = str(record.getMessage())
            if any(x in msg for x in ['KeyboardInterrupt', 'CancelledError', 'Shutting down']):
                return False
            if record.exc_info:
                exc_type = record.exc_info[0]
                if exc_type and exc_type.__name__ in ('KeyboardInterrupt', 'CancelledError', 'SystemExit'):
                    return False
        return True


def setup_shutdown_filter():
    """
    Apply ShutdownFilter to uvicorn and asyncio loggers.

    Call this before running uvicorn to suppress shutdown tracebacks.
    """
    shutdown_filter = ShutdownFilter()
    for logger_name in ['uvicorn.error', 'uvicorn', 'asyncio']:
        logger = logging.getLogger(logger_name)
        logger.addFilter(shutdown_filter)
