"""Logging configuration for ovs-mirror.

Provides:
- File-based logging with rotation in the configured log directory
- Console output so hook and CLI runs show progress
- A timing decorator for switch operations

Environment Variables:
    OVS_MIRROR_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    OVS_MIRROR_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    OVS_MIRROR_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from ovs_mirror.utils.logging_config import setup_logging, timed

    setup_logging("/var/log/openvswitch")  # Call once at startup

    @timed("create_mirror")
    async def create_mirror(self, bridge, spec):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional, Union

LOG_FILE_NAME = "ovs-mirrors.log"

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("ovs_mirror.perf")

MAIN_FORMAT = logging.Formatter(
    "%(asctime)s.%(msecs)03d | %(name)-28s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)


def get_log_level(default: str = "INFO") -> int:
    """Get log level from environment."""
    level_str = os.environ.get("OVS_MIRROR_LOG_LEVEL", default).upper()
    return getattr(logging, level_str, logging.INFO)


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: Optional[int] = None,
) -> Optional[Path]:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects OVS_MIRROR_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)

    Args:
        log_dir: Directory for ovs-mirrors.log; console only when None
        level: Console level, overrides the environment

    Returns:
        Path of the log file, or None when file logging is unavailable
    """
    log_level = level if level is not None else get_log_level()
    max_size_mb = int(os.environ.get("OVS_MIRROR_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("OVS_MIRROR_LOG_BACKUPS", "5"))

    root_logger = logging.getLogger("ovs_mirror")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(MAIN_FORMAT)
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None

    log_file = Path(log_dir) / LOG_FILE_NAME
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
    except OSError as e:
        root_logger.warning(f"File logging disabled, cannot open {log_file}: {e}")
        return None

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(MAIN_FORMAT)
    root_logger.addHandler(file_handler)

    root_logger.debug(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )
    return log_file


def timed(operation: str):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "create_mirror", "apply_rule")
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000  # ms
                perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | OK")
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | FAIL: {e}")
                raise

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | OK")
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.debug(f"{operation:20s} | {elapsed:8.2f}ms | FAIL: {e}")
                raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
