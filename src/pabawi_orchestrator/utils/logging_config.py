"""Logging configuration for pabawi-orchestrator.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Timing helpers for the validate / compile / apply phases

Environment Variables:
    PABAWI_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    PABAWI_LOG_FILE: Path to log file (default: ~/.pabawi/orchestrator.log)
    PABAWI_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    PABAWI_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from pabawi_orchestrator.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("compile")
    def compile(self, config):
        ...

    with timed_section("apply", run_id="3f2a"):
        ...
"""
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("pabawi.perf")
main_logger = logging.getLogger("pabawi")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("PABAWI_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".pabawi" / "orchestrator.log"
    path_str = os.environ.get("PABAWI_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects PABAWI_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for phase timings
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("PABAWI_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("PABAWI_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-32s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    # Application logger plus the package logger (module loggers use __name__)
    for name in ("pabawi", "pabawi_orchestrator"):
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
        logger.addHandler(console_handler)
        logger.addHandler(file_handler)

    main_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}"
    )


def _format(operation: str, context: Optional[str], elapsed: float, status: str) -> str:
    return f"{operation:12s} | {context or 'N/A':20s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, context: Optional[str] = None):
    """Decorator to log execution time of a function.

    Args:
        operation: Name of the operation (e.g., "validate", "compile")
        context: Optional identifier logged alongside the timing
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.info(_format(operation, context, elapsed, "OK"))
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format(operation, context, elapsed, f"FAIL: {e}"))
                raise

        return wrapper

    return decorator


@contextmanager
def timed_section(operation: str, context: Optional[str] = None, **extra):
    """Context manager for timing code sections.

    Usage:
        with timed_section("apply", run_id="3f2a", resources=42):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format(operation, context, elapsed, "OK")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format(operation, context, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
