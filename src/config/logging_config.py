"""
Logging setup for the billing service.

Production logs are JSON lines on stdout; bound fields such as the
correlation id end up under "record.extra".
"""

import functools
import sys
import time
from pathlib import Path
from typing import Optional

from loguru import logger

# Libraries whose own loguru/stdlib chatter is muted
QUIET_LIBRARIES = ("httpx", "urllib3", "stripe")


def setup_structured_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """
    Replace loguru's default sink.

    Args:
        level: Minimum level on stdout
        log_file: Optional rotating file sink (always DEBUG, always JSON)
        json_output: False for readable lines during local development
    """
    logger.remove()

    if json_output:
        logger.add(sys.stdout, serialize=True, level=level, enqueue=True, backtrace=True, diagnose=False)
    else:
        logger.add(
            sys.stdout,
            level=level,
            format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | {name} | {message}",
            diagnose=False,
        )

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, serialize=True, level="DEBUG", rotation="10 MB", retention="30 days", compression="zip")

    for name in QUIET_LIBRARIES:
        logger.disable(name)


def get_logger(name: str):
    """Logger bound to a module name."""
    return logger.bind(module=name)


def log_function_call(func):
    """
    Log entry, duration and failure of a payment-provider call.

    Only argument counts and keyword names are logged, never values.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        log = get_logger(func.__module__)
        log.debug(f"Calling {func.__qualname__}(args={len(args)}, kwargs={sorted(kwargs)})")
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            log.error(f"{func.__qualname__} raised {type(e).__name__}: {e}")
            raise
        log.debug(f"{func.__qualname__} done in {(time.perf_counter() - started) * 1000:.0f} ms")
        return result

    return wrapper
