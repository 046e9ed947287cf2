from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger as _logger

_CONFIGURED = False
LOG_DIR_ENV = "APP_LOG_DIR"
LOG_LEVEL_ENV = "APP_LOG_LEVEL"

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> {extra}"
)


def _resolve_log_dir(explicit: str | Path | None) -> Path | None:
    """Return the directory for the file sink, or None when file logging is off."""

    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_value = os.getenv(LOG_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return None


def configure_logger(*, log_dir: str | Path | None = None, level: str | None = None) -> None:
    """Configure the Loguru sinks exactly once per process.

    Stdout always gets a sink. A rotating file sink is added only when a log
    directory is given explicitly or through ``APP_LOG_DIR``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = level or os.getenv(LOG_LEVEL_ENV, "INFO")

    _logger.remove()
    _logger.add(
        sys.stdout,
        level=log_level,
        format=_LOG_FORMAT,
        colorize=sys.stdout.isatty(),
    )

    target_dir = _resolve_log_dir(log_dir)
    if target_dir is not None:
        target_dir.mkdir(parents=True, exist_ok=True)
        _logger.add(
            target_dir / "codegate-{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="10 days",
            level="DEBUG",
            format=_LOG_FORMAT,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    _CONFIGURED = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    """Return the configured logger, configuring it on first access."""

    configure_logger(log_dir=log_dir, level=level)
    return _logger


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Bind non-empty context fields (pr_number, repository, provider ...) to a logger."""

    return logger_instance.bind(**{k: v for k, v in context.items() if v is not None})


@contextmanager
def log_timing(logger_instance, operation: str, **context: str | int | None) -> Iterator[Any]:
    """Log start, completion and failure of ``operation`` with its duration.

    Usage:
        with log_timing(logger, "fetch_files", pr_number=42) as ctx_logger:
            ...
    """

    start_time = time.perf_counter()
    ctx_logger = log_with_context(logger_instance, **context)
    ctx_logger.debug(f"Starting {operation}")
    try:
        yield ctx_logger
    except Exception as exc:
        duration = time.perf_counter() - start_time
        ctx_logger.warning(f"Failed {operation} after {duration:.3f}s: {exc}")
        raise
    duration = time.perf_counter() - start_time
    ctx_logger.debug(f"Completed {operation} in {duration:.3f}s")


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    log_with_context(logger_instance, **context).info(f"=== SUCCESS: {message} ===")


def log_failure(
    logger_instance,
    message: str,
    error: Exception | None = None,
    **context: str | int | None,
) -> None:
    """Log a failure with context; the error's classification is included when present."""

    ctx_logger = log_with_context(logger_instance, **context)
    if error is None:
        ctx_logger.error(f"=== FAILURE: {message} ===")
        return
    kind = getattr(error, "kind", type(error).__name__)
    ctx_logger.error(f"=== FAILURE: {message} | {kind}: {error} ===")
