"""Logging configuration for shellflow entrypoints."""

import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_LEVELS = ["debug", "info", "warning", "error"]


class SizeAndTimeRotatingHandler(TimedRotatingFileHandler):
    """Log handler that rotates at midnight or once the file reaches max_bytes."""

    def __init__(self, filename, max_bytes, backup_count=0, **kwargs):
        self.max_bytes = max_bytes
        super().__init__(filename, backupCount=backup_count, **kwargs)

    def shouldRollover(self, record):
        if int(time.time()) >= self.rolloverAt:
            return 1

        if self.stream and self.max_bytes > 0:
            self.stream.seek(0, os.SEEK_END)
            if self.stream.tell() >= self.max_bytes:
                return 1

        return 0

    def doRollover(self):
        # A size rollover must not push the next midnight rollover back
        super().doRollover()
        self.rolloverAt = self.computeRollover(int(time.time()))


def level_from_name(name: str) -> int:
    """Map a --log-level choice to a logging level."""
    if name.lower() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {name}")
    return getattr(logging, name.upper())


def configure_logging(
    log_dir: str | None = "logs",
    log_file: str = "shellflow.log",
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 7,
    console: bool = True,
) -> logging.Logger:
    """Configure root logger with console and rotating file handlers.

    Args:
        log_dir: Directory for log files, or None/"" to log to console only.
        log_file: Log file name.
        level: Logging level.
        max_bytes: Max file size before rotation.
        backup_count: Number of backup files to keep.
        console: Whether to also log to console.

    Returns:
        Configured root logger.
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = SizeAndTimeRotatingHandler(
            filename=os.path.join(log_dir, log_file),
            when="midnight",
            interval=1,
            max_bytes=max_bytes,
            backup_count=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
