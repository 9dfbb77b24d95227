"""Logging configuration for netsweep.

Probe failures are expected and frequent, so they go to DEBUG. Detections
are INFO, degraded capabilities WARNING, failed sweeps ERROR.

Usage:
    from config.logging_config import setup_logging, get_logger

    # Initialize once in the embedding application
    setup_logging(data_dir=Path.home() / ".netsweep", debug=True)

    # Get logger in any module
    logger = get_logger(__name__)
    logger.debug("HTTP probe failed for 192.168.1.20:8080")
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from datetime import datetime

from config.constants import STORAGE

ROOT_LOGGER_NAME = 'netsweep'

# Module-level logger cache
_loggers: dict = {}


class NetSweepFormatter(logging.Formatter):
    """Formatter with color support for console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors
        super().__init__(
            fmt='%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, '')
            reset = self.COLORS['RESET']
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname}{reset}"
        return super().format(record)


def setup_logging(
    data_dir: Optional[Path] = None,
    debug: bool = False,
    console_output: bool = True,
    log_to_file: bool = True
) -> logging.Logger:
    """Initialize the logging system.

    Subsequent calls reconfigure the existing logger.

    Args:
        data_dir: Directory for log files. Defaults to ~/.netsweep/
        debug: Enable debug-level logging (shows every failed probe).
        console_output: Also log to stderr.
        log_to_file: Write logs to file with rotation.

    Returns:
        The root logger for the library.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.handlers.clear()

    if log_to_file:
        if data_dir is None:
            data_dir = Path.home() / STORAGE.DATA_DIR_NAME
        data_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            data_dir / STORAGE.LOG_FILE,
            maxBytes=STORAGE.LOG_MAX_BYTES,
            backupCount=STORAGE.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        console_handler.setFormatter(NetSweepFormatter(use_colors=True))
        root_logger.addHandler(console_handler)

    root_logger.info(
        f"Logging initialized - level={'DEBUG' if debug else 'INFO'}, "
        f"file={log_to_file}, console={console_output}"
    )

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module.

    Returns a child of the 'netsweep' logger, e.g. "netsweep.detectors.upnp"
    for "discovery.detectors.upnp".

    Args:
        name: Usually __name__ of the calling module.
    """
    short_name = name
    if '.' in name:
        parts = name.split('.')
        short_name = '.'.join(parts[-2:])

    if short_name not in _loggers:
        _loggers[short_name] = logging.getLogger(f'{ROOT_LOGGER_NAME}.{short_name}')

    return _loggers[short_name]


def log_subprocess_call(
    logger: logging.Logger,
    command: list,
    returncode: int,
    duration_ms: float,
    success: bool
) -> None:
    """Log a subprocess call with timing information.

    Failures stay at DEBUG: a ping that gets no answer exits non-zero.
    """
    logger.debug(
        f"Subprocess: {' '.join(command[:3])}{'...' if len(command) > 3 else ''} "
        f"-> rc={returncode}, {duration_ms:.1f}ms, ok={success}"
    )


class LogContext:
    """Context manager for logging operation duration.

    Example:
        >>> with LogContext(logger, "Network sweep", logging.INFO):
        ...     sweep()
        # Logs: "Network sweep completed in 1234ms"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.DEBUG):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"{self.operation} starting...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds() * 1000

        if exc_type:
            self.logger.error(
                f"{self.operation} failed after {duration:.0f}ms: {exc_val}"
            )
        else:
            self.logger.log(
                self.level,
                f"{self.operation} completed in {duration:.0f}ms"
            )

        return False  # Don't suppress exceptions
