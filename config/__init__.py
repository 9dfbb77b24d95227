"""Configuration module for netsweep.

Provides centralized configuration, logging, exceptions, and utilities.
"""
from config.constants import (
    ALLOWED_SUBPROCESS_COMMANDS,
    INTERVALS,
    NETWORK,
    STORAGE,
    Intervals,
    NetworkConfig,
    StorageConfig,
)
from config.exceptions import (
    ConfigurationError,
    DetectorError,
    NetSweepError,
    SubprocessError,
)
from config.logging_config import LogContext, get_logger, setup_logging
from config.subprocess_cache import (
    SubprocessCache,
    get_subprocess_cache,
    run_with_fallback,
    safe_run,
)

__all__ = [
    # Constants
    "INTERVALS",
    "STORAGE",
    "NETWORK",
    "Intervals",
    "StorageConfig",
    "NetworkConfig",
    "ALLOWED_SUBPROCESS_COMMANDS",
    # Exceptions
    "NetSweepError",
    "ConfigurationError",
    "DetectorError",
    "SubprocessError",
    # Logging
    "setup_logging",
    "get_logger",
    "LogContext",
    # Subprocess
    "SubprocessCache",
    "safe_run",
    "run_with_fallback",
    "get_subprocess_cache",
]
