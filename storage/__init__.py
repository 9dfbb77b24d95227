"""Settings persistence components."""

from .settings import (
    DETECTOR_NAMES,
    PortDetectionOptions,
    ScannerOptions,
    SettingsManager,
    get_settings_manager,
)

__all__ = [
    "DETECTOR_NAMES",
    "PortDetectionOptions",
    "ScannerOptions",
    "SettingsManager",
    "get_settings_manager",
]
