"""Pytest configuration and shared fixtures.

This module provides:
- Common test fixtures for data directories, options and fakes
- Pytest markers for test categorization (unit, integration, slow)
"""
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest

from app.events import EventBus
from storage.settings import PortDetectionOptions, ScannerOptions
from tests.mocks import MockPingProbe, MockSubnetProvider


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: mark test as a unit test (fast, isolated)")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# =============================================================================
# Directory and Path Fixtures
# =============================================================================


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_settings_path(temp_data_dir: Path) -> Path:
    """Create a path for temporary settings."""
    return temp_data_dir / "settings.json"


# =============================================================================
# Options Fixtures
# =============================================================================


@pytest.fixture
def scanner_options() -> ScannerOptions:
    """Options for a small, fast sweep of 192.168.1.1-3."""
    return ScannerOptions(
        subnet_base="192.168.1",
        start_ip=1,
        end_ip=3,
        max_concurrent_connections=4,
        network_throttle_delay_ms=0,
        scan_interval_minutes=5,
    )


@pytest.fixture
def port_options() -> PortDetectionOptions:
    """Port options with a short connect timeout."""
    return PortDetectionOptions(port_connection_timeout_ms=200)


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def sync_event_bus() -> Generator[EventBus, None, None]:
    """Event bus that dispatches on the publishing thread."""
    bus = EventBus(async_mode=False)
    yield bus
    bus.clear_subscribers()


@pytest.fixture
def recorded_events(sync_event_bus: EventBus) -> list:
    """Every event published on sync_event_bus, in order."""
    events = []
    sync_event_bus.subscribe_all(events.append)
    return events


@pytest.fixture
def ping_probe() -> MockPingProbe:
    """Ping probe where nothing answers until configured."""
    return MockPingProbe()


@pytest.fixture
def subnet_provider() -> MockSubnetProvider:
    return MockSubnetProvider(["192.168.1"])


@pytest.fixture
def mock_event_bus() -> MagicMock:
    """Create a mock event bus for testing event-driven components."""
    mock_bus = MagicMock()
    mock_bus.publish = MagicMock()
    mock_bus.subscribe = MagicMock()
    mock_bus.unsubscribe = MagicMock()
    return mock_bus


@pytest.fixture
def mock_subprocess() -> Generator[MagicMock, None, None]:
    """Mock subprocess for command execution testing."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout="",
            stderr="",
        )
        yield mock_run
