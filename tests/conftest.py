"""
Pytest configuration and shared fixtures for Orchestra tests.
"""

import io
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from orchestra_core.engine import WorkflowEngine
from orchestra_core.events import EventBus
from orchestra_core.logging import LogConfig, OrchestraLogger
from orchestra_core.recovery import RecoveryController, StrategyOptions
from orchestra_core.telemetry import reset_telemetry
from orchestra_core.types import LogFormat, LogLevel
from orchestra_core.workflow import WorkflowRegistry
from tests.mocks import FakeClock, FakeSleep

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def tests_dir() -> Path:
    """Return the tests directory."""
    return Path(__file__).parent


@pytest.fixture(scope="session")
def fixtures_dir(tests_dir: Path) -> Path:
    """Return the fixtures directory."""
    return tests_dir / "fixtures"


@pytest.fixture(scope="session")
def workflows_dir(fixtures_dir: Path) -> Path:
    """Return the workflow fixtures directory."""
    return fixtures_dir / "workflows"


# =============================================================================
# Telemetry
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_telemetry() -> Generator[None, None, None]:
    """Every test starts and ends without global telemetry."""
    reset_telemetry()
    yield
    reset_telemetry()


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def log_output() -> io.StringIO:
    """Buffer capturing log lines."""
    return io.StringIO()


@pytest.fixture
def logger(log_output: io.StringIO) -> OrchestraLogger:
    """JSON logger writing to a buffer."""
    return OrchestraLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_output))


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recovery(fake_sleep: FakeSleep, fake_clock: FakeClock) -> RecoveryController:
    """Recovery controller with instant backoff and a manual clock."""
    return RecoveryController(
        default_options=StrategyOptions(jitter=False),
        sleep=fake_sleep,
        clock=fake_clock,
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def workflow_registry(recovery: RecoveryController) -> WorkflowRegistry:
    return WorkflowRegistry(known_strategies=recovery.list_strategies)


@pytest.fixture
def engine(
    workflow_registry: WorkflowRegistry,
    recovery: RecoveryController,
    event_bus: EventBus,
) -> WorkflowEngine:
    """Engine with a short default step timeout."""
    return WorkflowEngine(
        workflow_registry,
        recovery,
        event_bus=event_bus,
        step_timeout_seconds=2.0,
    )


@pytest.fixture
def recorded_events(event_bus: EventBus) -> list[Any]:
    """Every event published on the bus, in order."""
    events: list[Any] = []
    event_bus.subscribe("*", events.append)
    return events


# =============================================================================
# Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "property: Property-based tests")
