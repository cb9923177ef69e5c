"""
Pytest configuration and shared fixtures for best location arbitration tests.

This module provides a controllable clock, reading factories and a fresh
metrics collector for every test.
"""

import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bestfix_core.proto import Reading
from bestfix_core.localization import ArbiterConfig, LocationArbiter
from bestfix_core.metrics import get_metrics, reset_metrics


# Fixed reference time used by the fake clock (2024-01-01T00:00:00Z)
T_NOW = 1704067200.0

MINUTE = 60.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = T_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# =============================================================================
# Clock / Metrics Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Give each test its own metrics collector."""
    reset_metrics()
    yield get_metrics()
    reset_metrics()


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock pinned at T_NOW."""
    return FakeClock()


# =============================================================================
# Arbiter Fixtures
# =============================================================================


@pytest.fixture
def arbiter_config() -> ArbiterConfig:
    """Default thresholds: 5 min staleness, 100 m / 5 min first fix."""
    return ArbiterConfig()


@pytest.fixture
def arbiter(arbiter_config: ArbiterConfig, clock: FakeClock) -> LocationArbiter:
    """Arbiter driven by the fake clock."""
    return LocationArbiter(arbiter_config, clock=clock)


# =============================================================================
# Reading Fixtures
# =============================================================================


@pytest.fixture
def make_reading(clock: FakeClock) -> Callable[..., Reading]:
    """
    Factory for readings relative to the fake clock.

    Usage:
        make_reading(age_s=600, accuracy_m=5.0)
    """
    def _make(
        age_s: float = 0.0,
        accuracy_m: Optional[float] = None,
        source_id: str = "gps",
        lat: float = 22.2900,
        lon: float = 114.1700,
    ) -> Reading:
        return Reading(
            source_id=source_id,
            timestamp=clock.now - age_s,
            position=(lat, lon),
            accuracy_m=accuracy_m,
        )

    return _make
