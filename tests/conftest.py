"""
Pytest configuration and shared fixtures for indoor navigation tests.

This module provides reusable fixtures for testing the state estimator,
beacon positioning, step detection and the fusion coordinator.
"""

import sys
import math
from pathlib import Path
from typing import List, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from nav_core.metrics import reset_metrics
from nav_core.proto import AccelerometerSample, CalibrationProfile, KnownBeacon
from nav_core.sim import generate_walking_samples, generate_shaking_samples


# =============================================================================
# Metrics Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """
    Give every test a fresh global metrics collector.

    Components capture the collector at construction, so this runs before
    any fixture or test body builds one.
    """
    reset_metrics()
    yield


# =============================================================================
# Beacon Registry Fixtures
# =============================================================================


@pytest.fixture
def triangle_beacons() -> List[KnownBeacon]:
    """
    Three beacons in a non-collinear triangle:
    - beacon_001 at origin
    - beacon_002 at (10, 0)
    - beacon_003 at (5, 8)
    """
    return [
        KnownBeacon(id="beacon_001", name="Entrance Beacon", x=0.0, y=0.0),
        KnownBeacon(id="beacon_002", name="Corner Beacon", x=10.0, y=0.0),
        KnownBeacon(id="beacon_003", name="Center Beacon", x=5.0, y=8.0),
    ]


@pytest.fixture
def known_beacons(triangle_beacons) -> List[KnownBeacon]:
    """Triangle layout plus a fourth beacon at (12, 8)."""
    return triangle_beacons + [
        KnownBeacon(id="beacon_004", name="Exit Beacon", x=12.0, y=8.0),
    ]


@pytest.fixture
def collinear_beacons() -> List[KnownBeacon]:
    """Three beacons on the X axis (degenerate geometry)."""
    return [
        KnownBeacon(id="line_a", name="Line A", x=0.0, y=0.0),
        KnownBeacon(id="line_b", name="Line B", x=5.0, y=0.0),
        KnownBeacon(id="line_c", name="Line C", x=10.0, y=0.0),
    ]


# =============================================================================
# Calibration Fixtures
# =============================================================================


@pytest.fixture
def calibration_profile() -> CalibrationProfile:
    """
    Calibrated thresholds for a 2 Hz walk with 3 m/s² bounce.

    Shaking variance threshold 5.0 (m/s²)², step excursion 1.0 m/s².
    """
    return CalibrationProfile(
        still_threshold=0.5,
        shaking_variance_threshold=5.0,
        step_magnitude_threshold=1.0,
        min_cadence_hz=1.0,
        max_cadence_hz=3.0,
        min_step_interval_s=0.3,
        max_step_interval_s=1.5,
    )


# =============================================================================
# Synthetic Stream Fixtures
# =============================================================================


@pytest.fixture
def walking_samples() -> List[AccelerometerSample]:
    """10 s at 50 Hz of z = 9.81 + 3 sin(2π·2·t), x = y = 0."""
    return generate_walking_samples(duration_s=10.0, rate_hz=50.0, step_freq_hz=2.0, amplitude=3.0)


@pytest.fixture
def shaking_samples() -> List[AccelerometerSample]:
    """10 s at 50 Hz of N(0, 12²) on every axis (seeded)."""
    return generate_shaking_samples(duration_s=10.0, rate_hz=50.0, sigma=12.0, seed=1234)


# =============================================================================
# Helper Functions
# =============================================================================


def distance_2d(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Euclidean distance between two 2D points."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def rssi_at(distance_m: float) -> float:
    """RSSI that maps back to distance_m under the default path-loss model."""
    return -59.0 - 20.0 * math.log10(distance_m)


class ManualClock:
    """Settable clock for deterministic coordinator tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now
