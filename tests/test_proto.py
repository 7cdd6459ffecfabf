"""
Unit tests for data contracts.

Tests cover:
- Sample validity helpers
- Beacon schemas (containment match, staleness)
- StepEvent / StepMetrics validation and distance
- CalibrationProfile validation and relaxed defaults
- FusedPosition and the unavailable marker
"""

import math

import pytest

from nav_core.proto import (
    AccelerometerSample,
    HeadingSample,
    KnownBeacon,
    ObservedBeacon,
    BeaconFix,
    StepEvent,
    StepMetrics,
    compute_total_distance,
    CalibrationProfile,
    FusedPosition,
    FixSource,
    create_unavailable,
)


# =============================================================================
# Sensor Samples
# =============================================================================


class TestSensorSamples:

    def test_accelerometer_magnitude(self):
        sample = AccelerometerSample(x=3.0, y=4.0, z=12.0, timestamp=0.0)
        assert sample.magnitude == 13.0
        assert sample.is_valid

    def test_accelerometer_invalid(self):
        assert not AccelerometerSample(x=float('inf'), y=0.0, z=0.0, timestamp=0.0).is_valid

    def test_heading_availability(self):
        assert HeadingSample(heading_deg=12.0, timestamp=0.0).is_available
        assert not HeadingSample(heading_deg=None, timestamp=0.0).is_available


# =============================================================================
# Beacons
# =============================================================================


class TestBeaconSchemas:

    def test_known_beacon_matches(self):
        beacon = KnownBeacon(id="beacon_004", name="Exit Beacon", x=12.0, y=8.0)

        assert beacon.matches("Exit")
        assert beacon.matches("beacon_004")
        assert not beacon.matches("Lobby")
        assert not beacon.matches("")

    def test_observed_staleness(self):
        observed = ObservedBeacon(
            id="b", name="B", x=0.0, y=0.0, rssi=-70.0, distance=3.5, last_seen=2.0
        )

        assert observed.age(7.0) == 5.0
        assert not observed.is_stale(12.0, 10.0)
        assert observed.is_stale(12.5, 10.0)
        assert observed.to_dict()['distance'] == 3.5

    def test_fix_requires_positive_accuracy(self):
        with pytest.raises(ValueError):
            BeaconFix(x=0.0, y=0.0, accuracy=0.0, timestamp=0.0)


# =============================================================================
# Steps
# =============================================================================


class TestStepSchemas:

    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test_step_confidence_range(self, confidence):
        with pytest.raises(ValueError):
            StepEvent(timestamp=0.0, magnitude=10.0, confidence=confidence)

    def test_step_negative_magnitude(self):
        with pytest.raises(ValueError):
            StepEvent(timestamp=0.0, magnitude=-1.0, confidence=0.5)

    def test_total_distance_is_max(self):
        assert compute_total_distance(10, 0.7, 3.0) == pytest.approx(7.0)
        assert compute_total_distance(2, 0.7, 3.0) == 3.0

    def test_step_metrics(self):
        metrics = StepMetrics(
            validated_steps=10,
            rejected_steps=2,
            cadence_hz=1.9,
            dead_reckoned_distance_m=4.0,
            step_length_m=0.7,
            total_distance_m=7.0,
        )

        assert metrics.step_based_distance_m == pytest.approx(7.0)
        assert metrics.to_dict()['rejected_steps'] == 2


# =============================================================================
# Calibration
# =============================================================================


class TestCalibrationProfile:

    def test_defaults_are_calibrated(self):
        assert CalibrationProfile().is_calibrated

    def test_relaxed_is_wider(self):
        calibrated = CalibrationProfile()
        relaxed = CalibrationProfile.relaxed()

        assert not relaxed.is_calibrated
        assert relaxed.shaking_variance_threshold > calibrated.shaking_variance_threshold
        assert relaxed.min_step_interval_s < calibrated.min_step_interval_s
        assert relaxed.max_step_interval_s > calibrated.max_step_interval_s
        assert relaxed.max_cadence_hz > calibrated.max_cadence_hz

    @pytest.mark.parametrize("kwargs", [
        {'still_threshold': 0.0},
        {'shaking_variance_threshold': -1.0},
        {'step_magnitude_threshold': -0.1},
        {'min_cadence_hz': 3.0, 'max_cadence_hz': 1.0},
        {'min_step_interval_s': 2.5, 'max_step_interval_s': 2.0},
    ])
    def test_invalid_profiles(self, kwargs):
        with pytest.raises(ValueError):
            CalibrationProfile(**kwargs)

    def test_frozen(self):
        profile = CalibrationProfile()
        with pytest.raises(AttributeError):
            profile.still_threshold = 1.0


# =============================================================================
# Fused Output
# =============================================================================


class TestFusedPosition:

    def test_available_position(self):
        position = FusedPosition(x=1.0, y=2.0, accuracy=0.8, timestamp=3.0, source=FixSource.BEACON)

        assert position.is_available
        assert position.position == (1.0, 2.0)
        assert position.to_dict()['source'] == 'BEACON'

    def test_unavailable(self):
        position = create_unavailable(5.0, (1.0, 1.0))

        assert not position.is_available
        assert math.isinf(position.accuracy)
        assert position.position == (1.0, 1.0)

    def test_negative_accuracy_rejected(self):
        with pytest.raises(ValueError):
            FusedPosition(x=0.0, y=0.0, accuracy=-1.0, timestamp=0.0)
