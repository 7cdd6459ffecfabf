"""
Unit tests for the position fusion coordinator.

Tests cover:
- Beacon fixes, beacon lock and external submissions
- Dead-reckoning corrections and re-anchoring
- Output source selection (BEACON, DEAD_RECKONING, EXTERNAL, PREDICTED, UNAVAILABLE)
- Listeners, step metrics, reset
- Background loop and concurrent producers
"""

import math
import threading
import time

import pytest

from nav_core.localization import PositionFusionCoordinator, FusionConfig
from nav_core.localization.step_detection import StepDetectionConfig
from nav_core.localization.beacon_positioning import BeaconPositioningConfig
from nav_core.metrics import get_metrics
from nav_core.proto import (
    BeaconDetection,
    BeaconFix,
    FixSource,
    GyroSample,
    HeadingSample,
)
from nav_core.sim import generate_walking_samples

from conftest import ManualClock, rssi_at


def detect_all(coordinator, beacons, distance_m, timestamp):
    for beacon in beacons:
        coordinator.on_beacon_detection(
            BeaconDetection(identifier=beacon.id, rssi=rssi_at(distance_m), timestamp=timestamp)
        )


def feed(coordinator, samples):
    for sample in samples:
        coordinator.on_accelerometer(sample)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def coordinator(triangle_beacons, clock):
    return PositionFusionCoordinator(triangle_beacons, clock=clock)


# =============================================================================
# Beacon Fixes and Lock
# =============================================================================


class TestBeaconCorrections:
    """Tests for beacon fixes and the beacon lock."""

    def test_no_correction_is_unavailable(self, coordinator):
        position = coordinator.tick(now=1.0)

        assert position.source == FixSource.UNAVAILABLE
        assert not position.is_available
        assert math.isinf(position.accuracy)

    def test_tick_applies_beacon_fix(self, coordinator, triangle_beacons):
        detect_all(coordinator, triangle_beacons, 5.0, timestamp=0.0)

        position = coordinator.tick(now=1.0)

        assert position.source == FixSource.BEACON
        # Pulled from the origin toward the fix at (5, 2.4375)
        assert 0.0 < position.x < 5.0
        assert 0.0 < position.y < 2.4375
        assert position.accuracy < math.sqrt(20.0)
        assert get_metrics().get_counter('beacon_fixes') == 1

    def test_beacon_lock_blocks_external(self, coordinator, triangle_beacons):
        detect_all(coordinator, triangle_beacons, 5.0, timestamp=0.0)
        coordinator.tick(now=1.0)

        assert coordinator.submit_external_position(1.0, 1.0, timestamp=3.0) is False
        assert get_metrics().get_drop_count('beacon_lock_active') == 1

        assert coordinator.submit_external_position(1.0, 1.0, timestamp=6.5) is True

    def test_apply_beacon_fix_directly(self, coordinator):
        fix = BeaconFix(x=4.0, y=3.0, accuracy=0.5, timestamp=0.0, beacon_ids=["a", "b", "c"])

        assert coordinator.apply_beacon_fix(fix)

        x, y = coordinator.estimator.get_position()
        assert math.hypot(x - 4.0, y - 3.0) < 1.0

    def test_detected_beacons_sorted(self, coordinator, triangle_beacons):
        for beacon, distance in zip(triangle_beacons, [8.0, 2.0, 5.0]):
            coordinator.on_beacon_detection(
                BeaconDetection(beacon.id, rssi_at(distance), 0.0)
            )

        detected = coordinator.get_detected_beacons()

        assert [b.id for b in detected] == ["beacon_002", "beacon_003", "beacon_001"]

    def test_unknown_detection_ignored(self, coordinator):
        assert coordinator.on_beacon_detection(BeaconDetection("stranger", -60.0, 0.0)) is None
        assert coordinator.get_detected_beacons() == []

    def test_stale_beacons_leave_feed(self, coordinator, triangle_beacons):
        detect_all(coordinator, triangle_beacons, 5.0, timestamp=0.0)

        coordinator.tick(now=11.0)

        assert coordinator.get_detected_beacons() == []
        assert set(coordinator.get_beacon_history()) == {b.id for b in triangle_beacons}


# =============================================================================
# External and Dead-Reckoning Corrections
# =============================================================================


class TestOtherCorrections:
    """Tests for external positions, dead reckoning and output holding."""

    def test_external_then_hold_then_unavailable(self, coordinator):
        assert coordinator.submit_external_position(2.0, 2.0, timestamp=0.0)

        assert coordinator.tick(now=0.5).source == FixSource.EXTERNAL
        assert coordinator.tick(now=3.0).source == FixSource.PREDICTED

        late = coordinator.tick(now=6.0)
        assert late.source == FixSource.UNAVAILABLE
        assert math.isinf(late.accuracy)

    def test_dead_reckoning_correction(self, coordinator):
        coordinator.on_heading(HeadingSample(heading_deg=0.0, timestamp=0.0))
        feed(coordinator, generate_walking_samples(duration_s=3.0, forward_accel=0.5))

        position = coordinator.tick(now=3.0)

        assert position.source == FixSource.DEAD_RECKONING
        assert position.x > 0.5
        assert abs(position.y) < 1e-6

    def test_beacon_lock_suppresses_dead_reckoning(self, coordinator):
        fix = BeaconFix(x=5.0, y=2.4375, accuracy=1.0, timestamp=0.0)
        coordinator.apply_beacon_fix(fix)
        fused_x, _ = coordinator.estimator.get_position()
        assert coordinator.tick(now=0.0).source == FixSource.BEACON

        feed(coordinator, generate_walking_samples(duration_s=3.0, forward_accel=0.5))

        assert coordinator.tick(now=3.0).source == FixSource.PREDICTED

        position = coordinator.tick(now=6.0)
        assert position.source == FixSource.DEAD_RECKONING
        # Dead reckoning continues from the fused position, not the origin
        assert position.x > fused_x

    def test_no_movement_no_correction(self, coordinator):
        coordinator.submit_external_position(1.0, 1.0, timestamp=0.0)
        coordinator.tick(now=0.5)

        assert coordinator.tick(now=1.5).source == FixSource.PREDICTED

    def test_predict_between_ticks(self, coordinator):
        coordinator.tick(now=0.0)
        coordinator.tick(now=0.5)
        coordinator.tick(now=1.5)

        assert get_metrics().get_counter('estimator_predicts') == 2


# =============================================================================
# Heading Streams
# =============================================================================


class TestHeadingStreams:
    """Tests for compass and gyro handlers."""

    def test_heading_handler(self, coordinator):
        coordinator.on_heading(HeadingSample(heading_deg=90.0, timestamp=0.0))
        coordinator.on_heading(HeadingSample(heading_deg=None, timestamp=0.1))

        assert abs(coordinator.heading.heading_deg - 90.0) < 1e-9

    def test_gyro_handler(self, coordinator):
        coordinator.on_heading(HeadingSample(heading_deg=0.0, timestamp=0.0))

        coordinator.on_gyro(GyroSample(yaw_rate_rad_s=1.0, timestamp=0.0))
        heading = coordinator.on_gyro(GyroSample(yaw_rate_rad_s=1.0, timestamp=0.5))

        assert abs(heading - 0.5) < 1e-9


# =============================================================================
# Listeners, Metrics and Reset
# =============================================================================


class TestOutputs:
    """Tests for listeners, step metrics and reset."""

    def test_listeners_receive_outputs(self, coordinator, triangle_beacons):
        positions = []
        beacon_lists = []
        coordinator.add_position_listener(positions.append)
        coordinator.add_beacon_listener(beacon_lists.append)
        detect_all(coordinator, triangle_beacons, 5.0, timestamp=0.0)

        coordinator.tick(now=1.0)

        assert len(positions) == 1
        assert positions[0] == coordinator.get_fused_position()
        assert len(beacon_lists[0]) == 3

    def test_failing_listener_does_not_break_cycle(self, coordinator):
        received = []

        def broken(position):
            raise RuntimeError("listener failure")

        coordinator.add_position_listener(broken)
        coordinator.add_position_listener(received.append)

        coordinator.tick(now=1.0)

        assert len(received) == 1

    def test_step_metrics(self, triangle_beacons, calibration_profile, walking_samples):
        coordinator = PositionFusionCoordinator(
            triangle_beacons, calibration=calibration_profile, clock=ManualClock()
        )
        feed(coordinator, walking_samples)

        metrics = coordinator.get_step_metrics()

        assert 18 <= metrics.validated_steps <= 22
        assert metrics.step_length_m == 0.7
        assert metrics.total_distance_m == pytest.approx(
            max(metrics.validated_steps * 0.7, metrics.dead_reckoned_distance_m)
        )

        coordinator.set_step_length(1.0)
        assert coordinator.get_step_metrics().total_distance_m == pytest.approx(
            float(metrics.validated_steps)
        )

    @pytest.mark.parametrize("length", [0.0, -0.5, float('nan')])
    def test_invalid_step_length(self, coordinator, length):
        with pytest.raises(ValueError):
            coordinator.set_step_length(length)

    def test_reset_position(self, coordinator, clock):
        coordinator.submit_external_position(8.0, 8.0, timestamp=0.0)
        clock.now = 2.0

        coordinator.reset_position(3.0, 4.0)

        assert coordinator.estimator.get_position() == (3.0, 4.0)
        position = coordinator.tick(now=2.5)
        assert position.source == FixSource.PREDICTED
        assert (position.x, position.y) == (3.0, 4.0)

    def test_initial_position(self, triangle_beacons):
        coordinator = PositionFusionCoordinator(
            triangle_beacons, clock=ManualClock(), initial_position=(2.0, 3.0)
        )
        assert coordinator.estimator.get_position() == (2.0, 3.0)
        assert coordinator.get_fused_position().source == FixSource.UNAVAILABLE

    def test_nested_component_configs(self, triangle_beacons):
        step_config = StepDetectionConfig(peak_refractory_s=0.3)
        beacon_config = BeaconPositioningConfig(beacon_timeout_s=4.0)

        coordinator = PositionFusionCoordinator(
            triangle_beacons,
            config=FusionConfig(step_config=step_config, beacon_config=beacon_config),
            clock=ManualClock(),
        )

        assert coordinator.steps.config is step_config
        assert coordinator.beacons.config is beacon_config
        assert FusionConfig().estimator_config is None


# =============================================================================
# Threading
# =============================================================================


class TestThreading:
    """Tests for the background loop and concurrent producers."""

    def test_background_loop(self, triangle_beacons):
        coordinator = PositionFusionCoordinator(
            triangle_beacons, config=FusionConfig(predict_interval_s=0.02)
        )

        assert coordinator.start()
        assert coordinator.start() is False
        time.sleep(0.25)
        coordinator.stop()

        assert not coordinator.is_running
        assert get_metrics().get_counter('position_outputs') >= 2

    def test_concurrent_producers(self, triangle_beacons):
        clock = ManualClock()
        coordinator = PositionFusionCoordinator(triangle_beacons, clock=clock)
        errors = []

        def accel_producer():
            try:
                feed(coordinator, generate_walking_samples(duration_s=5.0, forward_accel=0.2))
            except Exception as e:
                errors.append(e)

        def heading_producer():
            try:
                for i in range(200):
                    coordinator.on_heading(HeadingSample(heading_deg=45.0, timestamp=i * 0.025))
            except Exception as e:
                errors.append(e)

        def beacon_producer():
            try:
                for i in range(50):
                    detect_all(coordinator, triangle_beacons, 5.0, timestamp=i * 0.1)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=accel_producer),
            threading.Thread(target=heading_producer),
            threading.Thread(target=beacon_producer),
        ]
        for thread in threads:
            thread.start()
        for i in range(20):
            coordinator.tick(now=i * 0.25)
        for thread in threads:
            thread.join()

        assert errors == []
        position = coordinator.tick(now=5.0)
        assert math.isfinite(position.x) and math.isfinite(position.y)
        assert get_metrics().get_counter('accel_samples') == 250
