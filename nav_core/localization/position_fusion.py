"""
Position Fusion Coordinator.

Single owner of the fused belief. Wires the producer streams (accelerometer,
compass, gyroscope, beacon detections) into their components and runs the
fixed-cadence positioning cycle:

1. Predict the belief forward by the time since the last cycle
2. Prune stale beacons and try a trilateration fix
3. Fix available -> beacon correction + beacon lock + dead-reckoning re-anchor
   No fix, no lock -> dead-reckoning correction if the walker moved
4. Publish the fused position and the detected-beacon list

Usage:
    coordinator = PositionFusionCoordinator(known_beacons, calibration=profile)
    coordinator.add_position_listener(lambda pos: print(pos.to_dict()))
    coordinator.start()

    # Producer threads
    coordinator.on_accelerometer(sample)
    coordinator.on_heading(heading_sample)
    coordinator.on_beacon_detection(detection)

    coordinator.stop()
"""

from typing import Callable, Iterable, List, Optional, Tuple
from dataclasses import dataclass
import logging
import math
import threading
import time

from nav_core.proto.sensor_samples import (
    AccelerometerSample,
    HeadingSample,
    GyroSample,
    BeaconDetection,
)
from nav_core.proto.beacon import KnownBeacon, ObservedBeacon, BeaconFix
from nav_core.proto.calibration import CalibrationProfile
from nav_core.proto.step_event import StepEvent, StepMetrics, compute_total_distance
from nav_core.proto.position_estimate import FusedPosition, FixSource, create_unavailable
from nav_core.localization.state_estimator import StateEstimator, StateEstimatorConfig
from nav_core.localization.beacon_positioning import (
    BeaconPositioningEngine,
    BeaconPositioningConfig,
)
from nav_core.localization.heading_estimator import HeadingEstimator, HeadingEstimatorConfig
from nav_core.localization.step_detection import StepDetectionPipeline, StepDetectionConfig
from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)

PositionListener = Callable[[FusedPosition], None]
BeaconListener = Callable[[List[ObservedBeacon]], None]


@dataclass
class FusionConfig:
    """
    Configuration for position fusion.

    Attributes:
        predict_interval_s: Background positioning cycle period (s)
        beacon_lock_s: After a beacon fix, other corrections are ignored this long (s)
        dead_reckoning_noise: Measurement noise of dead-reckoning corrections (m²)
        external_noise: Measurement noise of external position submissions (m²)
        max_hold_time_s: Prediction-only output stays available this long
            after the last correction (s)
        step_length_m: Initial step length for step-based distance (m)
        min_movement_m: Dead-reckoning displacement needed for a correction (m)
        estimator_config: StateEstimator configuration
        beacon_config: BeaconPositioningEngine configuration
        heading_config: HeadingEstimator configuration
        step_config: StepDetectionPipeline configuration
    """

    predict_interval_s: float = 1.0
    beacon_lock_s: float = 5.0
    dead_reckoning_noise: float = 2.0
    external_noise: float = 2.0
    max_hold_time_s: float = 5.0
    step_length_m: float = 0.7
    min_movement_m: float = 0.01
    estimator_config: Optional[StateEstimatorConfig] = None
    beacon_config: Optional[BeaconPositioningConfig] = None
    heading_config: Optional[HeadingEstimatorConfig] = None
    step_config: Optional[StepDetectionConfig] = None


class PositionFusionCoordinator:
    """
    Thread-safe fusion of steps, inertial dead reckoning and beacon fixes.

    Each component is guarded by its own lock, so producer callbacks only
    contend with the positioning cycle, never with each other. The belief
    and its bookkeeping live under the estimator lock; no code path holds
    two component locks at once.
    """

    def __init__(
        self,
        known_beacons: Iterable[KnownBeacon],
        calibration: Optional[CalibrationProfile] = None,
        config: Optional[FusionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        initial_position: Tuple[float, float] = (0.0, 0.0),
    ):
        """
        Initialize fusion coordinator.

        Args:
            known_beacons: Registry of beacons with fixed positions
            calibration: Step detection thresholds (None = relaxed mode)
            config: Fusion configuration (uses defaults if None)
            clock: Time source shared with the sample timestamps (s)
            initial_position: Starting belief (x, y) in meters
        """
        self.config = config or FusionConfig()
        self.metrics = get_metrics()
        self._clock = clock

        self.estimator = StateEstimator(
            self.config.estimator_config,
            initial_x=initial_position[0],
            initial_y=initial_position[1],
        )
        self.beacons = BeaconPositioningEngine(known_beacons, self.config.beacon_config)
        self.heading = HeadingEstimator(self.config.heading_config)
        self.steps = StepDetectionPipeline(self.heading, calibration, self.config.step_config)

        self._estimator_lock = threading.Lock()
        self._beacon_lock = threading.Lock()
        self._heading_lock = threading.Lock()
        self._step_lock = threading.Lock()
        self._listener_lock = threading.Lock()

        # Guarded by _estimator_lock
        self._last_tick: Optional[float] = None
        self._last_update_time: Optional[float] = None
        self._beacon_lock_until: Optional[float] = None
        self._pending_source: Optional[FixSource] = None
        self._dr_offset = (float(initial_position[0]), float(initial_position[1]))
        self._last_dr_applied = (0.0, 0.0)
        self._latest = create_unavailable(0.0, tuple(initial_position))

        # Guarded by _heading_lock
        self._last_gyro_time: Optional[float] = None

        self._step_length = 0.0
        self.set_step_length(self.config.step_length_m)

        self._position_listeners: List[PositionListener] = []
        self._beacon_listeners: List[BeaconListener] = []

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        logger.info(
            f"PositionFusionCoordinator initialized at "
            f"({initial_position[0]:.2f}, {initial_position[1]:.2f})"
        )

    # ------------------------------------------------------------------
    # Producer handlers
    # ------------------------------------------------------------------

    def on_accelerometer(self, sample: AccelerometerSample) -> Optional[StepEvent]:
        """Feed one accelerometer sample to step detection and dead reckoning."""
        with self._heading_lock:
            heading_rad = self.heading.heading_rad
        with self._step_lock:
            return self.steps.process_sample(sample, heading_rad)

    def on_heading(self, sample: HeadingSample) -> float:
        """Feed one compass sample (heading may be None). Returns heading (rad)."""
        with self._heading_lock:
            return self.heading.update(sample.heading_deg)

    def on_gyro(self, sample: GyroSample) -> float:
        """Integrate one gyroscope yaw-rate sample. Returns heading (rad)."""
        with self._heading_lock:
            last = self._last_gyro_time
            self._last_gyro_time = sample.timestamp
            if last is None:
                return self.heading.heading_rad
            return self.heading.update_gyro(sample.yaw_rate_rad_s, sample.timestamp - last)

    def on_beacon_detection(self, detection: BeaconDetection) -> Optional[ObservedBeacon]:
        """Record one beacon detection. Returns the stored observation or None."""
        with self._beacon_lock:
            return self.beacons.record_observation(
                detection.identifier, detection.rssi, detection.timestamp
            )

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    def _beacon_lock_active(self, now: float) -> bool:
        return self._beacon_lock_until is not None and now < self._beacon_lock_until

    def apply_beacon_fix(self, fix: BeaconFix) -> bool:
        """
        Correct the belief with a beacon fix.

        The fix accuracy is used as the measurement noise. A successful
        correction starts the beacon lock and re-anchors dead reckoning onto
        the fused position.

        Returns:
            True if the correction was applied
        """
        with self._step_lock:
            dr_position = self.steps.dead_reckoned_position

        with self._estimator_lock:
            if not self.estimator.update(fix.x, fix.y, fix.accuracy):
                return False

            fused_x, fused_y = self.estimator.get_position()

            self._beacon_lock_until = fix.timestamp + self.config.beacon_lock_s
            self._last_update_time = fix.timestamp
            self._pending_source = FixSource.BEACON
            self._dr_offset = (fused_x - dr_position[0], fused_y - dr_position[1])
            self._last_dr_applied = dr_position

        logger.debug(
            f"Beacon fix applied: ({fix.x:.2f}, {fix.y:.2f}) ±{fix.accuracy:.1f}m "
            f"from {fix.beacon_ids}"
        )
        return True

    def submit_external_position(
        self,
        x: float,
        y: float,
        timestamp: Optional[float] = None,
    ) -> bool:
        """
        Correct the belief with an externally supplied position.

        Ignored while a beacon lock is active.

        Returns:
            True if the correction was applied
        """
        now = self._clock() if timestamp is None else timestamp

        with self._estimator_lock:
            if self._beacon_lock_active(now):
                logger.debug(f"External position ({x:.2f}, {y:.2f}) ignored: beacon lock active")
                self.metrics.increment_drop('beacon_lock_active')
                return False

            if not self.estimator.update(x, y, self.config.external_noise):
                return False

            self._last_update_time = now
            self._pending_source = FixSource.EXTERNAL

        return True

    def _apply_dead_reckoning(self, now: float) -> bool:
        with self._step_lock:
            dr_position = self.steps.dead_reckoned_position

        with self._estimator_lock:
            if self._beacon_lock_active(now):
                return False

            moved = math.hypot(
                dr_position[0] - self._last_dr_applied[0],
                dr_position[1] - self._last_dr_applied[1],
            )
            if moved <= self.config.min_movement_m:
                return False

            target_x = dr_position[0] + self._dr_offset[0]
            target_y = dr_position[1] + self._dr_offset[1]

            if not self.estimator.update(target_x, target_y, self.config.dead_reckoning_noise):
                return False

            self._last_dr_applied = dr_position
            self._last_update_time = now
            self._pending_source = FixSource.DEAD_RECKONING

        return True

    # ------------------------------------------------------------------
    # Positioning cycle
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> FusedPosition:
        """
        Run one positioning cycle and publish the result.

        Args:
            now: Cycle time (defaults to the coordinator clock)

        Returns:
            FusedPosition for this cycle (UNAVAILABLE if no recent correction)
        """
        now = self._clock() if now is None else now

        with self._estimator_lock:
            if self._last_tick is not None:
                dt = now - self._last_tick
                if dt > 0:
                    self.estimator.predict(dt)
            self._last_tick = now

        with self._beacon_lock:
            fix = self.beacons.compute_fix(now)

        if fix is not None:
            self.apply_beacon_fix(fix)
        else:
            self._apply_dead_reckoning(now)

        with self._beacon_lock:
            detected = self.beacons.get_active_beacons()

        with self._estimator_lock:
            source = self._pending_source
            self._pending_source = None

            if source is None:
                held = (
                    self._last_update_time is not None
                    and now - self._last_update_time <= self.config.max_hold_time_s
                )
                source = FixSource.PREDICTED if held else FixSource.UNAVAILABLE

            x, y = self.estimator.get_position()
            if source == FixSource.UNAVAILABLE:
                position = create_unavailable(now, (x, y))
            else:
                position = FusedPosition(
                    x=x,
                    y=y,
                    accuracy=self.estimator.get_position_accuracy(),
                    timestamp=now,
                    source=source,
                    velocity=self.estimator.get_velocity(),
                )
            self._latest = position

        self.metrics.increment('position_outputs')
        self._notify(position, detected)

        return position

    def _notify(self, position: FusedPosition, detected: List[ObservedBeacon]):
        with self._listener_lock:
            position_listeners = list(self._position_listeners)
            beacon_listeners = list(self._beacon_listeners)

        for listener in position_listeners:
            try:
                listener(position)
            except Exception as e:
                logger.warning(f"Position listener failed: {e}")

        for listener in beacon_listeners:
            try:
                listener(detected)
            except Exception as e:
                logger.warning(f"Beacon listener failed: {e}")

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the background positioning cycle."""
        if self.is_running:
            logger.warning("Fusion loop already running")
            return False

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="position-fusion", daemon=True
        )
        self._thread.start()

        logger.info(f"Fusion loop started (interval {self.config.predict_interval_s:.2f}s)")
        return True

    def stop(self):
        """Stop the background positioning cycle."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0 * self.config.predict_interval_s + 1.0)
            self._thread = None
            logger.info("Fusion loop stopped")

    def _run_loop(self):
        while not self._stop_event.wait(self.config.predict_interval_s):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Positioning cycle failed: {e}")

    # ------------------------------------------------------------------
    # Listeners and queries
    # ------------------------------------------------------------------

    def add_position_listener(self, listener: PositionListener):
        with self._listener_lock:
            self._position_listeners.append(listener)

    def add_beacon_listener(self, listener: BeaconListener):
        with self._listener_lock:
            self._beacon_listeners.append(listener)

    def get_fused_position(self) -> FusedPosition:
        """Output of the most recent cycle."""
        with self._estimator_lock:
            return self._latest

    def get_detected_beacons(self) -> List[ObservedBeacon]:
        """Active beacons sorted by ascending distance."""
        with self._beacon_lock:
            return self.beacons.get_active_beacons()

    def get_beacon_history(self):
        with self._beacon_lock:
            return self.beacons.get_beacon_history()

    def get_step_metrics(self) -> StepMetrics:
        with self._step_lock:
            validated = self.steps.validated_steps
            rejected = self.steps.rejected_steps
            cadence = self.steps.cadence_hz
            dr_distance = self.steps.dead_reckoned_distance

        step_length = self._step_length
        return StepMetrics(
            validated_steps=validated,
            rejected_steps=rejected,
            cadence_hz=cadence,
            dead_reckoned_distance_m=dr_distance,
            step_length_m=step_length,
            total_distance_m=compute_total_distance(validated, step_length, dr_distance),
        )

    @property
    def step_length(self) -> float:
        return self._step_length

    def set_step_length(self, step_length_m: float):
        """Set the step length used for step-based distance (m, > 0)."""
        if step_length_m is None or not math.isfinite(step_length_m) or step_length_m <= 0:
            raise ValueError(f"Step length must be positive: {step_length_m}")
        self._step_length = float(step_length_m)

    def set_pedestrian_walking(self, walking: bool):
        with self._step_lock:
            self.steps.set_pedestrian_walking(walking)

    def reset_position(self, x: float = 0.0, y: float = 0.0):
        """Reset the belief to (x, y) and re-anchor dead reckoning there."""
        with self._step_lock:
            dr_position = self.steps.dead_reckoned_position

        now = self._clock()
        with self._estimator_lock:
            self.estimator.reset(x, y)
            self._dr_offset = (x - dr_position[0], y - dr_position[1])
            self._last_dr_applied = dr_position
            self._beacon_lock_until = None
            self._last_update_time = now
            self._pending_source = None

        logger.info(f"Position reset to ({x:.2f}, {y:.2f})")
