"""
Step Detection Pipeline.

Turns raw accelerometer samples into validated step events and feeds the
dead-reckoning integrator.

Per sample:
1. Magnitude + first-order low-pass filter into fixed-size windows
2. Rolling mean/std over the analysis window
3. Peak/valley detection (a newly detected peak is a step candidate)
4. Confidence score (magnitude, peak/valley pattern, timing, walking state)
5. Multi-criterion validation (confidence, interval, shaking, cadence,
   magnitude excursion, gait regularity/stability)
6. Walking-pattern bookkeeping
7. Dead reckoning

A CalibrationProfile only changes thresholds; without one the pipeline runs
in relaxed mode with CalibrationProfile.relaxed().
"""

from collections import deque
from typing import Deque, List, Optional, Tuple
from dataclasses import dataclass
from enum import Enum
import logging
import math
import numpy as np

from nav_core.proto.sensor_samples import AccelerometerSample
from nav_core.proto.calibration import CalibrationProfile
from nav_core.proto.step_event import StepEvent
from nav_core.localization.heading_estimator import HeadingEstimator
from nav_core.localization.dead_reckoning import DeadReckoningIntegrator, DeadReckoningConfig
from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


class StepDetectorState(Enum):
    """Walking-pattern state of the pipeline."""

    IDLE = 0                 # Not enough samples for detection yet
    ACCUMULATING_BUFFER = 1  # Detecting, no established walking pattern
    WALKING_PATTERN = 2      # Regular steps with sufficient confidence


@dataclass
class StepDetectionConfig:
    """
    Structural constants of the step pipeline (thresholds live in
    CalibrationProfile).

    Attributes:
        filter_alpha: Low-pass weight of the new magnitude sample
        analysis_window_size: Filtered samples used for rolling stats
        validation_buffer_size: Filtered samples used for shaking checks
        raw_window_size: Raw samples used for per-axis variance
        min_samples_for_stats: Samples before rolling stats are valid
        min_samples_for_detection: Samples before peak detection starts
        peak_std_factor: Peaks/valleys must exceed mean ± factor * std
        peak_refractory_s: A peak this soon after the last candidate peak is
            folded into it instead of becoming a new candidate (s)
        peak_history_size: Peaks and valleys remembered
        interval_history_size: Step intervals remembered
        step_history_s: Accepted steps retained (s)
        cadence_window_s: Window for cadence analysis (s)
        min_confidence: Minimum confidence (calibrated)
        relaxed_min_confidence: Minimum confidence (relaxed)
        hard_max_interval_s: Candidates beyond this interval are always rejected (s)
        idle_timeout_s: Walking state decays after this long without steps (s)
        min_gait_regularity: Minimum 1 - CV of intervals (calibrated)
        relaxed_min_gait_regularity: Minimum 1 - CV of intervals (relaxed)
        min_gait_stability: Minimum 1 / (1 + var / 5) of the analysis window
        max_direction_changes: More slope reversals in the buffer means shaking
        min_steps_for_pattern: Recent steps needed for a walking pattern
        walking_confidence_threshold: Walking confidence needed for a pattern
    """

    filter_alpha: float = 0.2
    analysis_window_size: int = 50
    validation_buffer_size: int = 20
    raw_window_size: int = 50
    min_samples_for_stats: int = 10
    min_samples_for_detection: int = 20
    peak_std_factor: float = 0.5
    peak_refractory_s: float = 0.2
    peak_history_size: int = 20
    interval_history_size: int = 20
    step_history_s: float = 30.0
    cadence_window_s: float = 10.0
    min_confidence: float = 0.4
    relaxed_min_confidence: float = 0.3
    hard_max_interval_s: float = 3.0
    idle_timeout_s: float = 2.0
    min_gait_regularity: float = 0.3
    relaxed_min_gait_regularity: float = 0.1
    min_gait_stability: float = 0.3
    max_direction_changes: int = 8
    min_steps_for_pattern: int = 3
    walking_confidence_threshold: float = 0.5


class StepDetectionPipeline:
    """
    Accelerometer step detector with validation and dead reckoning.

    Usage:
        heading = HeadingEstimator()
        pipeline = StepDetectionPipeline(heading, calibration=profile)

        for sample in accelerometer_stream:
            step = pipeline.process_sample(sample)
            if step is not None:
                print(f"Step at {step.timestamp:.2f}s (conf={step.confidence:.2f})")

    Not thread-safe: callers serialize access.
    """

    def __init__(
        self,
        heading_estimator: HeadingEstimator,
        calibration: Optional[CalibrationProfile] = None,
        config: Optional[StepDetectionConfig] = None,
    ):
        """
        Initialize step detection pipeline.

        Args:
            heading_estimator: Heading source for dead reckoning
            calibration: Calibrated thresholds (None = relaxed mode)
            config: Structural constants (uses defaults if None)
        """
        self.config = config or StepDetectionConfig()
        self.calibration = calibration or CalibrationProfile.relaxed()
        self.heading_estimator = heading_estimator
        self.metrics = get_metrics()

        self.dead_reckoning = DeadReckoningIntegrator(
            DeadReckoningConfig(still_threshold=self.calibration.still_threshold)
        )

        self._init_buffers()

        mode = "calibrated" if self.is_calibrated else "relaxed"
        logger.info(f"StepDetectionPipeline initialized ({mode} mode)")

    def _init_buffers(self):
        cfg = self.config

        self._filtered: Optional[float] = None
        self._sample_count = 0

        # (timestamp, filtered magnitude)
        self._window: Deque[Tuple[float, float]] = deque(maxlen=cfg.analysis_window_size)
        self._validation: Deque[float] = deque(maxlen=cfg.validation_buffer_size)
        # (x, y, z, magnitude)
        self._raw: Deque[Tuple[float, float, float, float]] = deque(maxlen=cfg.raw_window_size)

        self._mean = 0.0
        self._std = 0.0

        self._peaks: Deque[Tuple[float, float]] = deque(maxlen=cfg.peak_history_size)
        self._valleys: Deque[Tuple[float, float]] = deque(maxlen=cfg.peak_history_size)

        self._steps: Deque[StepEvent] = deque()
        self._intervals: Deque[float] = deque(maxlen=cfg.interval_history_size)
        self._last_step_time: Optional[float] = None
        self._interval_anchor: Optional[float] = None
        self._last_candidate_time: Optional[float] = None
        # Steps before this time belong to an earlier walking bout
        self._bout_start: Optional[float] = None

        self._validated_steps = 0
        self._rejected_steps = 0
        self._walking_confidence = 0.0
        self._consecutive_steps = 0
        self._walking_pattern = False
        self._external_walking = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_calibrated(self) -> bool:
        return self.calibration.is_calibrated

    @property
    def state(self) -> StepDetectorState:
        if self._sample_count < self.config.min_samples_for_detection:
            return StepDetectorState.IDLE
        if self._walking_pattern:
            return StepDetectorState.WALKING_PATTERN
        return StepDetectorState.ACCUMULATING_BUFFER

    @property
    def validated_steps(self) -> int:
        return self._validated_steps

    @property
    def rejected_steps(self) -> int:
        return self._rejected_steps

    @property
    def walking_confidence(self) -> float:
        return self._walking_confidence

    @property
    def consecutive_steps(self) -> int:
        return self._consecutive_steps

    @property
    def cadence_hz(self) -> float:
        """Steps per second over the cadence window (0.0 with < 2 steps)."""
        if not self._steps:
            return 0.0
        cutoff = self._steps[-1].timestamp - self.config.cadence_window_s
        times = [s.timestamp for s in self._steps if s.timestamp >= cutoff]
        return self._cadence_of(times)

    @property
    def dead_reckoned_distance(self) -> float:
        return self.dead_reckoning.distance

    @property
    def dead_reckoned_position(self) -> Tuple[float, float]:
        return self.dead_reckoning.position

    def get_step_events(self) -> List[StepEvent]:
        """Accepted steps still within the retention window."""
        return list(self._steps)

    def set_pedestrian_walking(self, walking: bool):
        """External pedestrian-status hint (e.g., platform activity recognition)."""
        self._external_walking = bool(walking)

    def reset(self):
        """Clear all buffers, counters and dead-reckoning state."""
        self._init_buffers()
        self.dead_reckoning.reset()
        logger.info("Step detection pipeline reset")

    # ------------------------------------------------------------------
    # Sample processing
    # ------------------------------------------------------------------

    def process_sample(
        self,
        sample: AccelerometerSample,
        heading_rad: Optional[float] = None,
    ) -> Optional[StepEvent]:
        """
        Process one accelerometer sample.

        Args:
            sample: Raw accelerometer sample
            heading_rad: Heading for dead reckoning (defaults to the
                heading estimator's current value)

        Returns:
            StepEvent if a step was accepted on this sample, else None
        """
        self.metrics.increment('accel_samples')

        if not sample.is_valid:
            self.metrics.increment_drop('invalid_sample')
            return None

        magnitude = sample.magnitude

        if self._filtered is None:
            self._filtered = magnitude
        else:
            alpha = self.config.filter_alpha
            self._filtered = alpha * magnitude + (1.0 - alpha) * self._filtered

        self._sample_count += 1
        self._window.append((sample.timestamp, self._filtered))
        self._validation.append(self._filtered)
        self._raw.append((sample.x, sample.y, sample.z, magnitude))

        self._update_statistics()

        step = None
        if self._sample_count >= self.config.min_samples_for_detection:
            candidate = self._detect_peaks_and_valleys()
            if candidate is not None:
                step = self._evaluate_candidate(*candidate)

        self._decay_idle_walking(sample.timestamp)

        if heading_rad is None:
            heading_rad = self.heading_estimator.heading_rad
        self.dead_reckoning.process_sample(sample, heading_rad)

        return step

    def _update_statistics(self):
        if len(self._window) < self.config.min_samples_for_stats:
            return
        values = np.array([v for _, v in self._window])
        self._mean = float(np.mean(values))
        self._std = float(np.std(values))

    def _detect_peaks_and_valleys(self) -> Optional[Tuple[float, float]]:
        """
        Classify the previous filtered sample as peak/valley.

        Returns:
            (timestamp, magnitude) of a newly detected peak, else None
        """
        if len(self._window) < 3:
            return None

        before = self._window[-3][1]
        t_mid, mid = self._window[-2]
        after = self._window[-1][1]

        band = self.config.peak_std_factor * self._std

        if mid > before and mid >= after and mid > self._mean + band:
            last = self._last_candidate_time
            if last is not None and t_mid - last < self.config.peak_refractory_s:
                # Noise ripple on the same bump: keep the larger value only
                if self._peaks and mid > self._peaks[-1][1]:
                    self._peaks[-1] = (self._peaks[-1][0], mid)
                return None

            self._last_candidate_time = t_mid
            self._peaks.append((t_mid, mid))
            return (t_mid, mid)

        if mid < before and mid <= after and mid < self._mean - band:
            self._valleys.append((t_mid, mid))

        return None

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def _magnitude_score(self, magnitude: float) -> float:
        return float(np.clip(abs(magnitude - self._mean) / (self._std + 0.1), 0.0, 1.0))

    def _pattern_score(self) -> float:
        if len(self._peaks) < 2 or len(self._valleys) < 2:
            return 0.0

        recent_peaks = [v for _, v in list(self._peaks)[-5:]]
        recent_valleys = [v for _, v in list(self._valleys)[-5:]]
        separation = float(np.mean(recent_peaks) - np.mean(recent_valleys))

        if separation < 0.5:
            return 0.0
        if separation > 5.0:
            # Unusually large swings look more like handling than walking
            return 0.3
        return float(np.clip(separation / 3.0, 0.0, 1.0))

    def _temporal_score(self, timestamp: float) -> float:
        if len(self._steps) < 2 or not self._intervals:
            return 0.5

        interval = timestamp - self._steps[-1].timestamp
        deviation = abs(interval - float(np.mean(self._intervals)))
        if deviation > 1.0:
            return 0.0
        return 1.0 - deviation

    def _walking_score(self) -> float:
        score = 0.8 if (self._walking_pattern or self._external_walking) else 0.3
        score += min(self._consecutive_steps / 10.0, 0.2)
        score += 0.1 * self._walking_confidence
        return float(np.clip(score, 0.0, 1.0))

    def compute_confidence(self, timestamp: float, magnitude: float) -> float:
        """Weighted step confidence in [0, 1] for a candidate."""
        confidence = 0.25 * (
            self._magnitude_score(magnitude)
            + self._pattern_score()
            + self._temporal_score(timestamp)
            + self._walking_score()
        )
        return float(np.clip(confidence, 0.0, 1.0))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _evaluate_candidate(self, timestamp: float, magnitude: float) -> Optional[StepEvent]:
        confidence = self.compute_confidence(timestamp, magnitude)
        reason = self._rejection_reason(timestamp, magnitude, confidence)

        if reason is not None:
            self._rejected_steps += 1
            self.metrics.increment_drop('step_rejected')
            logger.debug(
                f"Step candidate at {timestamp:.2f}s rejected: {reason} "
                f"(conf={confidence:.2f})"
            )
            return None

        return self._accept_step(timestamp, magnitude, confidence)

    def _rejection_reason(
        self,
        timestamp: float,
        magnitude: float,
        confidence: float,
    ) -> Optional[str]:
        """All acceptance criteria; returns the first failing one, or None."""
        cal = self.calibration

        interval = None
        if self._interval_anchor is not None:
            interval = timestamp - self._interval_anchor

            if interval > self.config.hard_max_interval_s:
                self._reset_walking_pattern(timestamp)
                # Restart interval timing from here so walking can resume
                self._interval_anchor = timestamp
                return 'interval_too_long'

        min_confidence = (
            self.config.min_confidence if self.is_calibrated
            else self.config.relaxed_min_confidence
        )
        if confidence < min_confidence:
            return 'low_confidence'

        if interval is not None:
            if interval < cal.min_step_interval_s:
                return 'interval_too_short'

            if interval > cal.max_step_interval_s:
                self._reset_walking_pattern(timestamp)
                interval = None

        if self._is_shaking():
            return 'shaking'

        if not self._check_cadence(timestamp):
            return 'cadence_out_of_range'

        if not self._check_magnitude(magnitude):
            return 'magnitude_too_low'

        if not self._check_gait(interval):
            return 'irregular_gait'

        return None

    def _is_shaking(self) -> bool:
        """Shaking/handling detection from filtered and raw windows."""
        threshold = self.calibration.shaking_variance_threshold
        filtered = np.array(self._validation)

        if len(filtered) >= 10:
            short_var = float(np.var(filtered[-5:]))
            medium_var = float(np.var(filtered[-10:]))
            if short_var > 1.2 * threshold and medium_var > 0.8 * threshold:
                return True

        if len(filtered) >= 3:
            slopes = np.sign(np.diff(filtered))
            slopes = slopes[slopes != 0]
            direction_changes = int(np.count_nonzero(slopes[1:] != slopes[:-1]))
            if direction_changes > self.config.max_direction_changes:
                return True

        if len(self._raw) >= 2:
            raw = np.array(self._raw)
            axis_variance = np.var(raw[:, :3], axis=0)
            if float(np.max(axis_variance)) > 2.0 * threshold:
                return True

            # Relaxed: total raw motion variance above the threshold
            if not self.is_calibrated and len(self._raw) >= 10:
                if float(np.sum(axis_variance)) > threshold:
                    return True

            gravity = self.dead_reckoning.config.gravity
            spike = float(np.max(np.abs(raw[-10:, 3] - gravity)))
            if spike > 2.0 * threshold:
                return True

        return False

    @staticmethod
    def _cadence_of(timestamps: List[float]) -> float:
        if len(timestamps) < 2:
            return 0.0
        span = timestamps[-1] - timestamps[0]
        if span <= 0:
            return 0.0
        return (len(timestamps) - 1) / span

    def _check_cadence(self, timestamp: float) -> bool:
        cutoff = timestamp - self.config.cadence_window_s
        if self._bout_start is not None:
            cutoff = max(cutoff, self._bout_start)
        times = [s.timestamp for s in self._steps if s.timestamp >= cutoff]
        times.append(timestamp)

        if len(times) < 3:
            return True

        cadence = self._cadence_of(times)
        return self.calibration.min_cadence_hz <= cadence <= self.calibration.max_cadence_hz

    def _check_magnitude(self, magnitude: float) -> bool:
        threshold = self.calibration.step_magnitude_threshold
        shaking_threshold = self.calibration.shaking_variance_threshold

        if self._walking_pattern:
            threshold *= 0.85

        recent = list(self._validation)[-10:]
        irregular = len(recent) >= 2 and float(np.var(recent)) > 0.6 * shaking_threshold
        if irregular:
            threshold *= 1.3

        excursion = magnitude - self._mean
        if excursion >= threshold:
            return True
        return not irregular and excursion >= self._std

    def gait_regularity(self, candidate_interval: Optional[float] = None) -> Optional[float]:
        """1 - coefficient of variation of step intervals (None with < 3 intervals)."""
        intervals = list(self._intervals)
        if candidate_interval is not None:
            intervals.append(candidate_interval)
        if len(intervals) < 3:
            return None

        mean_interval = float(np.mean(intervals))
        if mean_interval <= 0:
            return 0.0
        return 1.0 - float(np.std(intervals)) / mean_interval

    def gait_stability(self) -> float:
        """1 / (1 + var / 5) over the analysis window."""
        if len(self._window) < 2:
            return 1.0
        variance = float(np.var([v for _, v in self._window]))
        return 1.0 / (1.0 + variance / 5.0)

    def _check_gait(self, interval: Optional[float]) -> bool:
        min_regularity = (
            self.config.min_gait_regularity if self.is_calibrated
            else self.config.relaxed_min_gait_regularity
        )

        regularity = self.gait_regularity(interval)
        if regularity is not None and regularity <= min_regularity:
            return False

        return self.gait_stability() > self.config.min_gait_stability

    # ------------------------------------------------------------------
    # Walking pattern bookkeeping
    # ------------------------------------------------------------------

    def _accept_step(self, timestamp: float, magnitude: float, confidence: float) -> StepEvent:
        step = StepEvent(timestamp=timestamp, magnitude=max(0.0, magnitude), confidence=confidence)

        if self._interval_anchor is not None:
            interval = timestamp - self._interval_anchor
            if interval <= self.calibration.max_step_interval_s:
                self._intervals.append(interval)

        self._steps.append(step)
        self._last_step_time = timestamp
        self._interval_anchor = timestamp

        self._validated_steps += 1
        self._consecutive_steps += 1
        self._walking_confidence = 0.9 * self._walking_confidence + 0.1 * confidence

        while self._steps and timestamp - self._steps[0].timestamp > self.config.step_history_s:
            self._steps.popleft()

        cutoff = timestamp - self.config.cadence_window_s
        recent_steps = sum(1 for s in self._steps if s.timestamp >= cutoff)

        was_walking = self._walking_pattern
        self._walking_pattern = (
            recent_steps >= self.config.min_steps_for_pattern
            and self._walking_confidence > self.config.walking_confidence_threshold
        )
        if self._walking_pattern and not was_walking:
            logger.info(f"Walking pattern established at {timestamp:.2f}s")

        self.metrics.increment('steps_validated')
        self.metrics.record_histogram('step_confidence', confidence)

        logger.debug(
            f"Step {self._validated_steps} at {timestamp:.2f}s "
            f"(conf={confidence:.2f}, cadence={self.cadence_hz:.2f}Hz)"
        )
        return step

    def _reset_walking_pattern(self, timestamp: float):
        self._consecutive_steps = 0
        self._walking_confidence *= 0.5
        self._walking_pattern = False
        self._intervals.clear()
        self._bout_start = timestamp

    def _decay_idle_walking(self, now: float):
        if self._last_step_time is None:
            return
        if now - self._last_step_time > self.config.idle_timeout_s:
            if self._consecutive_steps or self._walking_pattern:
                logger.debug(f"No steps for {now - self._last_step_time:.1f}s, walking pattern lost")
            self._consecutive_steps = 0
            self._walking_confidence *= 0.8
            self._walking_pattern = False
            self._bout_start = now
