"""
Calibration Profile Schema.

A CalibrationProfile is produced once by an external calibration procedure
(still / shaking / walking recordings) and passed as read-only configuration
into the step detection pipeline. Without a profile the pipeline runs in
relaxed mode using CalibrationProfile.relaxed().
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CalibrationProfile:
    """
    Step detection thresholds.

    Attributes:
        still_threshold: Max deviation of |a| from gravity treated as still (m/s²)
        shaking_variance_threshold: Variance of filtered magnitude above which
            motion is considered shaking ((m/s²)²)
        step_magnitude_threshold: Minimum excursion of the filtered magnitude
            above its rolling mean for a step (m/s²)
        min_cadence_hz: Lowest plausible walking cadence (steps/s)
        max_cadence_hz: Highest plausible walking cadence (steps/s)
        min_step_interval_s: Shortest accepted time between steps (s)
        max_step_interval_s: Longest accepted time between steps (s)
        is_calibrated: False for the relaxed default profile
    """

    still_threshold: float = 0.5
    shaking_variance_threshold: float = 5.0
    step_magnitude_threshold: float = 1.5
    min_cadence_hz: float = 0.5
    max_cadence_hz: float = 3.0
    min_step_interval_s: float = 0.3
    max_step_interval_s: float = 2.0
    is_calibrated: bool = True

    def __post_init__(self):
        """Validate threshold ranges."""
        if self.still_threshold <= 0:
            raise ValueError(f"Still threshold must be positive: {self.still_threshold}")

        if self.shaking_variance_threshold <= 0:
            raise ValueError(
                f"Shaking variance threshold must be positive: {self.shaking_variance_threshold}"
            )

        if self.step_magnitude_threshold < 0:
            raise ValueError(
                f"Step magnitude threshold cannot be negative: {self.step_magnitude_threshold}"
            )

        if not 0 < self.min_cadence_hz <= self.max_cadence_hz:
            raise ValueError(
                f"Invalid cadence range: {self.min_cadence_hz}-{self.max_cadence_hz} Hz"
            )

        if not 0 < self.min_step_interval_s <= self.max_step_interval_s:
            raise ValueError(
                f"Invalid step interval range: "
                f"{self.min_step_interval_s}-{self.max_step_interval_s} s"
            )

    @classmethod
    def relaxed(cls) -> 'CalibrationProfile':
        """Wide, lenient thresholds used when no calibration is available."""
        return cls(
            still_threshold=0.2,
            shaking_variance_threshold=15.0,
            step_magnitude_threshold=0.5,
            min_cadence_hz=0.3,
            max_cadence_hz=5.0,
            min_step_interval_s=0.1,
            max_step_interval_s=5.0,
            is_calibrated=False,
        )

    def to_dict(self) -> dict:
        return {
            'still_threshold': self.still_threshold,
            'shaking_variance_threshold': self.shaking_variance_threshold,
            'step_magnitude_threshold': self.step_magnitude_threshold,
            'min_cadence_hz': self.min_cadence_hz,
            'max_cadence_hz': self.max_cadence_hz,
            'min_step_interval_s': self.min_step_interval_s,
            'max_step_interval_s': self.max_step_interval_s,
            'is_calibrated': self.is_calibrated,
        }
