"""
Step Event and Step Metrics Schemas.

StepEvent is created by the step detection pipeline on each accepted step.
StepMetrics is the step/distance summary exposed to consumers.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StepEvent:
    """
    Accepted step.

    Attributes:
        timestamp: Time of the step (s)
        magnitude: Filtered acceleration magnitude at detection (m/s²)
        confidence: Step confidence score in [0, 1]
    """

    timestamp: float
    magnitude: float
    confidence: float

    def __post_init__(self):
        """Validate step event."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Step confidence must be in [0,1]: {self.confidence}")

        if self.magnitude < 0:
            raise ValueError(f"Magnitude cannot be negative: {self.magnitude}")


@dataclass(frozen=True)
class StepMetrics:
    """
    Step and distance metrics.

    Attributes:
        validated_steps: Steps accepted by validation
        rejected_steps: Step candidates filtered out
        cadence_hz: Current cadence over recent steps (steps/s)
        dead_reckoned_distance_m: Distance from inertial dead reckoning (m)
        step_length_m: Configured step length (m)
        total_distance_m: max(validated_steps * step_length, dead-reckoned distance)
    """

    validated_steps: int
    rejected_steps: int
    cadence_hz: float
    dead_reckoned_distance_m: float
    step_length_m: float
    total_distance_m: float

    @property
    def step_based_distance_m(self) -> float:
        return self.validated_steps * self.step_length_m

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'validated_steps': self.validated_steps,
            'rejected_steps': self.rejected_steps,
            'cadence_hz': self.cadence_hz,
            'dead_reckoned_distance_m': self.dead_reckoned_distance_m,
            'step_length_m': self.step_length_m,
            'total_distance_m': self.total_distance_m,
        }


def compute_total_distance(validated_steps: int, step_length_m: float,
                           dead_reckoned_distance_m: float) -> float:
    """
    Total traveled distance: the larger of the step-based and dead-reckoned
    estimates, since either alone may under-count.
    """
    return max(validated_steps * step_length_m, dead_reckoned_distance_m)
