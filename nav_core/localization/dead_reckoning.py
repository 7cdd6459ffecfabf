"""
Dead Reckoning Integrator.

Integrates forward acceleration into a velocity, and velocity along the
current heading into a relative displacement. Long still periods zero the
velocity so drift does not accumulate while the person stands.

The displacement is relative to the first sample; the fusion coordinator
re-anchors it onto the fused position whenever a beacon fix is applied.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
import logging
import math
import numpy as np

from nav_core.proto.sensor_samples import AccelerometerSample
from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class DeadReckoningConfig:
    """
    Configuration for dead reckoning.

    Attributes:
        gravity: Gravity magnitude used for still detection (m/s²)
        still_threshold: Max | |a| - g | counted as still (m/s²)
        still_samples_to_stop: Consecutive still samples before velocity is zeroed
        acceleration_sensitivity: Gain on forward acceleration
        max_velocity: Velocity clamp (m/s)
        min_velocity: Below this speed no displacement is integrated (m/s)
        min_elapsed_s: Shorter sample gaps are discarded (s)
        max_elapsed_s: Longer sample gaps are discarded (s)
    """

    gravity: float = 9.81
    still_threshold: float = 0.5
    still_samples_to_stop: int = 10
    acceleration_sensitivity: float = 0.8
    max_velocity: float = 2.0
    min_velocity: float = 0.01
    min_elapsed_s: float = 0.01
    max_elapsed_s: float = 1.0


class DeadReckoningIntegrator:
    """
    Velocity/heading integrator for relative displacement.

    Usage:
        dr = DeadReckoningIntegrator()
        for sample in samples:
            dr.process_sample(sample, heading.heading_rad)
        print(dr.position, dr.distance)
    """

    def __init__(self, config: Optional[DeadReckoningConfig] = None):
        self.config = config or DeadReckoningConfig()
        self.metrics = get_metrics()

        self._last_timestamp: Optional[float] = None
        self._velocity = 0.0
        self._still_count = 0
        self._x = 0.0
        self._y = 0.0

    @property
    def velocity(self) -> float:
        return self._velocity

    @property
    def position(self) -> Tuple[float, float]:
        return (self._x, self._y)

    @property
    def distance(self) -> float:
        """Straight-line distance from the starting point (m)."""
        return math.hypot(self._x, self._y)

    @property
    def is_still(self) -> bool:
        return self._still_count > self.config.still_samples_to_stop

    def process_sample(self, sample: AccelerometerSample, heading_rad: float) -> bool:
        """
        Integrate one accelerometer sample.

        Args:
            sample: Raw accelerometer sample
            heading_rad: Current heading (rad)

        Returns:
            True if the sample was integrated, False if it only initialized
            the clock or was discarded
        """
        if self._last_timestamp is None:
            self._last_timestamp = sample.timestamp
            return False

        elapsed = sample.timestamp - self._last_timestamp

        if elapsed <= self.config.min_elapsed_s or elapsed > self.config.max_elapsed_s:
            # Too-close samples keep the old anchor; gaps re-anchor on the new one
            if elapsed > self.config.max_elapsed_s:
                self._last_timestamp = sample.timestamp
            self.metrics.increment_drop('invalid_sample')
            return False

        self._last_timestamp = sample.timestamp

        if abs(sample.magnitude - self.config.gravity) < self.config.still_threshold:
            self._still_count += 1
        else:
            self._still_count = 0

        if self.is_still:
            self._velocity = 0.0
        else:
            self._velocity += self.config.acceleration_sensitivity * sample.x * elapsed

        self._velocity = float(np.clip(
            self._velocity, -self.config.max_velocity, self.config.max_velocity
        ))

        if abs(self._velocity) > self.config.min_velocity:
            self._x += self._velocity * math.cos(heading_rad) * elapsed
            self._y += self._velocity * math.sin(heading_rad) * elapsed

        return True

    def reset(self):
        """Zero velocity and displacement; the next sample restarts the clock."""
        self._last_timestamp = None
        self._velocity = 0.0
        self._still_count = 0
        self._x = 0.0
        self._y = 0.0
        logger.debug("Dead reckoning reset")
