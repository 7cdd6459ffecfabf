"""
Heading Estimator.

Smooths raw compass headings into a stable travel direction. Blending follows
the signed shortest-path difference so the estimate never swings through the
opposite direction when the compass crosses north (350° -> 10°).

Heading is kept in radians in [0, 2π).
"""

from typing import Optional
from dataclasses import dataclass
import logging
import math

from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def normalize_angle(angle_rad: float) -> float:
    """Wrap an angle into [0, 2π)."""
    wrapped = math.fmod(angle_rad, TWO_PI)
    if wrapped < 0:
        wrapped += TWO_PI
    # fmod of a tiny negative value can round up to exactly 2π
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def shortest_angle_diff(target_rad: float, current_rad: float) -> float:
    """Signed difference target - current, wrapped into [-π, π]."""
    diff = target_rad - current_rad
    if diff > math.pi:
        diff -= TWO_PI
    elif diff < -math.pi:
        diff += TWO_PI
    return diff


@dataclass
class HeadingEstimatorConfig:
    """
    Configuration for heading smoothing.

    Attributes:
        smoothing_factor: Weight of the previous heading (0.9 = heavy smoothing)
        max_gyro_dt_s: Longest gyro integration step accepted (s)
    """

    smoothing_factor: float = 0.9
    max_gyro_dt_s: float = 1.0


class HeadingEstimator:
    """
    Exponential heading smoother with angle wrap-around.

    Usage:
        heading = HeadingEstimator()
        heading.update(350.0)
        heading.update(10.0)     # moves ~2° clockwise, not through 180°
        print(heading.heading_deg)
    """

    def __init__(self, config: Optional[HeadingEstimatorConfig] = None):
        self.config = config or HeadingEstimatorConfig()
        self.metrics = get_metrics()

        if not 0.0 <= self.config.smoothing_factor < 1.0:
            raise ValueError(
                f"Smoothing factor must be in [0, 1): {self.config.smoothing_factor}"
            )

        self._heading = 0.0
        self._initialized = False

    @property
    def heading_rad(self) -> float:
        return self._heading

    @property
    def heading_deg(self) -> float:
        return math.degrees(self._heading)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def update(self, raw_heading_deg: Optional[float]) -> float:
        """
        Blend a raw compass heading into the estimate.

        Args:
            raw_heading_deg: Compass heading in degrees, or None if unavailable

        Returns:
            Current smoothed heading in radians
        """
        self.metrics.increment('heading_samples')

        if raw_heading_deg is None or not math.isfinite(raw_heading_deg):
            return self._heading

        raw_rad = normalize_angle(math.radians(raw_heading_deg))

        if not self._initialized:
            self._heading = raw_rad
            self._initialized = True
            logger.debug(f"Heading initialized at {raw_heading_deg:.1f}°")
            return self._heading

        diff = shortest_angle_diff(raw_rad, self._heading)
        self._heading = normalize_angle(
            self._heading + (1.0 - self.config.smoothing_factor) * diff
        )
        return self._heading

    def update_gyro(self, yaw_rate_rad_s: float, dt: float) -> float:
        """
        Integrate a gyroscope yaw rate into the heading.

        Args:
            yaw_rate_rad_s: Angular rate about the vertical axis (rad/s)
            dt: Integration step (s), in (0, max_gyro_dt_s]

        Returns:
            Current heading in radians
        """
        if not math.isfinite(yaw_rate_rad_s) or dt is None or not math.isfinite(dt):
            self.metrics.increment_drop('invalid_sample')
            return self._heading

        if dt <= 0 or dt > self.config.max_gyro_dt_s:
            logger.debug(f"Ignoring gyro sample with dt={dt:.3f}s")
            self.metrics.increment_drop('invalid_dt')
            return self._heading

        self._heading = normalize_angle(self._heading + yaw_rate_rad_s * dt)
        return self._heading

    def reset(self):
        """Forget the current heading; the next sample re-initializes it."""
        self._heading = 0.0
        self._initialized = False
