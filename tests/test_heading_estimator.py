"""
Unit tests for the heading estimator.

Tests cover:
- First-sample initialization and smoothing
- Wrap-around across north (350° -> 10°)
- Missing compass samples
- Gyroscope integration
"""

import math

import pytest

from nav_core.localization import (
    HeadingEstimator,
    HeadingEstimatorConfig,
    normalize_angle,
    shortest_angle_diff,
)
from nav_core.metrics import get_metrics


class TestAngleHelpers:
    """Tests for angle wrapping helpers."""

    @pytest.mark.parametrize("angle,expected", [
        (0.0, 0.0),
        (2 * math.pi, 0.0),
        (-math.pi / 2, 3 * math.pi / 2),
        (5 * math.pi, math.pi),
    ])
    def test_normalize(self, angle, expected):
        assert abs(normalize_angle(angle) - expected) < 1e-9

    def test_normalize_range(self):
        for k in range(-50, 50):
            value = normalize_angle(k * 0.37)
            assert 0.0 <= value < 2 * math.pi

    def test_shortest_diff_across_north(self):
        diff = shortest_angle_diff(math.radians(10.0), math.radians(350.0))
        assert abs(diff - math.radians(20.0)) < 1e-9

        diff = shortest_angle_diff(math.radians(350.0), math.radians(10.0))
        assert abs(diff + math.radians(20.0)) < 1e-9


class TestHeadingEstimator:
    """Tests for compass smoothing."""

    def test_first_sample_initializes(self):
        heading = HeadingEstimator()
        assert not heading.is_initialized

        heading.update(90.0)

        assert heading.is_initialized
        assert abs(heading.heading_deg - 90.0) < 1e-9

    def test_smoothing_blends_difference(self):
        """Test h <- h + 0.1 * diff with the default factor."""
        heading = HeadingEstimator()
        heading.update(0.0)
        heading.update(90.0)

        assert abs(heading.heading_deg - 9.0) < 1e-9

    def test_wrap_350_to_10(self):
        """Test crossing north never swings toward 180°."""
        heading = HeadingEstimator()
        heading.update(350.0)

        for _ in range(50):
            heading.update(10.0)
            deg = heading.heading_deg
            assert deg >= 350.0 - 1e-9 or deg <= 10.0 + 1e-9

        assert abs(shortest_angle_diff(heading.heading_rad, math.radians(10.0))) < math.radians(1.0)

    def test_single_step_across_north(self):
        heading = HeadingEstimator()
        heading.update(350.0)
        heading.update(10.0)

        assert abs(heading.heading_deg - 352.0) < 1e-9

    @pytest.mark.parametrize("raw", [None, float('nan'), float('inf')])
    def test_missing_sample_ignored(self, raw):
        heading = HeadingEstimator()
        heading.update(45.0)

        result = heading.update(raw)

        assert abs(math.degrees(result) - 45.0) < 1e-9
        assert abs(heading.heading_deg - 45.0) < 1e-9

    def test_none_before_initialization(self):
        heading = HeadingEstimator()
        heading.update(None)
        assert not heading.is_initialized

    def test_output_always_normalized(self):
        heading = HeadingEstimator(HeadingEstimatorConfig(smoothing_factor=0.5))
        for raw in [359.0, 1.0, 358.0, 2.0, 720.0, -30.0]:
            value = heading.update(raw)
            assert 0.0 <= value < 2 * math.pi

    def test_invalid_smoothing_factor(self):
        with pytest.raises(ValueError):
            HeadingEstimator(HeadingEstimatorConfig(smoothing_factor=1.0))

    def test_reset(self):
        heading = HeadingEstimator()
        heading.update(120.0)
        heading.reset()

        assert not heading.is_initialized
        heading.update(30.0)
        assert abs(heading.heading_deg - 30.0) < 1e-9


class TestGyroIntegration:
    """Tests for yaw-rate integration."""

    def test_integrates_rate(self):
        heading = HeadingEstimator()
        heading.update(0.0)

        for _ in range(10):
            heading.update_gyro(math.pi / 2, 0.1)

        assert abs(heading.heading_rad - math.pi / 2) < 1e-9

    def test_negative_rate_wraps(self):
        heading = HeadingEstimator()
        heading.update(0.0)

        heading.update_gyro(-0.5, 0.2)

        assert abs(heading.heading_rad - (2 * math.pi - 0.1)) < 1e-9

    @pytest.mark.parametrize("dt", [0.0, -0.1, 1.5])
    def test_invalid_dt_ignored(self, dt):
        heading = HeadingEstimator()
        heading.update(45.0)

        heading.update_gyro(1.0, dt)

        assert abs(heading.heading_deg - 45.0) < 1e-9
        assert get_metrics().get_drop_count('invalid_dt') == 1
