"""
Simulation Module: Synthetic sensor and beacon streams.

Used by the demo runner and the test suite; no platform access required.
"""

from .synthetic import (
    GRAVITY,
    generate_walking_samples,
    generate_shaking_samples,
    generate_still_samples,
    rssi_for_distance,
    simulate_beacon_detections,
    walk_position,
)

__all__ = [
    'GRAVITY',
    'generate_walking_samples',
    'generate_shaking_samples',
    'generate_still_samples',
    'rssi_for_distance',
    'simulate_beacon_detections',
    'walk_position',
]
