"""
Protocol Module: In-process data contracts.

- Sensor samples consumed at the core boundary
- Beacon registry entries, observations and fixes
- Step events and step/distance metrics
- Calibration profile
- Fused position output
"""

from .sensor_samples import (
    AccelerometerSample,
    HeadingSample,
    GyroSample,
    BeaconDetection,
)
from .beacon import (
    KnownBeacon,
    ObservedBeacon,
    BeaconFix,
)
from .step_event import (
    StepEvent,
    StepMetrics,
    compute_total_distance,
)
from .calibration import CalibrationProfile
from .position_estimate import (
    FusedPosition,
    FixSource,
    create_unavailable,
)

__all__ = [
    # Sensor samples
    'AccelerometerSample',
    'HeadingSample',
    'GyroSample',
    'BeaconDetection',
    # Beacons
    'KnownBeacon',
    'ObservedBeacon',
    'BeaconFix',
    # Steps
    'StepEvent',
    'StepMetrics',
    'compute_total_distance',
    # Calibration
    'CalibrationProfile',
    # Output
    'FusedPosition',
    'FixSource',
    'create_unavailable',
]
