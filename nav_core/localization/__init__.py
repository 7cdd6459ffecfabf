"""
Localization Module: Belief estimation and sensor fusion.

Key classes:
- StateEstimator: Constant-velocity Kalman filter over [x, y, vx, vy]
- BeaconPositioningEngine: RSSI ranging, beacon expiry, trilateration
- HeadingEstimator: Wrap-aware compass smoothing and gyro integration
- StepDetectionPipeline: Filtered accelerometer step detection and validation
- DeadReckoningIntegrator: Velocity/heading displacement integration
- PositionFusionCoordinator: Single owner of the belief, positioning cycle
"""

from .state_estimator import (
    StateEstimator,
    StateEstimatorConfig,
)
from .beacon_positioning import (
    BeaconPositioningEngine,
    BeaconPositioningConfig,
)
from .heading_estimator import (
    HeadingEstimator,
    HeadingEstimatorConfig,
    normalize_angle,
    shortest_angle_diff,
)
from .dead_reckoning import (
    DeadReckoningIntegrator,
    DeadReckoningConfig,
)
from .step_detection import (
    StepDetectionPipeline,
    StepDetectionConfig,
    StepDetectorState,
)
from .position_fusion import (
    PositionFusionCoordinator,
    FusionConfig,
)

__all__ = [
    # Belief
    'StateEstimator',
    'StateEstimatorConfig',
    # Beacons
    'BeaconPositioningEngine',
    'BeaconPositioningConfig',
    # Heading
    'HeadingEstimator',
    'HeadingEstimatorConfig',
    'normalize_angle',
    'shortest_angle_diff',
    # Steps and dead reckoning
    'DeadReckoningIntegrator',
    'DeadReckoningConfig',
    'StepDetectionPipeline',
    'StepDetectionConfig',
    'StepDetectorState',
    # Fusion
    'PositionFusionCoordinator',
    'FusionConfig',
]
