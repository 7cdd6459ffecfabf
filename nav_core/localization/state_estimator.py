"""
State Estimator (Constant-Velocity Kalman Filter).

Maintains the fused belief over a person's 2D position and velocity.

State: [x, y, vx, vy]
Measurement: [x, y] (position only)

The belief is mutated only through predict(), update() and reset(). All
degenerate cases (bad dt, singular innovation covariance, non-finite inputs)
are no-ops that leave the prior belief intact.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
import logging
import math
import numpy as np

from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)

# Below this |det S| the innovation covariance is treated as singular
SINGULAR_DET_EPS = 1e-10


@dataclass
class StateEstimatorConfig:
    """
    Configuration for the state estimator.

    Attributes:
        process_noise: Process noise scalar q (acceleration noise intensity)
        measurement_noise: Default measurement noise variance (m²)
        initial_variance: Diagonal covariance after reset (high uncertainty)
        default_dt_s: Time step used when predict() is called without dt
        max_dt_s: Larger time steps are clamped to this value
    """

    process_noise: float = 0.1
    measurement_noise: float = 1.0
    initial_variance: float = 10.0
    default_dt_s: float = 1.0
    max_dt_s: float = 1.0


class StateEstimator:
    """
    Constant-velocity Kalman filter for fused position tracking.

    Usage:
        estimator = StateEstimator()
        estimator.reset(0.0, 0.0)

        estimator.predict(1.0)
        estimator.update(2.5, 1.0, measurement_noise=0.8)

        x, y = estimator.get_position()
        x_std, y_std = estimator.get_position_uncertainty()

    Not thread-safe: callers serialize access (see PositionFusionCoordinator).
    """

    def __init__(
        self,
        config: Optional[StateEstimatorConfig] = None,
        initial_x: float = 0.0,
        initial_y: float = 0.0,
    ):
        """
        Initialize state estimator.

        Args:
            config: Estimator configuration (uses defaults if None)
            initial_x: Initial X position (m)
            initial_y: Initial Y position (m)
        """
        self.config = config or StateEstimatorConfig()
        self.metrics = get_metrics()

        # Measurement matrix: observe position only
        self._H = np.array([
            [1.0, 0.0, 0.0, 0.0],
            [0.0, 1.0, 0.0, 0.0],
        ])

        self._dt = self.config.default_dt_s
        self._F = self._transition_matrix(self._dt)
        self._Q = self._process_noise_matrix(self._dt)

        self._state = np.zeros(4)
        self._covariance = np.eye(4)
        self.reset(initial_x, initial_y)

    # ------------------------------------------------------------------
    # Model matrices
    # ------------------------------------------------------------------

    @staticmethod
    def _transition_matrix(dt: float) -> np.ndarray:
        """State transition matrix: position += velocity * dt."""
        return np.array([
            [1.0, 0.0, dt, 0.0],
            [0.0, 1.0, 0.0, dt],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])

    def _process_noise_matrix(self, dt: float) -> np.ndarray:
        """Process noise driven by a single scalar q."""
        q = self.config.process_noise
        return np.array([
            [q * dt * dt / 4, 0.0, q * dt / 2, 0.0],
            [0.0, q * dt * dt / 4, 0.0, q * dt / 2],
            [q * dt / 2, 0.0, q, 0.0],
            [0.0, q * dt / 2, 0.0, q],
        ])

    def _validate_dt(self, dt: float) -> Optional[float]:
        """Return a usable dt (clamped to max_dt_s), or None if invalid."""
        if dt is None or not math.isfinite(dt) or dt <= 0:
            return None
        if dt > self.config.max_dt_s:
            logger.debug(f"Clamping dt={dt:.3f}s to {self.config.max_dt_s}s")
            return self.config.max_dt_s
        return float(dt)

    # ------------------------------------------------------------------
    # Filter operations
    # ------------------------------------------------------------------

    def set_time_step(self, dt: float) -> bool:
        """
        Update the cached transition and process-noise matrices.

        Args:
            dt: Time step in seconds, in (0, max_dt_s]; larger values clamped

        Returns:
            True if the cached matrices were updated
        """
        valid_dt = self._validate_dt(dt)
        if valid_dt is None:
            logger.debug(f"Rejected time step dt={dt}")
            self.metrics.increment_drop('invalid_dt')
            return False

        self._dt = valid_dt
        self._F = self._transition_matrix(valid_dt)
        self._Q = self._process_noise_matrix(valid_dt)
        return True

    def predict(self, dt: Optional[float] = None) -> bool:
        """
        Advance the belief by dt seconds.

        Args:
            dt: Time step in seconds; None uses the cached time step

        Returns:
            True if the prediction was applied, False if dt was invalid
        """
        if dt is None:
            F, Q = self._F, self._Q
        else:
            valid_dt = self._validate_dt(dt)
            if valid_dt is None:
                logger.debug(f"Rejected predict with dt={dt}")
                self.metrics.increment_drop('invalid_dt')
                return False
            if valid_dt == self._dt:
                F, Q = self._F, self._Q
            else:
                F = self._transition_matrix(valid_dt)
                Q = self._process_noise_matrix(valid_dt)

        self._state = F @ self._state
        self._covariance = F @ self._covariance @ F.T + Q
        self._condition_covariance()

        self.metrics.increment('estimator_predicts')
        return True

    def update(self, x: float, y: float, measurement_noise: Optional[float] = None) -> bool:
        """
        Correct the belief with a position observation.

        Args:
            x: Observed X position (m)
            y: Observed Y position (m)
            measurement_noise: Measurement noise variance for this call (m²);
                defaults to config.measurement_noise

        Returns:
            True if the correction was applied, False if it was skipped
        """
        noise = self.config.measurement_noise if measurement_noise is None else measurement_noise

        if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(noise)) or noise < 0:
            logger.debug(f"Rejected observation ({x}, {y}) with noise {noise}")
            self.metrics.increment_drop('invalid_sample')
            return False

        H = self._H
        R = np.eye(2) * noise

        z = np.array([x, y])
        innovation = z - H @ self._state
        S = H @ self._covariance @ H.T + R

        det = S[0, 0] * S[1, 1] - S[0, 1] * S[1, 0]
        if not math.isfinite(det) or abs(det) < SINGULAR_DET_EPS:
            logger.debug(f"Innovation covariance singular (det={det:.3e}), skipping update")
            self.metrics.increment_drop('singular_innovation')
            return False

        S_inv = np.array([
            [S[1, 1], -S[0, 1]],
            [-S[1, 0], S[0, 0]],
        ]) / det

        K = self._covariance @ H.T @ S_inv

        self._state = self._state + K @ innovation

        # Joseph form keeps the covariance symmetric positive semi-definite
        I_KH = np.eye(4) - K @ H
        self._covariance = I_KH @ self._covariance @ I_KH.T + K @ R @ K.T
        self._condition_covariance()

        innovation_m = float(np.linalg.norm(innovation))
        self.metrics.increment('estimator_updates')
        self.metrics.record_histogram('innovation_m', innovation_m)

        return True

    def reset(self, x: float, y: float):
        """
        Reinitialize the belief at (x, y) with zero velocity and high uncertainty.
        """
        self._state = np.array([float(x), float(y), 0.0, 0.0])
        self._covariance = np.eye(4) * self.config.initial_variance
        logger.info(f"State estimator reset to ({x:.2f}, {y:.2f})")

    def _condition_covariance(self):
        """Re-symmetrize and clamp negative diagonal drift to zero."""
        P = 0.5 * (self._covariance + self._covariance.T)
        diag = np.clip(np.diag(P), 0.0, None)
        np.fill_diagonal(P, diag)
        self._covariance = P

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def time_step(self) -> float:
        return self._dt

    def get_position(self) -> Tuple[float, float]:
        """Current (x, y) estimate in meters."""
        return (float(self._state[0]), float(self._state[1]))

    def get_velocity(self) -> Tuple[float, float]:
        """Current (vx, vy) estimate in m/s."""
        return (float(self._state[2]), float(self._state[3]))

    def get_position_uncertainty(self) -> Tuple[float, float]:
        """Position standard deviations (x_std, y_std) in meters."""
        return (
            math.sqrt(max(0.0, float(self._covariance[0, 0]))),
            math.sqrt(max(0.0, float(self._covariance[1, 1]))),
        )

    def get_velocity_uncertainty(self) -> Tuple[float, float]:
        """Velocity standard deviations (vx_std, vy_std) in m/s."""
        return (
            math.sqrt(max(0.0, float(self._covariance[2, 2]))),
            math.sqrt(max(0.0, float(self._covariance[3, 3]))),
        )

    def get_position_accuracy(self) -> float:
        """Uncertainty radius √(σx² + σy²) in meters."""
        x_std, y_std = self.get_position_uncertainty()
        return math.sqrt(x_std * x_std + y_std * y_std)

    def get_state(self) -> np.ndarray:
        """Copy of the state vector [x, y, vx, vy]."""
        return self._state.copy()

    def get_covariance(self) -> np.ndarray:
        """Copy of the 4x4 covariance matrix."""
        return self._covariance.copy()
