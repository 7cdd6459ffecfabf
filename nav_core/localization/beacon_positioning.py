"""
Beacon Positioning Engine (RSSI Ranging + 3-Beacon Trilateration).

Converts radio beacon detections into a position estimate:
- RSSI -> distance via a log-distance path-loss model
- Per-beacon bookkeeping of the latest observation
- Time-based expiry of beacons that stopped reporting
- Closed-form trilateration from the 3 closest beacons
- Heuristic accuracy score from distance, signal strength and beacon count

Fewer than 3 usable beacons or collinear geometry is a normal
"no position this cycle" outcome, never an error.
"""

from typing import Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass
import logging
import math
import numpy as np

from nav_core.proto.beacon import KnownBeacon, ObservedBeacon, BeaconFix
from nav_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class BeaconPositioningConfig:
    """
    Configuration for beacon positioning.

    Attributes:
        reference_rssi_1m: Expected RSSI at 1 m (dBm)
        path_loss_exponent: Path-loss exponent n (2.0 = free space)
        min_distance_m: Lower clamp for derived distances (m)
        max_distance_m: Upper clamp for derived distances (m)
        max_solve_distance_m: Beacons farther than this are not used to solve (m)
        beacon_timeout_s: Beacons not seen for this long are pruned (s)
        min_beacons: Minimum beacons required for a solve
        singular_det_eps: Determinant below which geometry is degenerate
    """

    reference_rssi_1m: float = -59.0
    path_loss_exponent: float = 2.0
    min_distance_m: float = 0.1
    max_distance_m: float = 100.0
    max_solve_distance_m: float = 50.0
    beacon_timeout_s: float = 10.0
    min_beacons: int = 3
    singular_det_eps: float = 1e-10


class BeaconPositioningEngine:
    """
    Track beacon observations and solve position by trilateration.

    Usage:
        engine = BeaconPositioningEngine(known_beacons)

        # On each radio detection
        engine.record_observation("beacon_001", -68.0, t_now)

        # Once per positioning cycle
        fix = engine.compute_fix(t_now)
        if fix is not None:
            print(f"Beacon fix: ({fix.x:.2f}, {fix.y:.2f}) ±{fix.accuracy:.1f}m")

    Not thread-safe: callers serialize access.
    """

    def __init__(
        self,
        known_beacons: Iterable[KnownBeacon],
        config: Optional[BeaconPositioningConfig] = None,
    ):
        """
        Initialize positioning engine.

        Args:
            known_beacons: Registry of beacons with fixed positions
            config: Engine configuration (uses defaults if None)
        """
        self.config = config or BeaconPositioningConfig()
        self.metrics = get_metrics()

        self._known: Dict[str, KnownBeacon] = {b.id: b for b in known_beacons}

        # Active observations used for solving, keyed by beacon id
        self._active: Dict[str, ObservedBeacon] = {}

        # Last observation of every beacon ever seen (pruning never deletes here)
        self._history: Dict[str, ObservedBeacon] = {}

        logger.info(f"BeaconPositioningEngine initialized with {len(self._known)} known beacons")

    # ------------------------------------------------------------------
    # Ranging
    # ------------------------------------------------------------------

    def distance_from_signal(self, rssi: float) -> float:
        """
        Convert signal strength to distance with the log-distance model.

        distance = 10 ^ ((rssi_1m - rssi) / (10 * n))

        Args:
            rssi: Received signal strength (dBm)

        Returns:
            Distance in meters clamped to [min_distance_m, max_distance_m],
            or 0.0 for a non-negative rssi (invalid reading)
        """
        if rssi >= 0:
            return 0.0

        exponent = (self.config.reference_rssi_1m - rssi) / (10.0 * self.config.path_loss_exponent)
        # Cap the exponent so very weak signals clamp instead of overflowing
        distance = 10.0 ** min(exponent, 6.0)

        return float(np.clip(distance, self.config.min_distance_m, self.config.max_distance_m))

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def find_known_beacon(self, identifier: str) -> Optional[KnownBeacon]:
        """
        Look up a registry entry by exact id, then by id/name containment.
        """
        if not identifier:
            return None

        beacon = self._known.get(identifier)
        if beacon is not None:
            return beacon

        for candidate in self._known.values():
            if candidate.matches(identifier):
                return candidate
        return None

    def record_observation(
        self,
        identifier: str,
        rssi: float,
        timestamp: float,
    ) -> Optional[ObservedBeacon]:
        """
        Store the latest observation of a known beacon.

        Args:
            identifier: Detected beacon address or name
            rssi: Signal strength (dBm)
            timestamp: Detection time (s)

        Returns:
            The stored ObservedBeacon, or None if the detection was dropped
        """
        self.metrics.increment('beacon_detections')

        if rssi is None or not math.isfinite(rssi) or not math.isfinite(timestamp):
            self.metrics.increment_drop('invalid_sample')
            return None

        known = self.find_known_beacon(identifier)
        if known is None:
            logger.debug(f"Ignoring detection from unknown beacon '{identifier}'")
            self.metrics.increment_drop('unknown_beacon')
            return None

        observed = ObservedBeacon(
            id=known.id,
            name=known.name,
            x=known.x,
            y=known.y,
            rssi=float(rssi),
            distance=self.distance_from_signal(rssi),
            last_seen=timestamp,
        )

        self._active[known.id] = observed
        self._history[known.id] = observed

        logger.debug(f"Beacon {known.id}: rssi={rssi:.1f}dBm, distance={observed.distance:.2f}m")
        return observed

    def prune_stale(self, now: float, timeout_s: Optional[float] = None) -> List[str]:
        """
        Remove beacons not seen within the timeout from the active set.

        Args:
            now: Current time (s)
            timeout_s: Expiry timeout (defaults to config.beacon_timeout_s)

        Returns:
            IDs of pruned beacons
        """
        timeout = self.config.beacon_timeout_s if timeout_s is None else timeout_s

        stale_ids = [
            beacon_id for beacon_id, beacon in self._active.items()
            if beacon.is_stale(now, timeout)
        ]

        for beacon_id in stale_ids:
            del self._active[beacon_id]
            self.metrics.increment_drop('stale_beacon')
            logger.debug(f"Pruned stale beacon {beacon_id}")

        return stale_ids

    def get_active_beacons(self) -> List[ObservedBeacon]:
        """Active (non-expired) beacons sorted by ascending distance."""
        return sorted(self._active.values(), key=lambda b: b.distance)

    def get_valid_beacons(
        self,
        beacons: Optional[Iterable[ObservedBeacon]] = None,
    ) -> List[ObservedBeacon]:
        """
        Beacons usable for solving: distance strictly within
        (min_distance_m, max_solve_distance_m), sorted by ascending distance.
        """
        if beacons is None:
            beacons = self._active.values()

        valid = [
            b for b in beacons
            if self.config.min_distance_m < b.distance < self.config.max_solve_distance_m
        ]
        return sorted(valid, key=lambda b: b.distance)

    def get_beacon_history(self) -> Dict[str, ObservedBeacon]:
        """Last observation of every beacon ever seen, including expired ones."""
        return dict(self._history)

    # ------------------------------------------------------------------
    # Solving
    # ------------------------------------------------------------------

    def solve_position(
        self,
        active_beacons: Optional[Iterable[ObservedBeacon]] = None,
    ) -> Optional[Tuple[float, float]]:
        """
        Trilaterate from the 3 closest valid beacons.

        Subtracting circle equations pairwise (1-2, 2-3) gives a linear system:
            2(x2-x1) x + 2(y2-y1) y = r1² - r2² - x1² + x2² - y1² + y2²
            2(x3-x2) x + 2(y3-y2) y = r2² - r3² - x2² + x3² - y2² + y3²

        Args:
            active_beacons: Beacons to solve from (defaults to the active set)

        Returns:
            (x, y), or None for insufficient beacons / degenerate geometry
        """
        valid = self.get_valid_beacons(active_beacons)

        if len(valid) < self.config.min_beacons:
            logger.debug(f"Insufficient beacons for trilateration: {len(valid)}")
            self.metrics.increment_drop('insufficient_beacons')
            return None

        b1, b2, b3 = valid[:3]

        A = np.array([
            [2.0 * (b2.x - b1.x), 2.0 * (b2.y - b1.y)],
            [2.0 * (b3.x - b2.x), 2.0 * (b3.y - b2.y)],
        ])
        b = np.array([
            b1.distance ** 2 - b2.distance ** 2 - b1.x ** 2 + b2.x ** 2 - b1.y ** 2 + b2.y ** 2,
            b2.distance ** 2 - b3.distance ** 2 - b2.x ** 2 + b3.x ** 2 - b2.y ** 2 + b3.y ** 2,
        ])

        det = A[0, 0] * A[1, 1] - A[0, 1] * A[1, 0]
        if abs(det) < self.config.singular_det_eps:
            logger.debug(f"Degenerate beacon geometry ({b1.id}, {b2.id}, {b3.id})")
            self.metrics.increment_drop('degenerate_geometry')
            return None

        x = (b[0] * A[1, 1] - A[0, 1] * b[1]) / det
        y = (A[0, 0] * b[1] - b[0] * A[1, 0]) / det

        return (float(x), float(y))

    def estimate_accuracy(self, beacons: Iterable[ObservedBeacon]) -> float:
        """
        Heuristic uncertainty radius for a solve (lower is better).

        - 30% of the average distance
        - +0.05 per dB of average |rssi| above 40
        - -0.5 for each beacon beyond 3

        Returns:
            Accuracy in meters clamped to [0.5, 10.0]; 10.0 for no beacons
        """
        beacons = list(beacons)
        if not beacons:
            return 10.0

        avg_distance = float(np.mean([b.distance for b in beacons]))
        avg_rssi = float(np.mean([abs(b.rssi) for b in beacons]))

        base_accuracy = avg_distance * 0.3
        rssi_penalty = (avg_rssi - 40.0) * 0.05
        beacon_bonus = (len(beacons) - 3) * -0.5

        accuracy = base_accuracy + rssi_penalty + beacon_bonus
        return float(np.clip(accuracy, 0.5, 10.0))

    def compute_fix(self, now: float) -> Optional[BeaconFix]:
        """
        Run one positioning cycle: prune stale beacons, solve, score.

        Args:
            now: Current time (s)

        Returns:
            BeaconFix, or None if no position could be produced this cycle
        """
        self.prune_stale(now)

        valid = self.get_valid_beacons()
        position = self.solve_position(valid)
        if position is None:
            return None

        accuracy = self.estimate_accuracy(valid)

        fix = BeaconFix(
            x=position[0],
            y=position[1],
            accuracy=accuracy,
            timestamp=now,
            beacon_ids=[b.id for b in valid[:3]],
        )

        self.metrics.increment('beacon_fixes')
        self.metrics.record_histogram('beacon_fix_accuracy_m', accuracy)

        return fix
