"""
Beacon Schemas.

KnownBeacon is immutable reference data (registry supplied at startup).
ObservedBeacon is the latest detection of a known beacon, refreshed on every
detection and expired after a timeout. BeaconFix is the output of a
successful trilateration cycle.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class KnownBeacon:
    """
    Registry entry for a beacon with a fixed, surveyed position.

    Attributes:
        id: Stable identifier (e.g., "beacon_001")
        name: Human-readable name
        x: Position X (m)
        y: Position Y (m)
    """

    id: str
    name: str
    x: float
    y: float

    def matches(self, identifier: str) -> bool:
        """True if identifier is contained in this beacon's id or name."""
        if not identifier:
            return False
        return identifier in self.id or identifier in self.name


@dataclass(frozen=True)
class ObservedBeacon:
    """
    Latest observation of a known beacon.

    Attributes:
        id: Beacon identifier (registry id)
        name: Beacon name
        x: Fixed position X (m)
        y: Fixed position Y (m)
        rssi: Last observed signal strength (dBm)
        distance: Distance derived from rssi (m)
        last_seen: Time of last detection (s)
    """

    id: str
    name: str
    x: float
    y: float
    rssi: float
    distance: float
    last_seen: float

    def age(self, now: float) -> float:
        """Seconds since this beacon was last seen."""
        return now - self.last_seen

    def is_stale(self, now: float, timeout_s: float) -> bool:
        return self.age(now) > timeout_s

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'x': self.x,
            'y': self.y,
            'rssi': self.rssi,
            'distance': self.distance,
            'last_seen': self.last_seen,
        }


@dataclass
class BeaconFix:
    """
    Position solved from beacon ranges.

    Attributes:
        x: Solved position X (m)
        y: Solved position Y (m)
        accuracy: Uncertainty radius heuristic (m), in [0.5, 10.0]
        timestamp: Time of the solve (s)
        beacon_ids: Beacons used for the geometric solve
    """

    x: float
    y: float
    accuracy: float
    timestamp: float
    beacon_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.accuracy <= 0:
            raise ValueError(f"Accuracy must be positive: {self.accuracy}")

    @property
    def position(self):
        return (self.x, self.y)
