"""
Fused Position Output Schema.

Defines the position feed emitted by the fusion coordinator on every cycle.
A cycle without a usable belief emits an UNAVAILABLE estimate rather than
nothing, so consumers can tell "no fix" from "no output".
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from enum import IntEnum
import math


class FixSource(IntEnum):
    """Origin of the most recent correction behind a fused position."""

    UNAVAILABLE = 0     # No valid belief this cycle
    BEACON = 1          # Corrected by a beacon trilateration fix
    DEAD_RECKONING = 2  # Corrected by inertial dead reckoning
    EXTERNAL = 3        # Corrected by an externally supplied position
    PREDICTED = 4       # Prediction only, no correction this cycle


@dataclass(frozen=True)
class FusedPosition:
    """
    Fused 2D position estimate.

    Attributes:
        x: Position X (m)
        y: Position Y (m)
        accuracy: Uncertainty radius √(σx² + σy²) (m)
        timestamp: Time of the estimate (s)
        source: What corrected the belief this cycle
        velocity: Estimated (vx, vy) in m/s, if available

    Notes:
        - For UNAVAILABLE, x/y carry the last belief and accuracy is inf
    """

    x: float
    y: float
    accuracy: float
    timestamp: float
    source: FixSource = FixSource.PREDICTED
    velocity: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        """Validate fused position."""
        if self.accuracy < 0 or math.isnan(self.accuracy):
            raise ValueError(f"Accuracy must be non-negative: {self.accuracy}")

    @property
    def is_available(self) -> bool:
        return self.source != FixSource.UNAVAILABLE

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'accuracy': self.accuracy,
            'timestamp': self.timestamp,
            'source': self.source.name,
            'velocity': self.velocity,
        }


def create_unavailable(
    timestamp: float,
    last_position: Tuple[float, float] = (0.0, 0.0)
) -> FusedPosition:
    """
    Create an UNAVAILABLE fused position.

    Args:
        timestamp: Cycle time
        last_position: Last known position (default: origin)
    """
    return FusedPosition(
        x=last_position[0],
        y=last_position[1],
        accuracy=float('inf'),
        timestamp=timestamp,
        source=FixSource.UNAVAILABLE,
    )
