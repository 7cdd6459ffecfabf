"""
Raw Sensor Sample Schemas.

Defines the inputs consumed at the core boundary: accelerometer samples,
compass headings, gyroscope yaw rates and radio beacon detections. Producers
(platform sensor and radio access) live outside the core.

All timestamps are seconds on a monotonic clock shared by all producers.
"""

from dataclasses import dataclass
from typing import Optional
import math


@dataclass(frozen=True)
class AccelerometerSample:
    """
    Raw accelerometer sample.

    Attributes:
        x: Acceleration along device X axis (m/s²), forward for dead reckoning
        y: Acceleration along device Y axis (m/s²)
        z: Acceleration along device Z axis (m/s²)
        timestamp: Sample time (s)
    """

    x: float
    y: float
    z: float
    timestamp: float

    @property
    def magnitude(self) -> float:
        """Total acceleration magnitude √(x²+y²+z²), gravity included."""
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    @property
    def is_valid(self) -> bool:
        """True if all components and the timestamp are finite."""
        return all(math.isfinite(v) for v in (self.x, self.y, self.z, self.timestamp))


@dataclass(frozen=True)
class HeadingSample:
    """
    Compass heading sample.

    Attributes:
        heading_deg: Heading in degrees [0, 360), or None when unavailable
        timestamp: Sample time (s)
    """

    heading_deg: Optional[float]
    timestamp: float

    @property
    def is_available(self) -> bool:
        return self.heading_deg is not None and math.isfinite(self.heading_deg)


@dataclass(frozen=True)
class GyroSample:
    """
    Gyroscope yaw-rate sample.

    Attributes:
        yaw_rate_rad_s: Angular rate about the vertical axis (rad/s)
        timestamp: Sample time (s)
    """

    yaw_rate_rad_s: float
    timestamp: float


@dataclass(frozen=True)
class BeaconDetection:
    """
    Radio beacon detection event.

    Attributes:
        identifier: Beacon address or advertised name
        rssi: Received signal strength (dBm, negative for real signals)
        timestamp: Detection time (s)
    """

    identifier: str
    rssi: float
    timestamp: float
