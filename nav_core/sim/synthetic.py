"""
Synthetic sensor streams.

- Walking: vertical bounce at the step frequency on top of gravity
- Shaking: large zero-mean Gaussian noise on every axis
- Still: gravity only, optionally with small noise
- Beacon detections: inverse path-loss RSSI with noise and random misses

All generators are deterministic for a given seed.
"""

from typing import Iterable, List, Optional, Tuple
import math
import numpy as np

from nav_core.proto.sensor_samples import AccelerometerSample, BeaconDetection
from nav_core.proto.beacon import KnownBeacon

GRAVITY = 9.81


def _timestamps(duration_s: float, rate_hz: float, start_time: float) -> np.ndarray:
    n = int(round(duration_s * rate_hz))
    return start_time + np.arange(n) / rate_hz


def generate_walking_samples(
    duration_s: float = 10.0,
    rate_hz: float = 50.0,
    step_freq_hz: float = 2.0,
    amplitude: float = 3.0,
    forward_accel: float = 0.0,
    noise_std: float = 0.0,
    start_time: float = 0.0,
    seed: Optional[int] = None,
) -> List[AccelerometerSample]:
    """
    Walking stream: z = g + amplitude * sin(2π f t).

    Args:
        duration_s: Stream length (s)
        rate_hz: Sample rate (Hz)
        step_freq_hz: Step frequency (Hz)
        amplitude: Vertical bounce amplitude (m/s²)
        forward_accel: Constant forward (x) acceleration (m/s²)
        noise_std: Gaussian noise added to each axis (m/s²)
        start_time: Timestamp of the first sample (s)
        seed: Noise seed

    Returns:
        List of AccelerometerSample
    """
    t = _timestamps(duration_s, rate_hz, start_time)
    rng = np.random.default_rng(seed)

    x = np.full(len(t), forward_accel)
    y = np.zeros(len(t))
    z = GRAVITY + amplitude * np.sin(2.0 * np.pi * step_freq_hz * (t - start_time))

    if noise_std > 0:
        x = x + rng.normal(0.0, noise_std, len(t))
        y = y + rng.normal(0.0, noise_std, len(t))
        z = z + rng.normal(0.0, noise_std, len(t))

    return [
        AccelerometerSample(x=float(x[i]), y=float(y[i]), z=float(z[i]), timestamp=float(t[i]))
        for i in range(len(t))
    ]


def generate_shaking_samples(
    duration_s: float = 10.0,
    rate_hz: float = 50.0,
    sigma: float = 12.0,
    start_time: float = 0.0,
    seed: int = 42,
) -> List[AccelerometerSample]:
    """Shaking stream: independent N(0, sigma²) on each axis around gravity."""
    t = _timestamps(duration_s, rate_hz, start_time)
    rng = np.random.default_rng(seed)

    noise = rng.normal(0.0, sigma, (len(t), 3))
    noise[:, 2] += GRAVITY

    return [
        AccelerometerSample(
            x=float(noise[i, 0]),
            y=float(noise[i, 1]),
            z=float(noise[i, 2]),
            timestamp=float(t[i]),
        )
        for i in range(len(t))
    ]


def generate_still_samples(
    duration_s: float = 5.0,
    rate_hz: float = 50.0,
    noise_std: float = 0.0,
    start_time: float = 0.0,
    seed: Optional[int] = None,
) -> List[AccelerometerSample]:
    """Device at rest: gravity on z plus optional noise."""
    return generate_walking_samples(
        duration_s=duration_s,
        rate_hz=rate_hz,
        amplitude=0.0,
        noise_std=noise_std,
        start_time=start_time,
        seed=seed,
    )


def rssi_for_distance(
    distance_m: float,
    reference_rssi_1m: float = -59.0,
    path_loss_exponent: float = 2.0,
) -> float:
    """Inverse of the log-distance model: rssi = ref - 10 n log10(d)."""
    distance_m = max(distance_m, 1e-3)
    return reference_rssi_1m - 10.0 * path_loss_exponent * math.log10(distance_m)


def simulate_beacon_detections(
    known_beacons: Iterable[KnownBeacon],
    true_position: Tuple[float, float],
    timestamp: float,
    rng: np.random.Generator,
    detection_probability: float = 0.9,
    rssi_noise_db: float = 2.0,
    max_range_m: float = 50.0,
) -> List[BeaconDetection]:
    """
    One scan of detections from a person at true_position.

    Each beacon within range is detected with detection_probability; its
    RSSI follows the path-loss model plus Gaussian noise.
    """
    detections = []
    for beacon in known_beacons:
        distance = math.hypot(beacon.x - true_position[0], beacon.y - true_position[1])
        if distance > max_range_m:
            continue
        if rng.random() >= detection_probability:
            continue

        rssi = rssi_for_distance(distance) + rng.normal(0.0, rssi_noise_db)
        detections.append(BeaconDetection(
            identifier=beacon.id,
            rssi=min(float(rssi), -1.0),
            timestamp=timestamp,
        ))
    return detections


def walk_position(
    t: float,
    start: Tuple[float, float] = (0.0, 0.0),
    heading_rad: float = 0.0,
    speed_m_s: float = 1.4,
) -> Tuple[float, float]:
    """Ground-truth position of a straight walk after t seconds."""
    return (
        start[0] + speed_m_s * t * math.cos(heading_rad),
        start[1] + speed_m_s * t * math.sin(heading_rad),
    )
