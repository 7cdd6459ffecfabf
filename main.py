"""
Indoor navigation demo runner.

Feeds a synthetic walk (accelerometer, compass, beacon scans) through the
fusion coordinator and prints the fused position feed.

Modes:
- replay (default): simulated clock, runs as fast as possible, deterministic
- live: producer threads in real time plus the background positioning loop
"""

import sys
import time
import signal
import logging
import argparse
import threading
from typing import List, Optional

import numpy as np

import config
from nav_core.proto import (
    KnownBeacon,
    HeadingSample,
    CalibrationProfile,
    FusedPosition,
    AccelerometerSample,
)
from nav_core.localization import PositionFusionCoordinator, FusionConfig
from nav_core.metrics import get_metrics
from nav_core.sim import (
    generate_walking_samples,
    simulate_beacon_detections,
    walk_position,
)

logger = logging.getLogger(__name__)


def load_known_beacons(entries: List[dict]) -> List[KnownBeacon]:
    return [
        KnownBeacon(id=e["id"], name=e["name"], x=float(e["x"]), y=float(e["y"]))
        for e in entries
    ]


class NavigationDemo:
    """Synthetic walk through the fusion coordinator."""

    def __init__(self, live: bool = False, relaxed: bool = False):
        self.live = live
        self.sim = config.SIMULATION_CONFIG
        self.running = False

        self._sim_time = 0.0
        self._rng = np.random.default_rng(self.sim["seed"])
        self._stop_event = threading.Event()
        self._producers: List[threading.Thread] = []

        self.known_beacons = load_known_beacons(config.KNOWN_BEACONS)
        calibration = None if relaxed else CalibrationProfile()

        self.coordinator = PositionFusionCoordinator(
            self.known_beacons,
            calibration=calibration,
            config=FusionConfig(**config.FUSION_CONFIG),
            clock=time.monotonic if live else self._sim_clock,
            initial_position=(self.sim["start_x"], self.sim["start_y"]),
        )
        self.coordinator.add_position_listener(self._on_position)

        self.cycle_count = 0
        self.available_count = 0
        self.last_position: Optional[FusedPosition] = None

        if live:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

        mode = "live" if live else "replay"
        logger.info(f"Navigation demo initialized ({mode} mode)")

    def _sim_clock(self) -> float:
        return self._sim_time

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Synthetic inputs
    # ------------------------------------------------------------------

    def _accel_samples(self) -> List[AccelerometerSample]:
        return generate_walking_samples(
            duration_s=self.sim["duration_s"],
            rate_hz=self.sim["accel_rate_hz"],
            step_freq_hz=self.sim["step_freq_hz"],
            amplitude=self.sim["step_amplitude"],
            forward_accel=self.sim["forward_accel"],
            noise_std=0.1,
            seed=self.sim["seed"],
        )

    def _true_position(self, t: float):
        return walk_position(
            t,
            start=(self.sim["start_x"], self.sim["start_y"]),
            heading_rad=np.radians(self.sim["heading_deg"]),
            speed_m_s=self.sim["walk_speed_m_s"],
        )

    def _heading_sample(self, t: float) -> HeadingSample:
        noise = self._rng.normal(0.0, self.sim["heading_noise_deg"])
        return HeadingSample(heading_deg=(self.sim["heading_deg"] + noise) % 360.0, timestamp=t)

    def _scan_beacons(self, t: float):
        detections = simulate_beacon_detections(
            self.known_beacons,
            self._true_position(t),
            t,
            self._rng,
            detection_probability=self.sim["detection_probability"],
            rssi_noise_db=self.sim["rssi_noise_db"],
        )
        for detection in detections:
            self.coordinator.on_beacon_detection(detection)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _on_position(self, position: FusedPosition):
        self.cycle_count += 1
        self.last_position = position
        if position.is_available:
            self.available_count += 1

        if not config.OUTPUT_CONFIG["enable_console_print"]:
            return
        if self.cycle_count % config.OUTPUT_CONFIG["print_interval"] != 0:
            return

        if position.is_available:
            true_x, true_y = self._true_position(position.timestamp)
            error = np.hypot(position.x - true_x, position.y - true_y)
            print(f"[{position.timestamp:6.1f}s] {position.source.name:<14} "
                  f"({position.x:6.2f}, {position.y:6.2f}) ±{position.accuracy:.2f}m "
                  f"error={error:.2f}m")
        else:
            print(f"[{position.timestamp:6.1f}s] UNAVAILABLE")

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def run(self):
        self.running = True
        try:
            if self.live:
                self._run_live()
            else:
                self._run_replay()
        finally:
            self.stop()

    def _run_replay(self):
        """Drive every stream from the sample timeline with a simulated clock."""
        heading_period = 1.0 / self.sim["heading_rate_hz"]
        scan_period = self.sim["beacon_scan_interval_s"]
        tick_period = self.coordinator.config.predict_interval_s

        next_heading = 0.0
        next_scan = 0.0
        next_tick = tick_period

        for sample in self._accel_samples():
            t = sample.timestamp
            self._sim_time = t

            if t >= next_heading:
                self.coordinator.on_heading(self._heading_sample(t))
                next_heading += heading_period

            self.coordinator.on_accelerometer(sample)

            if t >= next_scan:
                self._scan_beacons(t)
                next_scan += scan_period

            if t >= next_tick:
                self.coordinator.tick(t)
                next_tick += tick_period

    def _run_live(self):
        """Real-time producer threads plus the background positioning loop."""
        t0 = time.monotonic()
        self.coordinator.start()

        self._producers = [
            threading.Thread(target=self._accel_producer, args=(t0,), daemon=True),
            threading.Thread(target=self._heading_producer, args=(t0,), daemon=True),
            threading.Thread(target=self._beacon_producer, args=(t0,), daemon=True),
        ]
        for thread in self._producers:
            thread.start()

        deadline = t0 + self.sim["duration_s"]
        while not self._stop_event.is_set() and time.monotonic() < deadline:
            self._stop_event.wait(0.5)
        self._stop_event.set()

        for thread in self._producers:
            thread.join(timeout=2.0)

    def _accel_producer(self, t0: float):
        for sample in self._accel_samples():
            delay = t0 + sample.timestamp - time.monotonic()
            if delay > 0 and self._stop_event.wait(delay):
                return
            self.coordinator.on_accelerometer(AccelerometerSample(
                x=sample.x, y=sample.y, z=sample.z, timestamp=t0 + sample.timestamp
            ))

    def _heading_producer(self, t0: float):
        period = 1.0 / self.sim["heading_rate_hz"]
        while not self._stop_event.wait(period):
            now = time.monotonic()
            sample = self._heading_sample(now - t0)
            self.coordinator.on_heading(HeadingSample(sample.heading_deg, now))

    def _beacon_producer(self, t0: float):
        while not self._stop_event.wait(self.sim["beacon_scan_interval_s"]):
            now = time.monotonic()
            detections = simulate_beacon_detections(
                self.known_beacons,
                self._true_position(now - t0),
                now,
                self._rng,
                detection_probability=self.sim["detection_probability"],
                rssi_noise_db=self.sim["rssi_noise_db"],
            )
            for detection in detections:
                self.coordinator.on_beacon_detection(detection)

    def stop(self):
        if not self.running:
            return
        self.running = False
        self._stop_event.set()
        self.coordinator.stop()

        step_metrics = self.coordinator.get_step_metrics()

        print("\n" + "=" * 60)
        print("               Navigation demo finished")
        print("=" * 60)
        print(f"Positioning cycles: {self.cycle_count}")
        print(f"Available outputs:  {self.available_count}")
        print(f"Validated steps:    {step_metrics.validated_steps}")
        print(f"Rejected steps:     {step_metrics.rejected_steps}")
        print(f"Cadence:            {step_metrics.cadence_hz:.2f} Hz")
        print(f"Total distance:     {step_metrics.total_distance_m:.2f} m")
        if self.last_position is not None and self.last_position.is_available:
            print(f"Final position:     ({self.last_position.x:.2f}, {self.last_position.y:.2f})")
        print("=" * 60)

        if config.OUTPUT_CONFIG["print_metrics_summary"]:
            get_metrics().print_summary()


def main():
    parser = argparse.ArgumentParser(description='Indoor navigation fusion demo')
    parser.add_argument('--live', action='store_true',
                        help='Run producers in real time with the background loop')
    parser.add_argument('--relaxed', action='store_true',
                        help='Run step detection without a calibration profile')
    parser.add_argument('--duration', '-t', type=float, default=None,
                        help='Walk duration in seconds')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.LOGGING_CONFIG["level"]),
        format=config.LOGGING_CONFIG["format"]
    )
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.duration:
        config.SIMULATION_CONFIG["duration_s"] = args.duration

    demo = NavigationDemo(live=args.live, relaxed=args.relaxed)
    demo.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
