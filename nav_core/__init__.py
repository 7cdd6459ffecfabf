"""
Indoor Navigation Fusion Core.

Estimates a walking person's 2D indoor position by fusing step detection,
inertial dead reckoning, compass heading and radio beacon trilateration.

Package structure:
- proto: Data contracts (sensor samples, beacons, steps, calibration, output)
- localization: State estimator, beacon positioning, heading, step detection,
  dead reckoning, fusion coordinator
- metrics: Diagnostics, counters, drop reasons, histograms
- sim: Synthetic sensor and beacon streams for demos and tests
"""

__version__ = "0.1.0"
__author__ = "Indoor Navigation Team"
