"""
Indoor navigation demo configuration.
"""

# Fusion configuration
FUSION_CONFIG = {
    "predict_interval_s": 1.0,        # Positioning cycle period
    "beacon_lock_s": 5.0,             # Other corrections ignored after a beacon fix
    "dead_reckoning_noise": 2.0,      # Measurement noise of dead-reckoning corrections (m²)
    "external_noise": 2.0,            # Measurement noise of external positions (m²)
    "max_hold_time_s": 5.0,           # Prediction-only output stays available this long
    "step_length_m": 0.7,             # Default step length
}

# Known beacon registry (surveyed positions in meters)
KNOWN_BEACONS = [
    {"id": "beacon_001", "name": "Entrance Beacon", "x": 0.0, "y": 0.0},
    {"id": "beacon_002", "name": "Corner Beacon", "x": 10.0, "y": 0.0},
    {"id": "beacon_003", "name": "Center Beacon", "x": 5.0, "y": 8.0},
    {"id": "beacon_004", "name": "Exit Beacon", "x": 12.0, "y": 8.0},
]

# Synthetic walk used by the demo
SIMULATION_CONFIG = {
    "duration_s": 30.0,               # Walk duration
    "accel_rate_hz": 50.0,            # Accelerometer sample rate
    "heading_rate_hz": 10.0,          # Compass sample rate
    "beacon_scan_interval_s": 1.0,    # Time between beacon scans
    "step_freq_hz": 2.0,              # Walking cadence
    "step_amplitude": 3.0,            # Vertical bounce amplitude (m/s²)
    "forward_accel": 0.05,            # Constant forward acceleration (m/s²)
    "heading_deg": 30.0,              # Walking direction
    "heading_noise_deg": 3.0,         # Compass noise
    "walk_speed_m_s": 1.4,            # Ground-truth walking speed
    "start_x": 1.0,
    "start_y": 1.0,
    "detection_probability": 0.9,     # Chance a beacon is seen per scan
    "rssi_noise_db": 2.0,             # RSSI noise
    "seed": 7,
}

# Output configuration
OUTPUT_CONFIG = {
    "enable_console_print": True,     # Print fused positions
    "print_interval": 5,              # Print every N positioning cycles
    "print_metrics_summary": True,    # Print metrics summary on exit
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
