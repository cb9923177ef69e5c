"""
Best location demo configuration
"""

# Arbitration thresholds
ARBITER_CONFIG = {
    "stale_threshold_s": 300.0,             # Readings older than this lose accuracy comparisons
    "initial_accuracy_threshold_m": 100.0,  # Worst accuracy acceptable as a first fix
    "initial_max_age_s": 300.0,             # Oldest reading acceptable as a first fix
}

# Live update policy presets
UPDATE_POLICY_CONFIG = {
    "fast": {"min_time_s": 0.0, "min_distance_m": 0.0},
    "slow": {"min_time_s": 300.0, "min_distance_m": 50.0},
}

# Simulated sources (demo only)
SOURCES_CONFIG = {
    "base_lat": 22.2900,
    "base_lon": 114.1700,
    "sources": {
        "gps": {
            "enabled": True,
            "interval_s": 1.0,
            "accuracy_m": 8.0,
            "jitter_m": 5.0,
            "has_last_known": False,
        },
        "network": {
            "enabled": True,
            "interval_s": 2.5,
            "accuracy_m": 60.0,
            "jitter_m": 40.0,
            "has_last_known": True,
        },
    },
}

# Output
OUTPUT_CONFIG = {
    "print_interval_s": 2.0,   # How often the demo prints the best estimate
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
