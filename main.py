"""
Best location demo
Runs simulated GPS and network sources against a LocationArbiter and
prints the best known location while readings arrive.
"""

import sys
import time
import math
import signal
import logging
import argparse
import threading
from typing import List, Optional

import numpy as np

import config
from bestfix_core.proto import Reading, create_reading, EARTH_RADIUS_M
from bestfix_core.localization import (
    ArbiterConfig,
    LocationArbiter,
    ProviderStatusListener,
    SourceBinding,
    UpdateIntervalPolicy,
)
from bestfix_core.io import SimulatedSource, SimulatedSourceCapability
from bestfix_core.metrics import get_metrics

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


def generate_track(
    source_id: str,
    base_lat: float,
    base_lon: float,
    start_time: float,
    count: int,
    interval_s: float,
    accuracy_m: float,
    jitter_m: float,
    rng: np.random.Generator,
) -> List[Reading]:
    """
    Generate a noisy stationary track around a base point.

    Args:
        source_id: Source identifier
        base_lat: Base latitude (degrees)
        base_lon: Base longitude (degrees)
        start_time: Timestamp of first reading
        count: Number of readings
        interval_s: Time between readings
        accuracy_m: Reported accuracy (scaled by noise per reading)
        jitter_m: Position noise standard deviation (meters)
        rng: Random generator

    Returns:
        List of readings in timestamp order
    """
    m_per_deg_lat = math.radians(1.0) * EARTH_RADIUS_M
    m_per_deg_lon = m_per_deg_lat * math.cos(math.radians(base_lat))

    offsets = rng.normal(0.0, jitter_m, size=(count, 2))
    accuracy_scale = rng.uniform(0.7, 1.5, size=count)

    track = []
    for i in range(count):
        track.append(create_reading(
            source_id,
            lat=base_lat + offsets[i, 0] / m_per_deg_lat,
            lon=base_lon + offsets[i, 1] / m_per_deg_lon,
            accuracy_m=float(accuracy_m * accuracy_scale[i]),
            timestamp=start_time + (i + 1) * interval_s,
        ))
    return track


def build_sources(duration_s: float, seed: int = 42) -> List[SimulatedSource]:
    """Build simulated sources from config.SOURCES_CONFIG."""
    rng = np.random.default_rng(seed)
    base_lat = config.SOURCES_CONFIG["base_lat"]
    base_lon = config.SOURCES_CONFIG["base_lon"]
    now = time.time()

    sources = []
    for source_id, cfg in config.SOURCES_CONFIG["sources"].items():
        count = max(1, int(duration_s / cfg["interval_s"]))
        feed = generate_track(
            source_id, base_lat, base_lon, now, count,
            cfg["interval_s"], cfg["accuracy_m"], cfg["jitter_m"], rng,
        )

        last_known: Optional[Reading] = None
        if cfg["has_last_known"]:
            # Cached fix from ten minutes ago
            last_known = create_reading(
                source_id, base_lat, base_lon,
                accuracy_m=cfg["accuracy_m"],
                timestamp=now - 600.0,
            )

        sources.append(SimulatedSource(
            source_id=source_id,
            enabled=cfg["enabled"],
            last_known=last_known,
            feed=feed,
            interval_s=cfg["interval_s"],
        ))
    return sources


class LoggingStatusListener(ProviderStatusListener):
    """Logs provider availability changes."""

    def on_provider_enabled(self, source_id: str):
        logger.info(f"Provider enabled: {source_id}")

    def on_provider_disabled(self, source_id: str):
        logger.info(f"Provider disabled: {source_id}")


class BestLocationDemo:
    """Demo application wiring sources, binding and arbiter"""

    def __init__(self, policy: UpdateIntervalPolicy, duration_s: float):
        self.duration_s = duration_s
        self.policy = policy
        self.arbiter = LocationArbiter(ArbiterConfig(**config.ARBITER_CONFIG))
        self.binding = SourceBinding(self.arbiter)
        self.capability = SimulatedSourceCapability(build_sources(duration_s))
        self.capability.add_status_listener(LoggingStatusListener())
        self._stop_event = threading.Event()
        self._first_fix_reported = False

        self.arbiter.add_listener(self._on_best_location_changed)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self._stop_event.set()

    def _on_best_location_changed(self, reading: Reading):
        if not self._first_fix_reported and self.arbiter.is_acceptable_as_initial(reading):
            self._first_fix_reported = True
            logger.info(f"Initial fix is good enough: {reading.to_dict()}")

    def print_best(self):
        best = self.arbiter.current()
        if best is None:
            print("[best] no location yet")
            return
        age = best.age_s(time.time())
        accuracy = f"{best.accuracy_m:.1f}m" if best.has_accuracy else "unknown"
        print(f"[best] {best.source_id:8s} lat={best.lat:.6f} lon={best.lon:.6f} "
              f"accuracy={accuracy} age={age:.1f}s")

    def run(self):
        self.binding.attach(self.capability, self.policy)
        self.print_best()

        deadline = time.time() + self.duration_s
        interval = config.OUTPUT_CONFIG["print_interval_s"]
        try:
            while not self._stop_event.is_set() and time.time() < deadline:
                self._stop_event.wait(interval)
                self.print_best()
        finally:
            self.binding.detach(self.capability)
            self.capability.close()

        get_metrics().print_summary()


def parse_policy(slow: bool) -> UpdateIntervalPolicy:
    preset = config.UPDATE_POLICY_CONFIG["slow" if slow else "fast"]
    return UpdateIntervalPolicy(**preset)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Best location arbitration demo")
    parser.add_argument("--duration", type=float, default=15.0,
                        help="Seconds to run (default: 15)")
    parser.add_argument("--slow", action="store_true",
                        help="Use the power-conserving update policy")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    demo = BestLocationDemo(parse_policy(args.slow), args.duration)
    demo.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
