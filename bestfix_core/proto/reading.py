"""
Location Reading Schema.

One timestamped position observation produced by a location source
(satellite receiver, network provider, passive listener).

Readings are immutable: the arbiter swaps whole readings in and out, so an
observer never sees a half-updated estimate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import math
import time

import numpy as np


# Mean Earth radius (IUGG), meters
EARTH_RADIUS_M = 6371008.8


class ReadingSource(str, Enum):
    """Well-known location source identifiers."""

    GPS = "gps"            # Satellite receiver
    NETWORK = "network"    # Cell / Wi-Fi positioning
    PASSIVE = "passive"    # Piggybacks on fixes requested by others


@dataclass(frozen=True)
class Reading:
    """
    Single location observation.

    Attributes:
        source_id: Identifier of the source that produced the reading
        timestamp: Time the source produced the observation (Unix epoch s),
            not the time it was received
        position: (lat, lon) in degrees
        accuracy_m: Horizontal accuracy radius in meters (None = unknown)
        altitude_m: Altitude above WGS84 ellipsoid (optional)
        speed_m_s: Ground speed (optional)
        bearing_deg: Course over ground (optional)

    Notes:
        - accuracy_m=None is "unknown", not "infinitely inaccurate"
        - Smaller accuracy_m means a more precise reading
    """

    source_id: str
    timestamp: float
    position: Tuple[float, float]
    accuracy_m: Optional[float] = None
    altitude_m: Optional[float] = None
    speed_m_s: Optional[float] = None
    bearing_deg: Optional[float] = None

    def __post_init__(self):
        """Validate reading."""
        if math.isnan(self.timestamp):
            raise ValueError(f"Timestamp cannot be NaN ({self.source_id})")

        lat, lon = self.position
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"Latitude out of range: {lat}")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"Longitude out of range: {lon}")

        if self.accuracy_m is not None:
            if math.isnan(self.accuracy_m) or self.accuracy_m < 0:
                raise ValueError(f"Accuracy must be non-negative: {self.accuracy_m}")

    @property
    def has_accuracy(self) -> bool:
        """Check if the source reported an accuracy estimate."""
        return self.accuracy_m is not None

    @property
    def lat(self) -> float:
        return self.position[0]

    @property
    def lon(self) -> float:
        return self.position[1]

    def age_s(self, now: float) -> float:
        """
        Age of this reading relative to now.

        Args:
            now: Reference time (Unix epoch s)

        Returns:
            now - timestamp (negative if the reading is from the future)
        """
        return now - self.timestamp

    def distance_to(self, other: "Reading") -> float:
        """
        Great-circle distance to another reading (haversine).

        Args:
            other: Reading to measure to

        Returns:
            Distance in meters
        """
        lat1, lon1, lat2, lon2 = np.radians(
            [self.lat, self.lon, other.lat, other.lon]
        )
        dlat = lat2 - lat1
        dlon = lon2 - lon1

        a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
        c = 2 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))

        return float(EARTH_RADIUS_M * c)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'source_id': self.source_id,
            'timestamp': self.timestamp,
            'lat': self.lat,
            'lon': self.lon,
            'accuracy_m': self.accuracy_m,
            'altitude_m': self.altitude_m,
            'speed_m_s': self.speed_m_s,
            'bearing_deg': self.bearing_deg,
        }


def create_reading(
    source_id: str,
    lat: float,
    lon: float,
    accuracy_m: Optional[float] = None,
    timestamp: Optional[float] = None,
    **extras
) -> Reading:
    """
    Create a reading, stamping it with the current time if none is given.

    Args:
        source_id: Source identifier (see ReadingSource)
        lat: Latitude in degrees
        lon: Longitude in degrees
        accuracy_m: Accuracy radius in meters (None = unknown)
        timestamp: Observation time (default: now)
        **extras: altitude_m, speed_m_s, bearing_deg

    Returns:
        Reading
    """
    if isinstance(source_id, ReadingSource):
        source_id = source_id.value

    return Reading(
        source_id=source_id,
        timestamp=time.time() if timestamp is None else timestamp,
        position=(lat, lon),
        accuracy_m=accuracy_m,
        **extras
    )
