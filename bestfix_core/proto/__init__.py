"""
Protocol Module: Reading schema.

- Source IDs
- Source timestamps (production time, not receipt time)
- Defensive validation of malformed readings
"""

from .reading import (
    Reading,
    ReadingSource,
    create_reading,
    EARTH_RADIUS_M,
)

__all__ = [
    'Reading',
    'ReadingSource',
    'create_reading',
    'EARTH_RADIUS_M',
]
