"""
Best Fix Core Package.

Arbitrates among asynchronous location readings from several concurrently
active sources and keeps one canonical best-known location.

Package structure:
- proto: Reading schema
- localization: LocationArbiter (decision policy, readiness check),
  SourceBinding (attach/detach to a source platform)
- io: Source platform implementations (in-process simulation)
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"

from .proto import Reading, ReadingSource, create_reading
from .localization import (
    ArbiterConfig,
    LocationArbiter,
    SourceBinding,
    UpdateIntervalPolicy,
    HIGH_FREQUENCY_POLICY,
    LOW_FREQUENCY_POLICY,
)
