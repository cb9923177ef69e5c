"""
I/O Module: location source platform implementations.

- SimulatedSourceCapability: scripted in-process sources with
  background delivery threads, used by the demo and tests
"""

from .simulated_source import (
    SimulatedSource,
    SimulatedSourceCapability,
    STATUS_AVAILABLE,
    STATUS_OUT_OF_SERVICE,
    STATUS_TEMPORARILY_UNAVAILABLE,
)

__all__ = [
    'SimulatedSource',
    'SimulatedSourceCapability',
    'STATUS_AVAILABLE',
    'STATUS_OUT_OF_SERVICE',
    'STATUS_TEMPORARILY_UNAVAILABLE',
]
