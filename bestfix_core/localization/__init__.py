"""
Localization Module: best location arbitration.

Key classes:
- LocationArbiter: Holds the best known reading, decides replacements
- ArbiterConfig: Staleness and first-fix thresholds
- SourceBinding: Attaches an arbiter to a location source platform
- UpdateIntervalPolicy: Advisory live update rate (time / distance)
"""

from .location_arbiter import (
    ArbiterConfig,
    ArbitrationDecision,
    LocationArbiter,
    create_default_arbiter,
    decide,
    is_more_accurate,
)
from .source_binding import (
    LocationSourceCapability,
    ProviderStatusListener,
    SourceBinding,
    UpdateIntervalPolicy,
    HIGH_FREQUENCY_POLICY,
    LOW_FREQUENCY_POLICY,
)

__all__ = [
    # Arbitration
    'ArbiterConfig',
    'ArbitrationDecision',
    'LocationArbiter',
    'create_default_arbiter',
    'decide',
    'is_more_accurate',
    # Source lifecycle
    'LocationSourceCapability',
    'ProviderStatusListener',
    'SourceBinding',
    'UpdateIntervalPolicy',
    'HIGH_FREQUENCY_POLICY',
    'LOW_FREQUENCY_POLICY',
]
