"""
Source Binding: attach a LocationArbiter to a set of location sources.

On attach, every enabled source is asked for its last known reading (which
seeds the arbiter) and then for a live feed of future readings pushed into
LocationArbiter.submit. Detach stops all live feeds.

The source platform itself (enumeration, enabled state, delivery threads,
provider status) lives behind LocationSourceCapability.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from bestfix_core.proto.reading import Reading
from bestfix_core.localization.location_arbiter import LocationArbiter
from bestfix_core.metrics import get_metrics

logger = logging.getLogger(__name__)


ReadingSink = Callable[[Optional[Reading]], object]


@dataclass(frozen=True)
class UpdateIntervalPolicy:
    """
    Advisory rate limit for live updates.

    Attributes:
        min_time_s: Minimum time between callbacks (0 = as often as possible)
        min_distance_m: Minimum movement between callbacks (0 = any change)
    """

    min_time_s: float = 0.0
    min_distance_m: float = 0.0

    def __post_init__(self):
        """Validate policy."""
        if self.min_time_s < 0:
            raise ValueError(f"min_time_s cannot be negative: {self.min_time_s}")
        if self.min_distance_m < 0:
            raise ValueError(f"min_distance_m cannot be negative: {self.min_distance_m}")


# Update on every change
HIGH_FREQUENCY_POLICY = UpdateIntervalPolicy(min_time_s=0.0, min_distance_m=0.0)

# Power-conserving: at most every 5 minutes, at least 50 m of movement
LOW_FREQUENCY_POLICY = UpdateIntervalPolicy(min_time_s=5 * 60.0, min_distance_m=50.0)


class LocationSourceCapability(Protocol):
    """Platform capability consumed by SourceBinding."""

    def list_enabled_sources(self) -> Iterable[str]:
        """Ids of sources currently available."""

    def last_known_reading(self, source_id: str) -> Optional[Reading]:
        """Non-blocking best-effort fetch of the source's last fix."""

    def register_live_updates(
        self,
        source_id: str,
        min_time_s: float,
        min_distance_m: float,
        sink: ReadingSink,
    ) -> None:
        """Begin pushing future readings from source_id to sink."""

    def unregister_live_updates(self, sink: ReadingSink) -> None:
        """Stop all deliveries to sink."""


class ProviderStatusListener:
    """
    Hooks for provider availability changes.

    All hooks are no-ops; subclass to react. None of them feed arbitration.
    """

    def on_provider_enabled(self, source_id: str):
        pass

    def on_provider_disabled(self, source_id: str):
        pass

    def on_status_changed(self, source_id: str, status: int, extras: Optional[dict] = None):
        pass


class SourceBinding:
    """
    Lifecycle of the arbiter's subscription to location sources.

    Usage:
        arbiter = LocationArbiter()
        binding = SourceBinding(arbiter)

        binding.attach(capability)                        # high frequency
        binding.attach(capability, LOW_FREQUENCY_POLICY)  # power saving
        ...
        binding.detach(capability)

    Each capability is tracked separately, so several platforms can feed the
    same arbiter and detaching one leaves the others live. Attaching a
    capability again only registers sources it did not already register;
    detach first to change the policy of a live source.

    Capability errors (enumeration, registration) propagate to the caller
    unmodified; nothing is retried here.
    """

    def __init__(self, arbiter: LocationArbiter):
        """
        Initialize binding.

        Args:
            arbiter: Arbiter that receives all readings
        """
        self.arbiter = arbiter
        self.metrics = get_metrics()
        self._sink: ReadingSink = arbiter.submit
        # id(capability) -> (capability, registered source ids), in attach order
        self._bindings: Dict[int, Tuple[LocationSourceCapability, List[str]]] = {}

    @property
    def sink(self) -> ReadingSink:
        """Callback registered with every source."""
        return self._sink

    @property
    def is_attached(self) -> bool:
        return bool(self._bindings)

    @property
    def attached_sources(self) -> Tuple[str, ...]:
        """Source ids registered across every attached capability."""
        return tuple(
            source_id
            for _, source_ids in self._bindings.values()
            for source_id in source_ids
        )

    def is_attached_to(self, capability: LocationSourceCapability) -> bool:
        return id(capability) in self._bindings

    def attach(
        self,
        capability: LocationSourceCapability,
        policy: UpdateIntervalPolicy = HIGH_FREQUENCY_POLICY
    ):
        """
        Seed the arbiter and subscribe it to every enabled source.

        Args:
            capability: Location source platform
            policy: Advisory update interval for live readings
        """
        logger.info(f"Attaching arbiter (min_time={policy.min_time_s}s, "
                    f"min_distance={policy.min_distance_m}m)")

        entry = self._bindings.get(id(capability))
        registered = entry[1] if entry is not None else []

        for source_id in capability.list_enabled_sources():
            if source_id in registered:
                logger.debug(f"Already receiving live updates from {source_id}, skipping")
                continue

            # An enabled source may have no fix yet; submit treats None as a no-op
            self.arbiter.submit(capability.last_known_reading(source_id))

            capability.register_live_updates(
                source_id,
                policy.min_time_s,
                policy.min_distance_m,
                self.sink,
            )
            registered.append(source_id)
            self._bindings[id(capability)] = (capability, registered)
            self.metrics.increment('sources_attached')
            logger.debug(f"Registered live updates for {source_id}")

        logger.info(f"Attached to {len(registered)} source(s): "
                    f"{', '.join(registered) or 'none'}")

    def detach(self, capability: LocationSourceCapability):
        """
        Unsubscribe the arbiter from every source of this capability.

        Idempotent; a no-op for a capability that was never attached.
        Other attached capabilities keep delivering.

        Args:
            capability: Location source platform
        """
        entry = self._bindings.get(id(capability))
        if entry is None:
            logger.debug("Detach requested for a capability that is not attached, doing nothing")
            return

        source_ids = entry[1]
        logger.info(f"Detaching arbiter from {len(source_ids)} source(s)")
        capability.unregister_live_updates(self.sink)

        del self._bindings[id(capability)]
        self.metrics.increment('sources_detached', len(source_ids))
