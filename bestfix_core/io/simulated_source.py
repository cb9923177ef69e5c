"""
In-process location source platform.

Implements LocationSourceCapability on top of scripted sources so the arbiter
can be exercised without real receivers. Each live registration either runs
a background delivery thread (for sources with a scripted feed) or is fed
synchronously through deliver().
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from bestfix_core.proto.reading import Reading
from bestfix_core.localization.source_binding import ProviderStatusListener, ReadingSink
from bestfix_core.metrics import get_metrics

logger = logging.getLogger(__name__)


# Status codes passed to ProviderStatusListener.on_status_changed
STATUS_OUT_OF_SERVICE = 0
STATUS_TEMPORARILY_UNAVAILABLE = 1
STATUS_AVAILABLE = 2


@dataclass
class SimulatedSource:
    """
    Scripted location source.

    Attributes:
        source_id: Source identifier
        enabled: Whether the source is listed as enabled
        last_known: Reading returned by last_known_reading (may be None)
        feed: Readings pushed by the live delivery thread, in order
        interval_s: Wall-clock delay between feed deliveries
    """

    source_id: str
    enabled: bool = True
    last_known: Optional[Reading] = None
    feed: List[Reading] = field(default_factory=list)
    interval_s: float = 1.0


class _Registration:
    """One (source, sink) live subscription with its rate policy."""

    def __init__(
        self,
        source: SimulatedSource,
        min_time_s: float,
        min_distance_m: float,
        sink: ReadingSink,
    ):
        self.source = source
        self.min_time_s = min_time_s
        self.min_distance_m = min_distance_m
        self.sink = sink
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self._last_delivered: Optional[Reading] = None
        self._lock = threading.Lock()
        self.metrics = get_metrics()

    @property
    def active(self) -> bool:
        return not self.stop_event.is_set()

    def offer(self, reading: Reading) -> bool:
        """
        Deliver reading to the sink unless the rate policy filters it.

        Only delivered readings become the reference point for the filter.

        Returns:
            True if the sink was called
        """
        with self._lock:
            if not self.active:
                return False

            last = self._last_delivered
            if last is not None:
                if reading.timestamp - last.timestamp < self.min_time_s:
                    self.metrics.increment_drop('filtered_min_time')
                    return False
                if (self.min_distance_m > 0
                        and reading.distance_to(last) < self.min_distance_m):
                    self.metrics.increment_drop('filtered_min_distance')
                    return False
            self._last_delivered = reading

        self.metrics.increment('live_deliveries')
        self.sink(reading)
        return True

    @property
    def last_delivered(self) -> Optional[Reading]:
        return self._last_delivered

    def run(self):
        """Delivery loop for the source's scripted feed."""
        logger.debug(f"{self.source.source_id}: delivery thread started")
        for reading in self.source.feed:
            if self.stop_event.wait(self.source.interval_s):
                break
            self.source.last_known = reading
            self.offer(reading)
        logger.debug(f"{self.source.source_id}: delivery thread finished")


class SimulatedSourceCapability:
    """
    LocationSourceCapability backed by SimulatedSource objects.

    Usage:
        capability = SimulatedSourceCapability([
            SimulatedSource("gps", last_known=gps_fix, feed=gps_track),
            SimulatedSource("network", enabled=False),
        ])
        binding.attach(capability)
        capability.deliver("gps", reading)   # synchronous push
        binding.detach(capability)
    """

    def __init__(self, sources: Optional[Iterable[SimulatedSource]] = None):
        """
        Initialize capability.

        Args:
            sources: Initial sources (order is preserved in listings)
        """
        self._lock = threading.Lock()
        self._sources: Dict[str, SimulatedSource] = {}
        self._registrations: List[_Registration] = []
        self._status_listeners: List[ProviderStatusListener] = []

        for source in sources or ():
            self.add_source(source)

    def add_source(self, source: SimulatedSource):
        with self._lock:
            self._sources[source.source_id] = source

    def _get_source(self, source_id: str) -> SimulatedSource:
        try:
            return self._sources[source_id]
        except KeyError:
            raise KeyError(f"Unknown location source: {source_id}") from None

    def add_status_listener(self, listener: ProviderStatusListener):
        with self._lock:
            self._status_listeners.append(listener)

    def set_enabled(self, source_id: str, enabled: bool):
        """
        Enable or disable a source and notify status listeners.

        Args:
            source_id: Source identifier
            enabled: New enabled state
        """
        with self._lock:
            source = self._get_source(source_id)
            changed = source.enabled != enabled
            source.enabled = enabled
            listeners = list(self._status_listeners)

        if not changed:
            return

        logger.info(f"{source_id}: provider {'enabled' if enabled else 'disabled'}")
        for listener in listeners:
            if enabled:
                listener.on_provider_enabled(source_id)
            else:
                listener.on_provider_disabled(source_id)

    def set_status(self, source_id: str, status: int, extras: Optional[dict] = None):
        """Report a provider status change to status listeners."""
        with self._lock:
            self._get_source(source_id)
            listeners = list(self._status_listeners)

        for listener in listeners:
            listener.on_status_changed(source_id, status, extras)

    def list_enabled_sources(self) -> List[str]:
        with self._lock:
            return [sid for sid, source in self._sources.items() if source.enabled]

    def last_known_reading(self, source_id: str) -> Optional[Reading]:
        with self._lock:
            return self._get_source(source_id).last_known

    def register_live_updates(
        self,
        source_id: str,
        min_time_s: float,
        min_distance_m: float,
        sink: ReadingSink,
    ):
        """
        Begin pushing readings from source_id to sink.

        Starts a daemon delivery thread when the source has a scripted feed.
        """
        with self._lock:
            source = self._get_source(source_id)
            registration = _Registration(source, min_time_s, min_distance_m, sink)
            self._registrations.append(registration)

        if source.feed:
            registration.thread = threading.Thread(
                target=registration.run,
                name=f"location-{source_id}",
                daemon=True,
            )
            registration.thread.start()

        logger.debug(f"{source_id}: live updates registered "
                     f"(min_time={min_time_s}s, min_distance={min_distance_m}m)")

    def unregister_live_updates(self, sink: ReadingSink):
        """
        Stop all deliveries to sink.

        Delivery threads are joined, so no thread-driven delivery reaches
        the sink after this returns.
        """
        with self._lock:
            removed = [r for r in self._registrations if r.sink == sink]
            self._registrations = [r for r in self._registrations if r.sink != sink]

        for registration in removed:
            registration.stop_event.set()

        current = threading.current_thread()
        for registration in removed:
            thread = registration.thread
            if thread is not None and thread is not current:
                thread.join()

        if removed:
            logger.debug(f"Unregistered {len(removed)} live update registration(s)")

    def deliver(self, source_id: str, reading: Optional[Reading]) -> int:
        """
        Push a reading from source_id synchronously to every registered sink.

        A None reading is passed straight through (the source had nothing).

        Returns:
            Number of sinks that received the reading
        """
        with self._lock:
            source = self._get_source(source_id)
            if reading is not None:
                source.last_known = reading
            registrations = [r for r in self._registrations if r.source is source]

        delivered = 0
        for registration in registrations:
            if reading is None:
                if registration.active:
                    registration.sink(None)
                    delivered += 1
            elif registration.offer(reading):
                delivered += 1
        return delivered

    def registration_count(self, source_id: Optional[str] = None) -> int:
        """Number of live registrations (optionally for one source)."""
        with self._lock:
            if source_id is None:
                return len(self._registrations)
            return sum(1 for r in self._registrations if r.source.source_id == source_id)

    def close(self):
        """Stop every delivery thread."""
        with self._lock:
            sinks = {id(r.sink): r.sink for r in self._registrations}
        for sink in sinks.values():
            self.unregister_live_updates(sink)
