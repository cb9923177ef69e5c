"""
Best Location Arbiter.

Holds the single best-known reading among several concurrently reporting
location sources and decides, reading by reading, whether a newly arrived
candidate replaces it.

Decision policy (first matching rule wins, "now" captured once per call):
1. No candidate -> no-op
2. Nothing held yet -> accept
3. Accept if the candidate is fresh and at least as accurate as the held
   reading, or if the candidate is fresh and the held reading is stale

This is an online elimination process: the held reading is the winner
against everything submitted before it, not the most accurate reading
ever seen. Late arrivals are never re-evaluated retroactively.
"""

import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from bestfix_core.proto.reading import Reading
from bestfix_core.metrics import get_metrics

logger = logging.getLogger(__name__)


# Decision reason codes
REASON_NO_READING = 'no_reading'
REASON_FIRST_READING = 'first_reading'
REASON_MORE_ACCURATE = 'more_accurate'
REASON_HELD_STALE = 'held_stale'
REASON_LESS_ACCURATE = 'less_accurate'
REASON_NOT_COMPARABLE = 'not_comparable'
REASON_CANDIDATE_STALE = 'candidate_stale'


@dataclass
class ArbiterConfig:
    """
    Configuration for the location arbiter.

    Attributes:
        stale_threshold_s: Age beyond which a reading is no longer trusted
            for accuracy comparison
        initial_accuracy_threshold_m: Worst accuracy accepted as an initial fix
        initial_max_age_s: Oldest reading accepted as an initial fix
    """

    stale_threshold_s: float = 5 * 60.0
    initial_accuracy_threshold_m: float = 100.0
    initial_max_age_s: float = 5 * 60.0


@dataclass(frozen=True)
class ArbitrationDecision:
    """
    Outcome of comparing a candidate against the held reading.

    Attributes:
        accept: True if the candidate should replace the held reading
        reason: Reason code (see REASON_* constants)
        candidate_fresh: Candidate age within stale threshold
        held_fresh: Held age within stale threshold (None if nothing held)
        accuracy_comparable: At least one side reported accuracy
        candidate_more_accurate: Only meaningful when accuracy_comparable
    """

    accept: bool
    reason: str
    candidate_fresh: Optional[bool] = None
    held_fresh: Optional[bool] = None
    accuracy_comparable: bool = False
    candidate_more_accurate: bool = False


def is_more_accurate(candidate: Reading, held: Reading) -> bool:
    """
    Compare accuracy of two readings, at least one of which has accuracy.

    A reading with accuracy beats one without. Ties go to the candidate.
    """
    if candidate.has_accuracy and not held.has_accuracy:
        return True
    if not candidate.has_accuracy and held.has_accuracy:
        return False
    return candidate.accuracy_m <= held.accuracy_m


def decide(
    held: Optional[Reading],
    candidate: Optional[Reading],
    now: float,
    stale_threshold_s: float = ArbiterConfig.stale_threshold_s,
) -> ArbitrationDecision:
    """
    Decide whether candidate replaces held (pure function).

    Args:
        held: Currently held reading (None if nothing accepted yet)
        candidate: Newly arrived reading (None = source had nothing)
        now: Reference time (Unix epoch s)
        stale_threshold_s: Freshness window in seconds

    Returns:
        ArbitrationDecision
    """
    if candidate is None:
        return ArbitrationDecision(accept=False, reason=REASON_NO_READING)

    if held is None:
        return ArbitrationDecision(accept=True, reason=REASON_FIRST_READING)

    candidate_fresh = candidate.age_s(now) <= stale_threshold_s
    held_fresh = held.age_s(now) <= stale_threshold_s

    accuracy_comparable = candidate.has_accuracy or held.has_accuracy
    candidate_more_accurate = False
    if accuracy_comparable:
        candidate_more_accurate = is_more_accurate(candidate, held)

    signals = dict(
        candidate_fresh=candidate_fresh,
        held_fresh=held_fresh,
        accuracy_comparable=accuracy_comparable,
        candidate_more_accurate=candidate_more_accurate,
    )

    if accuracy_comparable and candidate_more_accurate and candidate_fresh:
        return ArbitrationDecision(accept=True, reason=REASON_MORE_ACCURATE, **signals)

    # Fresh always displaces stale, regardless of accuracy
    if candidate_fresh and not held_fresh:
        return ArbitrationDecision(accept=True, reason=REASON_HELD_STALE, **signals)

    if not candidate_fresh:
        reason = REASON_CANDIDATE_STALE
    elif accuracy_comparable:
        reason = REASON_LESS_ACCURATE
    else:
        reason = REASON_NOT_COMPARABLE

    return ArbitrationDecision(accept=False, reason=reason, **signals)


class LocationArbiter:
    """
    Thread-safe holder of the best known location.

    Usage:
        arbiter = LocationArbiter()
        arbiter.submit(reading)          # from any delivery thread
        best = arbiter.current()         # None until a reading is accepted

        if arbiter.is_acceptable_as_initial(best):
            start_search(best)

    submit() is an atomic read-decide-write under a single lock; current()
    returns the immutable Reading that was held at call time.
    """

    def __init__(
        self,
        config: Optional[ArbiterConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize arbiter with nothing held.

        Args:
            config: Arbiter configuration (uses defaults if None)
            clock: Wall-clock source returning Unix epoch seconds
        """
        self.config = config or ArbiterConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._notify_lock = threading.RLock()
        self._held: Optional[Reading] = None
        self._listeners: List[Callable[[Reading], None]] = []
        self.metrics = get_metrics()

    def submit(self, candidate: Optional[Reading]) -> bool:
        """
        Offer a reading to the arbiter.

        Args:
            candidate: New reading, or None if the source had nothing

        Returns:
            True if the candidate became the held reading
        """
        self.metrics.increment('readings_submitted')

        # Outer lock spans swap and notification so listeners see acceptances
        # in order; current() only takes the inner one.
        with self._notify_lock:
            with self._lock:
                now = self._clock()
                held = self._held
                decision = decide(held, candidate, now, self.config.stale_threshold_s)
                if decision.accept:
                    self._held = candidate
                listeners = list(self._listeners) if decision.accept else []

            if candidate is None:
                logger.debug("submit: no reading, doing nothing")
            else:
                logger.debug(
                    f"submit: {candidate.source_id} accept={decision.accept} "
                    f"reason={decision.reason} "
                    f"candidate_fresh={decision.candidate_fresh} "
                    f"held_fresh={decision.held_fresh} "
                    f"accuracy_comparable={decision.accuracy_comparable} "
                    f"candidate_more_accurate={decision.candidate_more_accurate}"
                )
                self.metrics.record_histogram('candidate_age_s', candidate.age_s(now))
                if candidate.has_accuracy:
                    self.metrics.record_histogram('accuracy_m', candidate.accuracy_m)

            if not decision.accept:
                self.metrics.increment_drop(decision.reason)
                return False

            self.metrics.increment('readings_accepted')
            for listener in listeners:
                listener(candidate)
            return True

    def current(self) -> Optional[Reading]:
        """Get the held reading (None if nothing accepted yet)."""
        with self._lock:
            return self._held

    def is_acceptable_as_initial(
        self,
        candidate: Optional[Reading],
        now: Optional[float] = None
    ) -> bool:
        """
        Check if a reading is good enough to act on as a first fix.

        Independent of the held reading; never mutates state.

        Args:
            candidate: Reading to check (None -> False)
            now: Reference time (default: arbiter clock)

        Returns:
            True if accuracy is known and within threshold (inclusive) and
            the reading is younger than the max age (exclusive)
        """
        if candidate is None or not candidate.has_accuracy:
            logger.debug(f"Location is not accurate: {candidate}")
            return False

        if candidate.accuracy_m > self.config.initial_accuracy_threshold_m:
            logger.debug(f"Location is not accurate: {candidate}")
            return False

        if now is None:
            now = self._clock()

        if candidate.age_s(now) >= self.config.initial_max_age_s:
            logger.debug(f"Location is too old: {candidate}")
            return False

        logger.debug(f"Location is accurate: {candidate}")
        return True

    def add_listener(self, callback: Callable[[Reading], None]):
        """
        Register a callback invoked with each newly accepted reading.

        Callbacks run on the submitting thread in acceptance order. current()
        stays readable while they run; a callback may submit re-entrantly, but
        must not wait on another delivery thread (e.g. detach a source).
        """
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[Reading], None]):
        """Remove a previously added callback (no-op if absent)."""
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def reset(self):
        """Forget the held reading."""
        with self._lock:
            self._held = None


def create_default_arbiter() -> LocationArbiter:
    """
    Create arbiter with default thresholds (5 min staleness, 100 m first fix).

    Returns:
        Configured LocationArbiter instance
    """
    config = ArbiterConfig(
        stale_threshold_s=300.0,
        initial_accuracy_threshold_m=100.0,
        initial_max_age_s=300.0,
    )

    return LocationArbiter(config)
