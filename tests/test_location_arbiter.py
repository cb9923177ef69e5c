"""
Unit tests for LocationArbiter.

Tests cover:
- Absent candidate handling and first reading acceptance
- Accuracy comparison (ties, one-sided accuracy, no accuracy)
- Staleness fallback (fresh always displaces stale)
- Readiness predicate boundaries
- Listener notification
- Concurrent submission
"""

import threading

import pytest

from bestfix_core.localization import (
    ArbiterConfig,
    LocationArbiter,
    create_default_arbiter,
    decide,
    is_more_accurate,
)
from bestfix_core.localization.location_arbiter import (
    REASON_CANDIDATE_STALE,
    REASON_FIRST_READING,
    REASON_HELD_STALE,
    REASON_LESS_ACCURATE,
    REASON_MORE_ACCURATE,
    REASON_NOT_COMPARABLE,
    REASON_NO_READING,
)
from bestfix_core.proto import Reading

from tests.conftest import MINUTE, T_NOW


# =============================================================================
# Absent / First Reading
# =============================================================================


class TestInitialState:
    """Tests for the arbiter before and at the first reading."""

    def test_starts_empty(self, arbiter):
        """Nothing is held before any reading is accepted."""
        assert arbiter.current() is None

    def test_absent_candidate_on_empty_arbiter(self, arbiter):
        """Submitting None to an empty arbiter keeps it empty."""
        assert arbiter.submit(None) is False
        assert arbiter.current() is None

    def test_absent_candidate_keeps_held(self, arbiter, make_reading):
        """Submitting None never changes the held reading."""
        held = make_reading(accuracy_m=5.0)
        arbiter.submit(held)

        assert arbiter.submit(None) is False
        assert arbiter.current() is held

    def test_first_reading_accepted_without_accuracy(self, arbiter, make_reading):
        """Scenario: empty arbiter, fresh reading without accuracy."""
        reading = make_reading(accuracy_m=None)

        assert arbiter.submit(reading) is True
        assert arbiter.current() is reading

    def test_first_reading_accepted_even_if_stale(self, arbiter, make_reading):
        """First reading is taken regardless of age or accuracy."""
        reading = make_reading(age_s=60 * MINUTE, accuracy_m=5000.0)

        assert arbiter.submit(reading) is True
        assert arbiter.current() is reading


# =============================================================================
# Accuracy Comparison
# =============================================================================


class TestAccuracyComparison:
    """Tests for replacement driven by accuracy."""

    def test_more_accurate_fresh_candidate_replaces(self, arbiter, make_reading):
        arbiter.submit(make_reading(accuracy_m=50.0))
        candidate = make_reading(accuracy_m=10.0, source_id="network")

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_equal_accuracy_favors_candidate(self, arbiter, make_reading):
        """Ties go to the newer reading."""
        arbiter.submit(make_reading(age_s=30, accuracy_m=20.0))
        candidate = make_reading(accuracy_m=20.0, source_id="network")

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_less_accurate_fresh_candidate_rejected(self, arbiter, make_reading):
        """Scenario: both fresh, candidate 20 m vs held 5 m."""
        held = make_reading(accuracy_m=5.0)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(accuracy_m=20.0)) is False
        assert arbiter.current() is held

    def test_candidate_with_accuracy_beats_held_without(self, arbiter, make_reading):
        arbiter.submit(make_reading(accuracy_m=None))
        candidate = make_reading(accuracy_m=4000.0)

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_candidate_without_accuracy_loses_to_fresh_held(self, arbiter, make_reading):
        held = make_reading(accuracy_m=4000.0)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(accuracy_m=None)) is False
        assert arbiter.current() is held

    def test_neither_has_accuracy_held_fresh(self, arbiter, make_reading):
        """Without accuracy on either side, a fresh held reading stays."""
        held = make_reading(age_s=MINUTE, accuracy_m=None)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(accuracy_m=None)) is False
        assert arbiter.current() is held

    def test_more_accurate_but_stale_candidate_rejected(self, arbiter, make_reading):
        """Accuracy only counts inside the staleness window."""
        held = make_reading(accuracy_m=50.0)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(age_s=10 * MINUTE, accuracy_m=1.0)) is False
        assert arbiter.current() is held

    def test_zero_accuracy_is_valid(self, arbiter, make_reading):
        arbiter.submit(make_reading(accuracy_m=1.0))
        candidate = make_reading(accuracy_m=0.0)

        assert arbiter.submit(candidate) is True


# =============================================================================
# Staleness Fallback
# =============================================================================


class TestStalenessFallback:
    """Tests for fresh readings displacing stale ones."""

    def test_fresh_less_accurate_replaces_stale(self, arbiter, make_reading):
        """Scenario: held 10 min old at 5 m, candidate fresh at 20 m."""
        arbiter.submit(make_reading(age_s=10 * MINUTE, accuracy_m=5.0))
        candidate = make_reading(accuracy_m=20.0)

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_fresh_without_accuracy_replaces_stale(self, arbiter, make_reading):
        arbiter.submit(make_reading(age_s=10 * MINUTE, accuracy_m=5.0))
        candidate = make_reading(accuracy_m=None)

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_fresh_replaces_stale_when_neither_has_accuracy(self, arbiter, make_reading):
        arbiter.submit(make_reading(age_s=10 * MINUTE))
        candidate = make_reading()

        assert arbiter.submit(candidate) is True

    def test_stale_candidate_never_replaces_stale_held(self, arbiter, make_reading):
        held = make_reading(age_s=20 * MINUTE, accuracy_m=50.0)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(age_s=10 * MINUTE, accuracy_m=1.0)) is False
        assert arbiter.current() is held

    def test_held_ages_out_with_clock(self, arbiter, make_reading, clock):
        """A held reading that was fresh becomes displaceable once it ages."""
        held = make_reading(accuracy_m=5.0)
        arbiter.submit(held)
        assert arbiter.submit(make_reading(accuracy_m=30.0)) is False

        clock.advance(6 * MINUTE)
        candidate = make_reading(accuracy_m=30.0)

        assert arbiter.submit(candidate) is True
        assert arbiter.current() is candidate

    def test_threshold_is_inclusive(self, arbiter, make_reading):
        """Age exactly at the threshold still counts as fresh."""
        held = make_reading(age_s=5 * MINUTE, accuracy_m=5.0)
        arbiter.submit(held)

        assert arbiter.submit(make_reading(accuracy_m=20.0)) is False
        assert arbiter.current() is held

    def test_custom_threshold(self, clock, make_reading):
        arbiter = LocationArbiter(ArbiterConfig(stale_threshold_s=30.0), clock=clock)
        arbiter.submit(make_reading(age_s=31, accuracy_m=5.0))
        candidate = make_reading(accuracy_m=20.0)

        assert arbiter.submit(candidate) is True


# =============================================================================
# Pure Decision Function
# =============================================================================


class TestDecide:
    """Tests for decide() reason codes and signals."""

    def test_reasons(self, make_reading):
        fresh_5 = make_reading(accuracy_m=5.0)
        fresh_20 = make_reading(accuracy_m=20.0)
        fresh_none = make_reading()
        stale_5 = make_reading(age_s=10 * MINUTE, accuracy_m=5.0)

        assert decide(fresh_5, None, T_NOW).reason == REASON_NO_READING
        assert decide(None, fresh_5, T_NOW).reason == REASON_FIRST_READING
        assert decide(fresh_20, fresh_5, T_NOW).reason == REASON_MORE_ACCURATE
        assert decide(stale_5, fresh_20, T_NOW).reason == REASON_HELD_STALE
        assert decide(fresh_5, fresh_20, T_NOW).reason == REASON_LESS_ACCURATE
        assert decide(fresh_none, fresh_none, T_NOW).reason == REASON_NOT_COMPARABLE
        assert decide(fresh_20, stale_5, T_NOW).reason == REASON_CANDIDATE_STALE

    def test_signals(self, make_reading):
        held = make_reading(age_s=10 * MINUTE, accuracy_m=5.0)
        candidate = make_reading(accuracy_m=20.0)

        decision = decide(held, candidate, T_NOW)

        assert decision.accept
        assert decision.candidate_fresh is True
        assert decision.held_fresh is False
        assert decision.accuracy_comparable is True
        assert decision.candidate_more_accurate is False

    def test_more_accurate_wins_over_held_stale_reason(self, make_reading):
        """When both clauses hold, the accuracy clause is reported."""
        held = make_reading(age_s=10 * MINUTE, accuracy_m=50.0)
        candidate = make_reading(accuracy_m=5.0)

        assert decide(held, candidate, T_NOW).reason == REASON_MORE_ACCURATE

    def test_is_more_accurate(self, make_reading):
        assert is_more_accurate(make_reading(accuracy_m=1.0), make_reading())
        assert not is_more_accurate(make_reading(), make_reading(accuracy_m=1.0))
        assert is_more_accurate(make_reading(accuracy_m=3.0), make_reading(accuracy_m=3.0))
        assert not is_more_accurate(make_reading(accuracy_m=3.1), make_reading(accuracy_m=3.0))


# =============================================================================
# Readiness Predicate
# =============================================================================


class TestIsAcceptableAsInitial:
    """Tests for the first-fix readiness predicate."""

    def test_none_is_not_acceptable(self, arbiter):
        assert arbiter.is_acceptable_as_initial(None) is False

    def test_missing_accuracy_not_acceptable(self, arbiter, make_reading):
        assert arbiter.is_acceptable_as_initial(make_reading()) is False

    def test_accuracy_at_threshold_acceptable(self, arbiter, make_reading):
        assert arbiter.is_acceptable_as_initial(make_reading(accuracy_m=100.0)) is True

    def test_accuracy_above_threshold_not_acceptable(self, arbiter, make_reading):
        assert arbiter.is_acceptable_as_initial(make_reading(accuracy_m=100.01)) is False

    def test_age_just_below_max_acceptable(self, arbiter, make_reading):
        reading = make_reading(age_s=5 * MINUTE - 0.001, accuracy_m=10.0)
        assert arbiter.is_acceptable_as_initial(reading) is True

    def test_age_at_max_not_acceptable(self, arbiter, make_reading):
        reading = make_reading(age_s=5 * MINUTE, accuracy_m=10.0)
        assert arbiter.is_acceptable_as_initial(reading) is False

    def test_old_accurate_reading_not_acceptable(self, arbiter, make_reading):
        """Scenario: one hour old at 1 m accuracy."""
        reading = make_reading(age_s=60 * MINUTE, accuracy_m=1.0)
        assert arbiter.is_acceptable_as_initial(reading) is False

    def test_explicit_now(self, arbiter, make_reading):
        reading = make_reading(accuracy_m=10.0)

        assert arbiter.is_acceptable_as_initial(reading, now=T_NOW + 4 * MINUTE)
        assert not arbiter.is_acceptable_as_initial(reading, now=T_NOW + 6 * MINUTE)

    def test_does_not_touch_held(self, arbiter, make_reading):
        arbiter.is_acceptable_as_initial(make_reading(accuracy_m=10.0))
        assert arbiter.current() is None


# =============================================================================
# Listeners / Metrics / Misc
# =============================================================================


class TestListenersAndMetrics:
    """Tests for listener callbacks and metrics recording."""

    def test_listener_called_on_accept_only(self, arbiter, make_reading):
        seen = []
        arbiter.add_listener(seen.append)

        first = make_reading(accuracy_m=5.0)
        arbiter.submit(first)
        arbiter.submit(make_reading(accuracy_m=50.0))
        arbiter.submit(None)

        assert seen == [first]

    def test_remove_listener(self, arbiter, make_reading):
        seen = []
        arbiter.add_listener(seen.append)
        arbiter.remove_listener(seen.append)
        arbiter.remove_listener(seen.append)

        arbiter.submit(make_reading())

        assert seen == []

    def test_listener_error_propagates(self, arbiter, make_reading):
        def boom(reading):
            raise RuntimeError("listener failed")

        arbiter.add_listener(boom)
        reading = make_reading()

        with pytest.raises(RuntimeError):
            arbiter.submit(reading)

        # State was already swapped before notification
        assert arbiter.current() is reading

    def test_metrics_counts(self, arbiter, make_reading, fresh_metrics):
        arbiter.submit(None)
        arbiter.submit(make_reading(accuracy_m=5.0))
        arbiter.submit(make_reading(accuracy_m=50.0))
        arbiter.submit(make_reading(age_s=10 * MINUTE, accuracy_m=1.0))

        assert fresh_metrics.get_counter('readings_submitted') == 4
        assert fresh_metrics.get_counter('readings_accepted') == 1
        assert fresh_metrics.get_drop_count('no_reading') == 1
        assert fresh_metrics.get_drop_count('less_accurate') == 1
        assert fresh_metrics.get_drop_count('candidate_stale') == 1

    def test_reset(self, arbiter, make_reading):
        arbiter.submit(make_reading())
        arbiter.reset()
        assert arbiter.current() is None

    def test_default_arbiter(self):
        arbiter = create_default_arbiter()
        assert arbiter.config.stale_threshold_s == 300.0
        assert arbiter.config.initial_accuracy_threshold_m == 100.0
        assert arbiter.config.initial_max_age_s == 300.0


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentSubmit:
    """Tests for submit() under parallel delivery."""

    def test_held_is_one_of_submitted(self, arbiter, make_reading):
        """Parallel deliveries leave a fully formed, submitted reading."""
        per_thread = 200
        batches = [
            [make_reading(accuracy_m=float(t * per_thread + i + 1), source_id=f"s{t}")
             for i in range(per_thread)]
            for t in range(4)
        ]
        submitted = {id(r) for batch in batches for r in batch}

        def worker(batch):
            for reading in batch:
                arbiter.submit(reading)

        threads = [threading.Thread(target=worker, args=(b,)) for b in batches]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        held = arbiter.current()
        assert isinstance(held, Reading)
        assert id(held) in submitted

    def test_most_accurate_wins_when_all_fresh(self, arbiter, make_reading):
        """With all readings fresh, the most accurate one ends up held."""
        readings = [make_reading(accuracy_m=float(a)) for a in range(1, 101)]
        best = readings[0]

        def worker(batch):
            for reading in batch:
                arbiter.submit(reading)

        threads = [
            threading.Thread(target=worker, args=(readings[i::4],))
            for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert arbiter.current() is best

    def test_listeners_see_acceptances_in_order(self, arbiter, make_reading):
        """Notifications follow acceptance order; the last one is current()."""
        readings = [make_reading(accuracy_m=float(a), source_id=f"s{a % 4}")
                    for a in range(400, 0, -1)]
        notified = []
        out_of_step = []

        def on_change(reading):
            if arbiter.current() is not reading:
                out_of_step.append(reading)
            notified.append(reading)

        arbiter.add_listener(on_change)

        def worker(batch):
            for reading in batch:
                arbiter.submit(reading)

        threads = [
            threading.Thread(target=worker, args=(readings[i::4],))
            for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # All fresh, so each accepted reading is at least as accurate as the last
        accuracies = [r.accuracy_m for r in notified]
        assert accuracies == sorted(accuracies, reverse=True)
        assert notified[-1] is arbiter.current()
        assert out_of_step == []

    def test_listener_may_submit(self, arbiter, make_reading):
        better = make_reading(accuracy_m=1.0)
        seen = []

        def on_change(reading):
            seen.append(reading)
            if reading is not better:
                arbiter.submit(better)

        arbiter.add_listener(on_change)
        first = make_reading(accuracy_m=10.0)
        arbiter.submit(first)

        assert seen == [first, better]
        assert arbiter.current() is better
