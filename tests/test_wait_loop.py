"""Tests for the review/check wait loop."""

import signal
import threading
import time

import pytest

from src.github_client import GitHubAuthError, PullRequestNotFoundError
from src.interfaces import MergeableState, PRStatusSnapshot, Review, ReviewMarker, RollupState
from src.wait_loop import (
    ChecksPolicy,
    ReviewCheckWaiter,
    WaitOutcome,
    WaitPollingError,
    WaitState,
    install_interrupt_handler,
)

OLD = "2024-01-01T10:00:00Z"
NEW = "2024-01-01T11:00:00Z"


def review(review_id="r1", created_at=NEW):
    return Review(id=review_id, author="gemini", state="COMMENTED", created_at=created_at)


def snapshot(
    reviews=(),
    mergeable=MergeableState.MERGEABLE,
    merge_state_status="BLOCKED",
    rollup_state=RollupState.PENDING,
):
    return PRStatusSnapshot(
        number=42,
        title="Test PR",
        mergeable=mergeable,
        merge_state_status=merge_state_status,
        rollup_state=rollup_state,
        reviews=list(reviews),
    )


class ScriptedFetch:
    """fetch_status stand-in that replays snapshots (or raises exceptions) in order.

    The last entry repeats once the script runs out.
    """

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0

    def __call__(self):
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, BaseException):
            raise step
        return step


def make_waiter(fetch, **kwargs):
    kwargs.setdefault("timeout", 5.0)
    kwargs.setdefault("poll_interval", 0.0)
    return ReviewCheckWaiter(fetch, **kwargs)


@pytest.mark.unit
class TestWaitOutcomes:
    """Tests for each terminal outcome of ReviewCheckWaiter.run()."""

    def test_satisfied_once_reviews_and_checks_are_ready(self):
        """Test that the wait ends on the first poll where both conditions hold."""
        fetch = ScriptedFetch(
            snapshot(),
            snapshot(reviews=[review()], rollup_state=RollupState.SUCCESS),
        )

        result = make_waiter(fetch).run()

        assert result.outcome == WaitOutcome.SATISFIED
        assert result.state.polls == 2
        assert fetch.calls == 2
        assert result.snapshot.rollup_state == RollupState.SUCCESS

    def test_failed_checks_count_as_complete(self):
        """Test that FAILURE is a final CI state, not something to keep waiting on."""
        fetch = ScriptedFetch(snapshot(reviews=[review()], rollup_state=RollupState.FAILURE))

        result = make_waiter(fetch).run()

        assert result.outcome == WaitOutcome.SATISFIED

    def test_merge_conflict_short_circuits(self):
        """Test that a conflicting PR aborts even when reviews are ready and rollup is absent."""
        fetch = ScriptedFetch(
            snapshot(
                reviews=[review()],
                mergeable=MergeableState.CONFLICTING,
                merge_state_status="DIRTY",
                rollup_state=None,
            )
        )

        result = make_waiter(fetch).run()

        assert result.outcome == WaitOutcome.MERGE_CONFLICT
        assert result.state.reviews_ready is True
        assert result.state.checks_complete is False

    def test_merge_conflict_aborts_checks_only_wait(self):
        """Test that the conflict check applies when only checks were requested."""
        fetch = ScriptedFetch(snapshot(mergeable=MergeableState.CONFLICTING, rollup_state=None))

        result = make_waiter(fetch, wait_for_reviews=False).run()

        assert result.outcome == WaitOutcome.MERGE_CONFLICT

    def test_timeout_is_not_an_error(self):
        """Test that an unmet condition ends with TIMED_OUT within about one poll interval."""
        fetch = ScriptedFetch(snapshot())
        waiter = make_waiter(fetch, timeout=0.1, poll_interval=0.03)

        start = time.monotonic()
        result = waiter.run()
        elapsed = time.monotonic() - start

        assert result.outcome == WaitOutcome.TIMED_OUT
        assert result.elapsed > 0.1
        assert elapsed < 0.1 + 0.03 + 0.5
        assert fetch.calls >= 2

    def test_uses_injected_clock(self):
        """Test that the timeout is measured with the supplied clock."""
        ticks = iter([0.0, 0.0, 10.0, 10.0, 10.0])
        fetch = ScriptedFetch(snapshot())

        result = make_waiter(fetch, timeout=5.0, clock=lambda: next(ticks)).run()

        assert result.outcome == WaitOutcome.TIMED_OUT
        assert fetch.calls == 1
        assert result.elapsed == 10.0


@pytest.mark.unit
class TestCancellation:
    """Tests for cancelling a wait."""

    def test_cancel_before_run_invokes_on_cancel(self):
        """Test that a pending cancellation is seen before the first fetch."""
        fetch = ScriptedFetch(snapshot())
        seen = []
        waiter = make_waiter(fetch, on_cancel=seen.append)

        waiter.cancel()
        result = waiter.run()

        assert result.outcome == WaitOutcome.CANCELLED
        assert fetch.calls == 0
        assert len(seen) == 1
        assert isinstance(seen[0], WaitState)

    def test_cancel_interrupts_sleep(self):
        """Test that cancelling from another thread ends a long poll sleep promptly."""
        fetch = ScriptedFetch(snapshot())
        waiter = make_waiter(fetch, timeout=60.0, poll_interval=30.0)

        timer = threading.Timer(0.05, waiter.cancel)
        timer.start()
        start = time.monotonic()
        result = waiter.run()
        timer.join()

        assert result.outcome == WaitOutcome.CANCELLED
        assert time.monotonic() - start < 5.0

    def test_shared_cancel_event(self):
        """Test that an externally owned event cancels the wait."""
        event = threading.Event()
        event.set()
        waiter = make_waiter(ScriptedFetch(snapshot()), cancel_event=event)

        assert waiter.cancel_requested
        assert waiter.run().outcome == WaitOutcome.CANCELLED

    def test_keyboard_interrupt_becomes_cancelled(self):
        """Test that Ctrl+C raised inside a fetch is reported as CANCELLED."""
        seen = []
        waiter = make_waiter(ScriptedFetch(KeyboardInterrupt()), on_cancel=seen.append)

        result = waiter.run()

        assert result.outcome == WaitOutcome.CANCELLED
        assert len(seen) == 1

    def test_sigterm_cancels_wait(self):
        """Test that the installed SIGTERM handler cancels the waiter and is removed afterwards."""
        waiter = make_waiter(ScriptedFetch(snapshot()))
        previous = signal.getsignal(signal.SIGTERM)

        with install_interrupt_handler(waiter):
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)

        assert waiter.cancel_requested
        assert waiter.run().outcome == WaitOutcome.CANCELLED
        assert signal.getsignal(signal.SIGTERM) is previous

    def test_handler_is_noop_off_main_thread(self):
        """Test that installing from a worker thread leaves signal handlers alone."""
        waiter = make_waiter(ScriptedFetch(snapshot()))
        previous = signal.getsignal(signal.SIGINT)
        observed = []

        def body():
            with install_interrupt_handler(waiter):
                observed.append(signal.getsignal(signal.SIGINT))

        worker = threading.Thread(target=body)
        worker.start()
        worker.join()

        assert observed == [previous]


@pytest.mark.unit
class TestFetchFailures:
    """Tests for transient and persistent fetch errors."""

    def test_transient_error_continues_polling(self):
        """Test that a failed fetch is logged and the next poll proceeds."""
        fetch = ScriptedFetch(
            RuntimeError("network down"),
            snapshot(reviews=[review()], rollup_state=RollupState.SUCCESS),
        )

        result = make_waiter(fetch).run()

        assert result.outcome == WaitOutcome.SATISFIED
        assert result.state.polls == 2
        assert result.state.consecutive_failures == 0

    def test_consecutive_failures_raise(self):
        """Test that hitting the failure cap raises WaitPollingError."""
        error = RuntimeError("still down")
        fetch = ScriptedFetch(error)

        with pytest.raises(WaitPollingError) as exc_info:
            make_waiter(fetch, max_consecutive_failures=3).run()

        assert exc_info.value.failures == 3
        assert exc_info.value.last_error is error
        assert fetch.calls == 3

    def test_success_resets_failure_count(self):
        """Test that only failures in a row count toward the cap."""
        fail = RuntimeError("flaky")
        fetch = ScriptedFetch(
            fail,
            fail,
            snapshot(),
            fail,
            fail,
            snapshot(reviews=[review()], rollup_state=RollupState.SUCCESS),
        )

        result = make_waiter(fetch, max_consecutive_failures=3).run()

        assert result.outcome == WaitOutcome.SATISFIED
        assert fetch.calls == 6

    def test_zero_cap_retries_until_timeout(self):
        """Test that a cap of 0 never raises."""
        fetch = ScriptedFetch(RuntimeError("down"))

        result = make_waiter(fetch, timeout=0.05, poll_interval=0.01, max_consecutive_failures=0).run()

        assert result.outcome == WaitOutcome.TIMED_OUT
        assert isinstance(result.state.last_error, RuntimeError)

    def test_failure_after_cancel_ends_cancelled(self):
        """Test that a fetch failing once cancel is requested does not trip the cap."""
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) == 2:
                waiter.cancel()
            raise RuntimeError("connection reset")

        waiter = make_waiter(fetch, max_consecutive_failures=2)
        result = waiter.run()

        assert result.outcome == WaitOutcome.CANCELLED
        assert len(calls) == 2

    def test_auth_error_is_raised_immediately(self):
        """Test that an authentication failure is not retried."""
        fetch = ScriptedFetch(GitHubAuthError("bad credentials"))

        with pytest.raises(GitHubAuthError):
            make_waiter(fetch, max_consecutive_failures=5).run()

        assert fetch.calls == 1

    def test_missing_pr_is_raised_immediately(self):
        """Test that a PR that does not exist ends the wait on the first poll."""
        fetch = ScriptedFetch(PullRequestNotFoundError("PR #42 not found in owner/repo"))

        with pytest.raises(PullRequestNotFoundError):
            make_waiter(fetch, max_consecutive_failures=0).run()

        assert fetch.calls == 1

    def test_custom_fatal_errors(self):
        """Test that callers can choose which errors end the wait at once."""
        fetch = ScriptedFetch(KeyError("missing"))

        with pytest.raises(KeyError):
            make_waiter(fetch, fatal_errors=(KeyError,)).run()

        assert fetch.calls == 1


@pytest.mark.unit
class TestReviewReadiness:
    """Tests for detecting new reviews against the stored marker."""

    def test_same_review_as_marker_is_not_new(self):
        """Test that the review already recorded doesn't satisfy the wait."""
        marker = ReviewMarker(id="r1", created_at=NEW)
        waiter = make_waiter(ScriptedFetch(snapshot()), last_marker=marker, wait_for_checks=False)
        state = WaitState(started_at=0.0, last_marker=marker)

        outcome = waiter.evaluate(snapshot(reviews=[review("r1", NEW)]), state)

        assert outcome is None
        assert state.reviews_ready is False

    def test_equal_timestamp_different_id_is_new(self):
        """Test that a different review sharing the marker's timestamp counts."""
        marker = ReviewMarker(id="r1", created_at=NEW)
        waiter = make_waiter(ScriptedFetch(snapshot()), last_marker=marker, wait_for_checks=False)
        state = WaitState(started_at=0.0, last_marker=marker)

        outcome = waiter.evaluate(snapshot(reviews=[review("r2", NEW)]), state)

        assert outcome == WaitOutcome.SATISFIED

    def test_older_review_is_not_new(self):
        marker = ReviewMarker(id="r2", created_at=NEW)
        waiter = make_waiter(ScriptedFetch(snapshot()), wait_for_checks=False)
        state = WaitState(started_at=0.0, last_marker=marker)

        assert waiter.evaluate(snapshot(reviews=[review("r1", OLD)]), state) is None

    def test_no_marker_any_review_counts(self):
        waiter = make_waiter(ScriptedFetch(snapshot()), wait_for_checks=False)
        state = WaitState(started_at=0.0)

        assert waiter.evaluate(snapshot(reviews=[review("r1", OLD)]), state) == WaitOutcome.SATISFIED

    def test_no_marker_no_reviews_keeps_waiting(self):
        waiter = make_waiter(ScriptedFetch(snapshot()), wait_for_checks=False)
        state = WaitState(started_at=0.0)

        assert waiter.evaluate(snapshot(), state) is None

    def test_checks_only_wait_ignores_reviews(self):
        """Test that excluded reviews are never evaluated."""
        waiter = make_waiter(ScriptedFetch(snapshot()), wait_for_reviews=False)
        state = WaitState(started_at=0.0)

        outcome = waiter.evaluate(snapshot(rollup_state=RollupState.SUCCESS), state)

        assert outcome == WaitOutcome.SATISFIED
        assert state.reviews_ready is False


@pytest.mark.unit
class TestMonotonicState:
    """Tests that readiness flags never revert within a run."""

    def test_flags_stay_true_when_later_snapshots_regress(self):
        """Test that a PENDING rollup after SUCCESS doesn't undo checks_complete."""
        waiter = make_waiter(ScriptedFetch(snapshot()))
        state = WaitState(started_at=0.0)

        waiter.evaluate(snapshot(rollup_state=RollupState.SUCCESS), state)
        assert state.checks_complete is True
        assert state.reviews_ready is False

        outcome = waiter.evaluate(snapshot(reviews=[review()], rollup_state=RollupState.PENDING), state)

        assert state.checks_complete is True
        assert state.reviews_ready is True
        assert outcome == WaitOutcome.SATISFIED

    def test_on_poll_sees_progress(self):
        """Test that on_poll is called for every non-terminal poll."""
        polls = []
        fetch = ScriptedFetch(
            snapshot(rollup_state=RollupState.SUCCESS),
            snapshot(rollup_state=RollupState.PENDING),
            snapshot(reviews=[review()], rollup_state=RollupState.PENDING),
        )

        def on_poll(state):
            polls.append((state.polls, state.checks_complete))

        result = make_waiter(fetch, on_poll=on_poll).run()

        assert result.outcome == WaitOutcome.SATISFIED
        assert polls == [(1, True), (2, True)]


@pytest.mark.unit
class TestWaiterValidation:
    """Tests for constructor argument checks."""

    def test_requires_something_to_wait_for(self):
        with pytest.raises(ValueError, match="Nothing to wait for"):
            ReviewCheckWaiter(
                ScriptedFetch(snapshot()), wait_for_reviews=False, wait_for_checks=False, timeout=1
            )

    @pytest.mark.parametrize("timeout,poll_interval", [(-1, 1), (1, -1)])
    def test_rejects_negative_durations(self, timeout, poll_interval):
        with pytest.raises(ValueError):
            ReviewCheckWaiter(ScriptedFetch(snapshot()), timeout=timeout, poll_interval=poll_interval)


@pytest.mark.unit
class TestChecksPolicy:
    """Tests for deciding whether CI is finished."""

    @pytest.mark.parametrize(
        "rollup,expected",
        [
            (RollupState.SUCCESS, True),
            (RollupState.FAILURE, True),
            (RollupState.ERROR, True),
            (RollupState.PENDING, False),
            (RollupState.EXPECTED, False),
        ],
    )
    def test_rollup_states(self, rollup, expected):
        assert ChecksPolicy().checks_complete(snapshot(rollup_state=rollup)) is expected

    @pytest.mark.parametrize(
        "merge_state,expected",
        [
            ("CLEAN", True),
            ("HAS_HOOKS", True),
            ("clean", True),
            ("BLOCKED", False),
            ("UNKNOWN", False),
            ("", False),
        ],
    )
    def test_absent_rollup_uses_merge_state(self, merge_state, expected):
        """Test that with no rollup only 'no checks configured' merge states count."""
        snap = snapshot(rollup_state=None, merge_state_status=merge_state)

        assert ChecksPolicy().checks_complete(snap) is expected

    def test_absent_rollup_on_conflicting_pr(self):
        snap = snapshot(rollup_state=None, mergeable=MergeableState.CONFLICTING)

        assert ChecksPolicy().checks_complete(snap) is True
        assert ChecksPolicy(conflicting_means_complete=False).checks_complete(snap) is False

    def test_custom_no_checks_states(self):
        """Test that the 'no checks' merge states are configurable."""
        policy = ChecksPolicy(no_checks_merge_states=frozenset({"UNSTABLE"}))

        assert policy.checks_complete(snapshot(rollup_state=None, merge_state_status="UNSTABLE"))
        assert not policy.checks_complete(snapshot(rollup_state=None, merge_state_status="CLEAN"))
