"""Polling loop that waits for PR reviews and CI checks.

The loop repeatedly fetches a PR status snapshot until every requested
condition holds (new reviews are present, CI has reached a final state),
the PR turns out to have merge conflicts, the timeout expires, or the user
cancels. Each of those endings is a distinct WaitOutcome so callers can react
differently: a timeout suggests running again with a longer budget, a merge
conflict means the PR has to be fixed first.

Polls never overlap: the next fetch starts only after the previous one and
its evaluation have finished. The timeout is checked at the top of each
iteration, so a slow fetch can delay timeout detection by up to one fetch
duration.
"""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from src.github_client import GitHubAuthError, PullRequestNotFoundError
from src.interfaces import MergeableState, PRStatusSnapshot, ReviewMarker
from src.logger import get_logger
from src.review_state import has_new_reviews

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_MAX_CONSECUTIVE_FAILURES = 5

# Errors that polling again cannot fix
FATAL_FETCH_ERRORS: tuple[type[Exception], ...] = (GitHubAuthError, PullRequestNotFoundError)

# mergeStateStatus values meaning "no status checks are configured" when the
# rollup is absent. CLEAN: nothing blocks the merge. HAS_HOOKS: only merge hooks.
DEFAULT_NO_CHECKS_MERGE_STATES = frozenset({"CLEAN", "HAS_HOOKS"})


class WaitOutcome(str, Enum):
    """Terminal states of a wait."""

    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    MERGE_CONFLICT = "merge_conflict"
    CANCELLED = "cancelled"


class WaitPollingError(Exception):
    """Raised when fetching PR status fails too many times in a row."""

    def __init__(self, failures: int, last_error: Exception) -> None:
        super().__init__(
            f"Giving up after {failures} consecutive failed status fetches: {last_error}"
        )
        self.failures = failures
        self.last_error = last_error


@dataclass(frozen=True)
class ChecksPolicy:
    """How to decide that CI is finished when GitHub reports no rollup.

    An absent rollup is ambiguous: no checks configured, checks not started
    yet, or checks blocked by a conflict. The merge state is used to tell
    these apart.

    Attributes:
        no_checks_merge_states: mergeStateStatus values that mean no checks will run
        conflicting_means_complete: Treat a CONFLICTING PR as having no checks to wait for
    """

    no_checks_merge_states: frozenset[str] = DEFAULT_NO_CHECKS_MERGE_STATES
    conflicting_means_complete: bool = True

    def checks_complete(self, snapshot: PRStatusSnapshot) -> bool:
        if snapshot.rollup_state is not None:
            return snapshot.rollup_state.is_terminal

        if snapshot.mergeable == MergeableState.CONFLICTING:
            return self.conflicting_means_complete
        return snapshot.merge_state_status.upper() in self.no_checks_merge_states


@dataclass
class WaitState:
    """Progress of a single wait invocation.

    ``reviews_ready`` and ``checks_complete`` only ever go from False to True
    within one run.
    """

    started_at: float
    last_marker: ReviewMarker | None = None
    reviews_ready: bool = False
    checks_complete: bool = False
    polls: int = 0
    consecutive_failures: int = 0
    last_snapshot: PRStatusSnapshot | None = None
    last_error: Exception | None = field(default=None, repr=False)

    def mark_reviews_ready(self) -> None:
        self.reviews_ready = True

    def mark_checks_complete(self) -> None:
        self.checks_complete = True


@dataclass
class WaitResult:
    """How a wait ended."""

    outcome: WaitOutcome
    state: WaitState
    elapsed: float

    @property
    def snapshot(self) -> PRStatusSnapshot | None:
        return self.state.last_snapshot


class ReviewCheckWaiter:
    """Polls a PR until reviews and/or checks are ready.

    Example:
        >>> waiter = ReviewCheckWaiter(
        ...     lambda: client.fetch_pr_status(42),
        ...     wait_for_reviews=True,
        ...     wait_for_checks=True,
        ...     timeout=300,
        ... )
        >>> with install_interrupt_handler(waiter):
        ...     result = waiter.run()
    """

    def __init__(
        self,
        fetch_status: Callable[[], PRStatusSnapshot],
        *,
        wait_for_reviews: bool = True,
        wait_for_checks: bool = True,
        timeout: float,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        last_marker: ReviewMarker | None = None,
        on_cancel: Callable[[WaitState], None] | None = None,
        on_poll: Callable[[WaitState], None] | None = None,
        checks_policy: ChecksPolicy | None = None,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        fatal_errors: tuple[type[Exception], ...] = FATAL_FETCH_ERRORS,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the waiter.

        Args:
            fetch_status: Returns the current PR status; may raise on API errors
            wait_for_reviews: Require new reviews
            wait_for_checks: Require CI to reach a final state
            timeout: Seconds to wait before giving up with TIMED_OUT
            poll_interval: Seconds to sleep between polls
            last_marker: Last review seen by a previous invocation
            on_cancel: Called synchronously before returning CANCELLED
            on_poll: Called after every successfully evaluated poll
            checks_policy: Rules for an absent CI rollup
            max_consecutive_failures: Fetch failures in a row before raising
                WaitPollingError; 0 retries forever
            fatal_errors: Fetch errors raised at once instead of retried
            cancel_event: Event shared with other cancellers; a private one by default
            clock: Monotonic time source

        Raises:
            ValueError: If neither condition is requested or a duration is negative
        """
        if not wait_for_reviews and not wait_for_checks:
            raise ValueError("Nothing to wait for: enable reviews, checks, or both")
        if timeout < 0 or poll_interval < 0:
            raise ValueError("timeout and poll_interval must not be negative")

        self.fetch_status = fetch_status
        self.wait_for_reviews = wait_for_reviews
        self.wait_for_checks = wait_for_checks
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.last_marker = last_marker
        self.on_cancel = on_cancel
        self.on_poll = on_poll
        self.checks_policy = checks_policy or ChecksPolicy()
        self.max_consecutive_failures = max_consecutive_failures
        self.fatal_errors = fatal_errors
        self._clock = clock
        self._cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Request cancellation; safe to call from a signal handler or another thread."""
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def run(self) -> WaitResult:
        """Poll until a terminal state is reached.

        Returns:
            WaitResult describing which terminal state ended the wait

        Raises:
            WaitPollingError: If fetching status fails max_consecutive_failures times in a row
            Exception: Any of fatal_errors, as soon as a fetch raises it
        """
        state = WaitState(started_at=self._clock(), last_marker=self.last_marker)

        try:
            while True:
                if self.cancel_requested:
                    return self._cancelled(state)

                if self.elapsed(state) > self.timeout:
                    logger.info(
                        f"Timeout reached after {self.elapsed(state):.1f}s "
                        f"(reviews ready: {state.reviews_ready}, "
                        f"checks complete: {state.checks_complete})"
                    )
                    return self._finish(WaitOutcome.TIMED_OUT, state)

                outcome = self._poll_once(state)
                if outcome is not None:
                    return self._finish(outcome, state)

                self._cancel_event.wait(self.poll_interval)
        except KeyboardInterrupt:
            return self._cancelled(state)

    def _poll_once(self, state: WaitState) -> WaitOutcome | None:
        state.polls += 1
        try:
            snapshot = self.fetch_status()
        except self.fatal_errors:
            raise
        except Exception as e:
            state.consecutive_failures += 1
            state.last_error = e
            logger.warning(
                f"Error fetching PR status (attempt {state.polls}, "
                f"{state.consecutive_failures} consecutive): {e}"
            )
            if self.cancel_requested:
                return None
            if (
                self.max_consecutive_failures > 0
                and state.consecutive_failures >= self.max_consecutive_failures
            ):
                raise WaitPollingError(state.consecutive_failures, e) from e
            return None

        state.consecutive_failures = 0
        state.last_error = None
        state.last_snapshot = snapshot

        outcome = self.evaluate(snapshot, state)
        if outcome is None and self.on_poll:
            self.on_poll(state)
        return outcome

    def evaluate(self, snapshot: PRStatusSnapshot, state: WaitState) -> WaitOutcome | None:
        """Fold one snapshot into the state and decide whether the wait is over.

        Returns:
            The terminal outcome, or None to keep polling
        """
        if self.wait_for_reviews and not state.reviews_ready:
            if has_new_reviews(snapshot.reviews, state.last_marker):
                state.mark_reviews_ready()

        # CI does not run on conflicting PRs, so this must win over the
        # checks heuristic below.
        if snapshot.mergeable == MergeableState.CONFLICTING:
            logger.info(
                f"PR #{snapshot.number} has merge conflicts "
                f"(status: {snapshot.merge_state_status or 'unknown'})"
            )
            return WaitOutcome.MERGE_CONFLICT

        if self.wait_for_checks and not state.checks_complete:
            if self.checks_policy.checks_complete(snapshot):
                state.mark_checks_complete()

        reviews_ok = state.reviews_ready or not self.wait_for_reviews
        checks_ok = state.checks_complete or not self.wait_for_checks
        if reviews_ok and checks_ok:
            logger.info(f"Wait satisfied for PR #{snapshot.number} after {state.polls} poll(s)")
            return WaitOutcome.SATISFIED

        logger.debug(
            f"Waiting: reviews ready={state.reviews_ready}, "
            f"checks complete={state.checks_complete}"
        )
        return None

    def _cancelled(self, state: WaitState) -> WaitResult:
        logger.info("Wait cancelled by user")
        if self.on_cancel:
            self.on_cancel(state)
        return self._finish(WaitOutcome.CANCELLED, state)

    def _finish(self, outcome: WaitOutcome, state: WaitState) -> WaitResult:
        return WaitResult(outcome=outcome, state=state, elapsed=self.elapsed(state))

    def elapsed(self, state: WaitState) -> float:
        """Seconds since the run owning ``state`` started."""
        return self._clock() - state.started_at


@contextmanager
def install_interrupt_handler(waiter: ReviewCheckWaiter) -> Iterator[None]:
    """Route SIGINT and SIGTERM to ``waiter.cancel()`` for the duration of the block.

    Handlers can only be installed from the main thread; elsewhere this is a
    no-op and Ctrl+C still reaches the waiter as KeyboardInterrupt.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, _frame: object) -> None:
        logger.debug(f"Received {signal.Signals(signum).name}, cancelling wait")
        waiter.cancel()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
