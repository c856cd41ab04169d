"""
Backoff Policy - Exponential retry schedules.

A policy only describes a schedule. Every call to :meth:`BackOffPolicy.retrying`
builds a fresh tenacity controller, so each retrying call site owns its own
attempt count and elapsed time and concurrent retries never perturb each other.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base

# (error, seconds until the next attempt) -> None
Notify = Callable[[BaseException, float], None]


@dataclass
class BackOffPolicy:
    """Exponential backoff schedule with jitter and optional limits."""

    initial_interval: float = 0.5  # seconds
    multiplier: float = 1.5
    max_interval: float = 60.0  # seconds
    jitter: float = 0.5  # seconds of uniform random jitter per wait
    max_elapsed_time: Optional[float] = 900.0  # seconds, None = no limit
    max_attempts: Optional[int] = None

    def _stop(self):
        stop = None
        if self.max_elapsed_time is not None:
            stop = stop_after_delay(self.max_elapsed_time)
        if self.max_attempts is not None:
            by_attempts = stop_after_attempt(self.max_attempts)
            stop = by_attempts if stop is None else stop | by_attempts
        return stop if stop is not None else stop_never

    def retrying(
        self,
        notify: Optional[Notify] = None,
        retry: Optional[retry_base] = None,
    ) -> AsyncRetrying:
        """
        Build a new retry controller following this schedule.

        Args:
            notify: Called with the error and the upcoming delay before each
                sleep, i.e. once per failed attempt that will be retried.
            retry: Optional tenacity retry predicate. Defaults to retrying
                on any ``Exception``.

        Returns:
            A fresh AsyncRetrying that re-raises the last error on exhaustion.
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            if notify is None:
                return
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            notify(retry_state.outcome.exception(), delay)

        return AsyncRetrying(
            stop=self._stop(),
            wait=wait_exponential_jitter(
                multiplier=self.initial_interval,
                max=self.max_interval,
                exp_base=self.multiplier,
                jitter=self.jitter,
            ),
            retry=retry if retry is not None else retry_if_exception_type(Exception),
            before_sleep=before_sleep,
            reraise=True,
        )


async def retry_notify(
    operation: Callable[[], Awaitable[Any]],
    policy: BackOffPolicy,
    notify: Optional[Notify] = None,
    retry: Optional[retry_base] = None,
) -> Any:
    """
    Await ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument callable returning an awaitable, invoked
            once per attempt.
        policy: The schedule to follow.
        notify: Optional hook invoked before every retry sleep.
        retry: Optional tenacity retry predicate.

    Returns:
        The result of the first successful attempt.

    Raises:
        The last error raised by ``operation`` once the policy gives up.
    """
    async for attempt in policy.retrying(notify=notify, retry=retry):
        with attempt:
            return await operation()


def default_backoff_factory() -> Callable[[], BackOffPolicy]:
    """Return a factory producing fresh default policies."""
    return BackOffPolicy
