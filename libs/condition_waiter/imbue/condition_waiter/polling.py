import asyncio
import inspect
import threading
from collections.abc import Awaitable
from collections.abc import Callable
from typing import TypeVar

from loguru import logger

from imbue.condition_waiter.data_types import WaitRequest
from imbue.condition_waiter.data_types import WaitResult
from imbue.condition_waiter.errors import ConditionTimeoutError
from imbue.condition_waiter.errors import InvalidWaitRequestError
from imbue.condition_waiter.waiter import ConditionWaiter

T = TypeVar("T")


def wait_for_condition(
    predicate: Callable[[], bool],
    *,
    timeout_seconds: float = 5.0,
    poll_interval_seconds: float = 0.1,
    cancel_event: threading.Event | None = None,
    description: str = "condition",
) -> WaitResult:
    """Block until predicate() is true, the timeout elapses, or cancel_event is set.

    Timing out and being cancelled are outcomes, not errors: check result.outcome.
    Raises InvalidWaitRequestError for a malformed request and PredicateError if
    the predicate raises.
    """
    request = WaitRequest(
        predicate=predicate,
        poll_interval_seconds=poll_interval_seconds,
        timeout_seconds=timeout_seconds,
        cancel_event=cancel_event,
        description=description,
    )
    return ConditionWaiter(request=request).wait()


async def async_wait_for_condition(
    predicate: Callable[[], bool | Awaitable[bool]],
    *,
    timeout_seconds: float = 5.0,
    poll_interval_seconds: float = 0.1,
    cancel_event: asyncio.Event | None = None,
    description: str = "condition",
) -> WaitResult:
    """Asyncio version of wait_for_condition. The predicate may be a coroutine function."""
    request = WaitRequest(
        predicate=predicate,
        poll_interval_seconds=poll_interval_seconds,
        timeout_seconds=timeout_seconds,
        cancel_event=cancel_event,
        description=description,
    )
    return await ConditionWaiter(request=request).wait_async()


def poll_for_value(
    producer: Callable[[], T | None],
    timeout: float = 5.0,
    poll_interval: float = 0.1,
) -> tuple[T | None, int, float]:
    """Poll until a producer returns a non-None value or timeout expires.

    Returns (value, poll_count, elapsed_seconds):
    - value: The first non-None value returned by the producer, or None if timeout occurred
    - poll_count: Number of times the producer was called
    - elapsed_seconds: Total time spent polling
    """
    found: list[T] = []

    def _has_value() -> bool:
        value = producer()
        if value is None:
            return False
        found.append(value)
        return True

    result = wait_for_condition(
        _has_value,
        timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
        description=getattr(producer, "__name__", "value"),
    )
    value = found[0] if found else None
    return value, result.poll_count, result.elapsed_seconds


def poll_until(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    poll_interval: float = 0.1,
) -> bool:
    """Poll until a condition becomes true or timeout expires.

    Returns True if the condition was met, False if timeout occurred.
    """
    return wait_for_condition(
        condition,
        timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
    ).is_satisfied


def wait_for(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    poll_interval: float = 0.1,
    error_message: str = "Condition not met within timeout",
) -> None:
    """Wait for a condition to become true, polling at regular intervals.

    Raises ConditionTimeoutError (a TimeoutError) if the condition is not met
    within the timeout period. Use this in tests in place of a fixed sleep
    followed by an assert.
    """
    result = wait_for_condition(condition, timeout_seconds=timeout, poll_interval_seconds=poll_interval)
    if not result.is_satisfied:
        raise ConditionTimeoutError(error_message, result=result)


class _AssertionProbe:
    """Turns a function full of asserts into a predicate, remembering the last failure."""

    def __init__(self, assertion_fn: Callable[[], object]) -> None:
        self._assertion_fn = assertion_fn
        self.last_error: AssertionError | None = None

    def __call__(self) -> object:
        try:
            value = self._assertion_fn()
        except AssertionError as e:
            self.last_error = e
            return False
        # Handed back unchanged so the waiter rejects it instead of counting a pass.
        if inspect.isawaitable(value):
            return value
        return True

    async def check_async(self) -> bool:
        try:
            value = self._assertion_fn()
            if inspect.isawaitable(value):
                await value
        except AssertionError as e:
            self.last_error = e
            return False
        return True


def _raise_last_assertion(probe: _AssertionProbe, result: WaitResult, description: str) -> None:
    logger.debug("Assertion {} still failing after {} polls", description, result.poll_count)
    if probe.last_error is not None:
        raise probe.last_error
    raise ConditionTimeoutError(f"Assertion {description!r} was not checked before the wait ended", result=result)


def wait_for_assertion(
    assertion_fn: Callable[[], object],
    *,
    timeout_seconds: float = 5.0,
    poll_interval_seconds: float = 0.1,
    cancel_event: threading.Event | None = None,
) -> WaitResult:
    """Re-run a function containing asserts until it stops raising AssertionError.

    On timeout (or cancellation) the last AssertionError is re-raised so the
    test report shows the real mismatch. Any other exception aborts the wait
    as a PredicateError.
    """
    description = getattr(assertion_fn, "__name__", "assertion")
    probe = _AssertionProbe(assertion_fn)
    if inspect.iscoroutinefunction(assertion_fn):
        raise InvalidWaitRequestError(f"{description} is a coroutine function; use async_wait_for_assertion instead")
    result = wait_for_condition(
        probe,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
        cancel_event=cancel_event,
        description=description,
    )
    if not result.is_satisfied:
        _raise_last_assertion(probe, result, description)
    return result


async def async_wait_for_assertion(
    assertion_fn: Callable[[], object],
    *,
    timeout_seconds: float = 5.0,
    poll_interval_seconds: float = 0.1,
    cancel_event: asyncio.Event | None = None,
) -> WaitResult:
    """Asyncio version of wait_for_assertion. The function may be a coroutine function."""
    description = getattr(assertion_fn, "__name__", "assertion")
    probe = _AssertionProbe(assertion_fn)
    result = await async_wait_for_condition(
        probe.check_async,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
        cancel_event=cancel_event,
        description=description,
    )
    if not result.is_satisfied:
        _raise_last_assertion(probe, result, description)
    return result
