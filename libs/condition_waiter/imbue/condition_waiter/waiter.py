import asyncio
import inspect
import math
import threading
import time
from collections.abc import Awaitable

from loguru import logger
from pydantic import PrivateAttr

from imbue.condition_waiter.data_types import WaiterState
from imbue.condition_waiter.data_types import WaitOutcome
from imbue.condition_waiter.data_types import WaitRequest
from imbue.condition_waiter.data_types import WaitResult
from imbue.condition_waiter.errors import InvalidWaitRequestError
from imbue.condition_waiter.errors import PredicateError
from imbue.condition_waiter.errors import WaiterAlreadyUsedError
from imbue.condition_waiter.logging import log_span
from imbue.condition_waiter.primitives import MutableModel
from imbue.condition_waiter.primitives import pure


@pure
def validate_wait_request(request: WaitRequest) -> None:
    """Reject requests that could never produce a meaningful wait."""
    if not (math.isfinite(request.poll_interval_seconds) and request.poll_interval_seconds > 0):
        raise InvalidWaitRequestError(
            f"poll_interval_seconds must be a finite number > 0, got {request.poll_interval_seconds}"
        )
    if not (math.isfinite(request.timeout_seconds) and request.timeout_seconds > 0):
        raise InvalidWaitRequestError(f"timeout_seconds must be a finite number > 0, got {request.timeout_seconds}")


class ConditionWaiter(MutableModel):
    """Polls a predicate until it is true, the timeout elapses, or the wait is cancelled.

    Each waiter handles exactly one wait and reports exactly one WaitResult:

        request = WaitRequest(predicate=is_ready, poll_interval_seconds=0.05, timeout_seconds=2.0)
        result = ConditionWaiter(request=request).wait()
        assert result.outcome == WaitOutcome.SATISFIED

    The first evaluation happens immediately, and later evaluations are spaced
    at least poll_interval_seconds apart. The final evaluation happens once the
    deadline has been reached, so a TIMED_OUT result always means the
    predicate was still false after the full budget.
    """

    request: WaitRequest

    _state: WaiterState = PrivateAttr(default=WaiterState.IDLE)
    _result: WaitResult | None = PrivateAttr(default=None)
    _poll_count: int = PrivateAttr(default=0)
    _start_time: float = PrivateAttr(default=0.0)

    @property
    def state(self) -> WaiterState:
        return self._state

    @property
    def result(self) -> WaitResult | None:
        """The result, once the waiter has finished."""
        return self._result

    @property
    def poll_count(self) -> int:
        return self._poll_count

    def wait(self) -> WaitResult:
        """Block the calling thread until the wait resolves."""
        self._start(expected_event_type=threading.Event, is_async=False)
        # Without a caller signal, a private event that is never set serves as the sleep.
        cancel_event = self.request.cancel_event or threading.Event()
        assert isinstance(cancel_event, threading.Event)

        with log_span("Waiting for {}", self.request.description, timeout=self.request.timeout_seconds):
            try:
                return self._poll_blocking(cancel_event)
            except BaseException:
                self._abandon()
                raise

    async def wait_async(self) -> WaitResult:
        """Await the wait without blocking the event loop.

        The predicate may return a bool or an awaitable of bool.
        """
        self._start(expected_event_type=asyncio.Event, is_async=True)
        cancel_event = self.request.cancel_event
        assert cancel_event is None or isinstance(cancel_event, asyncio.Event)

        with log_span("Waiting for {}", self.request.description, timeout=self.request.timeout_seconds):
            try:
                return await self._poll_async(cancel_event)
            except BaseException:
                self._abandon()
                raise

    def _poll_blocking(self, cancel_event: threading.Event) -> WaitResult:
        while True:
            if cancel_event.is_set():
                return self._finish(WaitOutcome.CANCELLED)
            try:
                value = self.request.predicate()
            except Exception as e:
                raise self._predicate_failed(e) from e
            if inspect.isawaitable(value):
                raise self._awaitable_returned(value)
            if self._record_poll(bool(value)):
                return self._finish(WaitOutcome.SATISFIED)
            if self._elapsed() >= self.request.timeout_seconds:
                return self._finish(WaitOutcome.TIMED_OUT)
            if cancel_event.wait(self.request.poll_interval_seconds):
                return self._finish(WaitOutcome.CANCELLED)

    async def _poll_async(self, cancel_event: asyncio.Event | None) -> WaitResult:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._finish(WaitOutcome.CANCELLED)
            try:
                value = self.request.predicate()
                if inspect.isawaitable(value):
                    value = await value
                is_met = bool(value)
            except Exception as e:
                raise self._predicate_failed(e) from e
            if self._record_poll(is_met):
                return self._finish(WaitOutcome.SATISFIED)
            if self._elapsed() >= self.request.timeout_seconds:
                return self._finish(WaitOutcome.TIMED_OUT)
            if await _sleep_unless_set(cancel_event, self.request.poll_interval_seconds):
                return self._finish(WaitOutcome.CANCELLED)

    def _start(self, expected_event_type: type, is_async: bool) -> None:
        if self._state != WaiterState.IDLE:
            raise WaiterAlreadyUsedError(
                f"Waiter for {self.request.description!r} is {self._state}; create a new waiter per wait"
            )
        validate_wait_request(self.request)
        cancel_event = self.request.cancel_event
        if cancel_event is not None and not isinstance(cancel_event, expected_event_type):
            raise InvalidWaitRequestError(
                f"cancel_event must be a {expected_event_type.__module__}.{expected_event_type.__name__} "
                f"for this entry point, got {type(cancel_event).__name__}"
            )
        if not is_async and inspect.iscoroutinefunction(self.request.predicate):
            raise InvalidWaitRequestError(
                f"Predicate for {self.request.description!r} is a coroutine function; use wait_async instead"
            )
        self._state = WaiterState.POLLING
        self._start_time = time.monotonic()

    def _record_poll(self, is_met: bool) -> bool:
        self._poll_count += 1
        logger.trace(
            "Poll {} for {}: {} after {:.3f}s",
            self._poll_count,
            self.request.description,
            is_met,
            self._elapsed(),
        )
        return is_met

    def _elapsed(self) -> float:
        return time.monotonic() - self._start_time

    def _finish(self, outcome: WaitOutcome) -> WaitResult:
        self._state = WaiterState.FINISHED
        self._result = WaitResult(
            outcome=outcome,
            poll_count=self._poll_count,
            elapsed_seconds=self._elapsed(),
        )
        logger.debug(
            "Wait for {} finished: {} after {} polls in {:.3f}s",
            self.request.description,
            outcome,
            self._result.poll_count,
            self._result.elapsed_seconds,
        )
        return self._result

    def _predicate_failed(self, error: Exception) -> PredicateError:
        # The failed evaluation still counts as a poll.
        self._poll_count += 1
        self._state = WaiterState.FINISHED
        logger.debug("Predicate for {} raised {!r}, aborting wait", self.request.description, error)
        return PredicateError(self.request.description, self._poll_count)

    def _awaitable_returned(self, value: Awaitable[object]) -> InvalidWaitRequestError:
        # Closed so the coroutine is not reported as never awaited.
        if inspect.iscoroutine(value):
            value.close()
        self._state = WaiterState.FINISHED
        return InvalidWaitRequestError(
            f"Predicate for {self.request.description!r} returned {type(value).__name__}; use wait_async instead"
        )

    def _abandon(self) -> None:
        """Settle a wait interrupted by task cancellation or KeyboardInterrupt as CANCELLED."""
        if self._state == WaiterState.POLLING:
            self._finish(WaitOutcome.CANCELLED)


async def _sleep_unless_set(cancel_event: asyncio.Event | None, seconds: float) -> bool:
    """Sleep for the given time, returning True early if the event gets set."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True
