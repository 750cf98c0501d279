import asyncio
import threading

import pytest
from pydantic import ValidationError

from imbue.condition_waiter.data_types import WaiterState
from imbue.condition_waiter.data_types import WaitOutcome
from imbue.condition_waiter.data_types import WaitRequest
from imbue.condition_waiter.data_types import WaitResult


def test_wait_outcome_values_are_uppercase_names() -> None:
    assert [outcome.value for outcome in WaitOutcome] == ["SATISFIED", "TIMED_OUT", "CANCELLED"]
    assert [state.value for state in WaiterState] == ["IDLE", "POLLING", "FINISHED"]


def test_wait_request_is_immutable() -> None:
    request = WaitRequest(predicate=lambda: True, poll_interval_seconds=0.1, timeout_seconds=1.0)

    with pytest.raises(ValidationError):
        request.timeout_seconds = 2.0  # type: ignore[misc]


def test_wait_request_accepts_both_event_kinds() -> None:
    threading_request = WaitRequest(
        predicate=lambda: True,
        poll_interval_seconds=0.1,
        timeout_seconds=1.0,
        cancel_event=threading.Event(),
    )
    asyncio_request = WaitRequest(
        predicate=lambda: True,
        poll_interval_seconds=0.1,
        timeout_seconds=1.0,
        cancel_event=asyncio.Event(),
    )

    assert isinstance(threading_request.cancel_event, threading.Event)
    assert isinstance(asyncio_request.cancel_event, asyncio.Event)


def test_wait_request_rejects_non_callable_predicate() -> None:
    with pytest.raises(ValidationError):
        WaitRequest(predicate=True, poll_interval_seconds=0.1, timeout_seconds=1.0)  # type: ignore[arg-type]


def test_wait_request_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        WaitRequest(
            predicate=lambda: True,
            poll_interval_seconds=0.1,
            timeout_seconds=1.0,
            retries=3,  # type: ignore[call-arg]
        )


def test_wait_result_is_satisfied() -> None:
    assert WaitResult(outcome=WaitOutcome.SATISFIED, poll_count=1, elapsed_seconds=0.0).is_satisfied
    assert not WaitResult(outcome=WaitOutcome.TIMED_OUT, poll_count=3, elapsed_seconds=1.0).is_satisfied
    assert not WaitResult(outcome=WaitOutcome.CANCELLED, poll_count=0, elapsed_seconds=0.0).is_satisfied
