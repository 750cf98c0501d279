from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imbue.condition_waiter.data_types import WaitResult


class ConditionWaiterError(Exception):
    """Base exception for all condition_waiter errors."""


class InvalidWaitRequestError(ConditionWaiterError, ValueError):
    """Raised when a wait request is malformed. Nothing has been polled yet."""


class WaiterAlreadyUsedError(ConditionWaiterError):
    """Raised when a waiter that already started is asked to wait again."""


class PredicateError(ConditionWaiterError):
    """Raised when the caller-supplied predicate itself raised.

    The original exception is available as __cause__.
    """

    def __init__(self, description: str, poll_count: int) -> None:
        self.description = description
        self.poll_count = poll_count
        super().__init__(f"Predicate for {description!r} raised on poll {poll_count}")


class ConditionTimeoutError(ConditionWaiterError, TimeoutError):
    """Raised by the raising helpers when a condition is not met within its timeout.

    The waiter itself reports a timeout as an outcome; only wrappers that want
    a test to fail loudly turn it into this exception.
    """

    def __init__(self, message: str, result: "WaitResult | None" = None) -> None:
        self.result = result
        super().__init__(message)


class WaiterConfigError(ConditionWaiterError, ValueError):
    """Raised when waiter settings (duration strings, config files, env vars) are invalid."""
