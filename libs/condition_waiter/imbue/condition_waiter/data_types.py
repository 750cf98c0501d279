import asyncio
import threading
from collections.abc import Awaitable
from collections.abc import Callable
from enum import auto

from pydantic import Field

from imbue.condition_waiter.primitives import FrozenModel
from imbue.condition_waiter.primitives import UpperCaseStrEnum


class WaitOutcome(UpperCaseStrEnum):
    """Terminal outcome of a single wait."""

    SATISFIED = auto()
    TIMED_OUT = auto()
    CANCELLED = auto()


class WaiterState(UpperCaseStrEnum):
    """Lifecycle of a ConditionWaiter. Waiters are single-use."""

    IDLE = auto()
    POLLING = auto()
    FINISHED = auto()


class WaitRequest(FrozenModel):
    """Everything a waiter needs to know about one wait.

    The numeric fields are deliberately unconstrained here: range checks run
    when a wait starts, so a malformed request surfaces as
    InvalidWaitRequestError instead of a pydantic ValidationError.
    """

    predicate: Callable[[], bool | Awaitable[bool]] = Field(
        description="Side-effect-free readiness check, evaluated once per poll",
    )
    poll_interval_seconds: float = Field(description="Minimum spacing between predicate evaluations")
    timeout_seconds: float = Field(description="Budget after which the wait resolves as TIMED_OUT")
    cancel_event: threading.Event | asyncio.Event | None = Field(
        default=None,
        description="Optional signal that stops the wait with CANCELLED",
    )
    description: str = Field(default="condition", description="Human-readable name used in logs and errors")


class WaitResult(FrozenModel):
    """The single result of a finished wait."""

    outcome: WaitOutcome
    poll_count: int = Field(ge=0, description="Number of predicate evaluations")
    elapsed_seconds: float = Field(ge=0.0)

    @property
    def is_satisfied(self) -> bool:
        return self.outcome == WaitOutcome.SATISFIED
