from collections.abc import Callable
from enum import StrEnum
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ConfigDict

_F = TypeVar("_F", bound=Callable[..., object])


def pure(func: _F) -> _F:
    """Mark a function as pure (no side effects, no I/O, same output for same inputs).

    Advisory only; nothing is enforced at runtime.
    """
    return func


class UpperCaseStrEnum(StrEnum):
    """A StrEnum whose auto() values are the uppercased member names."""

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.upper()


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models.

    Arbitrary types are allowed because wait requests carry caller-owned
    callables and event objects.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class MutableModel(BaseModel):
    """Base class for pydantic models that own mutable private state."""

    model_config = ConfigDict(
        frozen=False,
        extra="forbid",
        arbitrary_types_allowed=True,
    )
