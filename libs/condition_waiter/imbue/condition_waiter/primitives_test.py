from enum import auto

import pytest
from pydantic import ValidationError

from imbue.condition_waiter.primitives import FrozenModel
from imbue.condition_waiter.primitives import MutableModel
from imbue.condition_waiter.primitives import UpperCaseStrEnum
from imbue.condition_waiter.primitives import pure


def test_pure_decorator_returns_same_function() -> None:
    def scale(value: float) -> float:
        return value * 1000

    assert pure(scale) is scale


class _Color(UpperCaseStrEnum):
    light_blue = auto()
    RED = auto()


def test_upper_case_str_enum_uppercases_auto_values() -> None:
    assert _Color.light_blue == "LIGHT_BLUE"
    assert _Color.RED.value == "RED"


class _Point(FrozenModel):
    x: int


class _Counter(MutableModel):
    count: int = 0


def test_frozen_model_rejects_assignment() -> None:
    point = _Point(x=1)

    with pytest.raises(ValidationError):
        point.x = 2  # type: ignore[misc]


def test_mutable_model_allows_assignment_but_forbids_extra_fields() -> None:
    counter = _Counter()
    counter.count += 1

    assert counter.count == 1
    with pytest.raises(ValidationError):
        _Counter(count=0, extra=True)  # type: ignore[call-arg]
