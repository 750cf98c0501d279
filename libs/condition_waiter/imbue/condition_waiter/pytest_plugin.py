"""pytest fixtures that hand tests a waiter configured from WaiterSettings.

Register from a conftest.py with:

    pytest_plugins = ["imbue.condition_waiter.pytest_plugin"]

Settings come from the file named by CONDITION_WAITER_CONFIG (or the
[tool.condition_waiter] table of the rootdir's pyproject.toml) and the
CONDITION_WAITER_* environment variables.
"""

import os
from collections.abc import Awaitable
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import pytest

from imbue.condition_waiter.config import CONFIG_PATH_ENV_VAR
from imbue.condition_waiter.config import WaiterSettings
from imbue.condition_waiter.config import load_waiter_settings
from imbue.condition_waiter.data_types import WaitResult
from imbue.condition_waiter.errors import ConditionTimeoutError
from imbue.condition_waiter.logging import setup_logging
from imbue.condition_waiter.polling import async_wait_for_assertion
from imbue.condition_waiter.polling import async_wait_for_condition
from imbue.condition_waiter.polling import poll_for_value
from imbue.condition_waiter.polling import wait_for_assertion
from imbue.condition_waiter.polling import wait_for_condition
from imbue.condition_waiter.primitives import FrozenModel


T = TypeVar("T")


class ConfiguredWaiter(FrozenModel):
    """Waits that apply the configured defaults and fail the test loudly on timeout."""

    settings: WaiterSettings

    def _timeout(self, override: float | None) -> float:
        return self.settings.timeout_seconds if override is None else override

    def until(
        self,
        predicate: Callable[[], bool],
        description: str = "condition",
        timeout_seconds: float | None = None,
    ) -> WaitResult:
        result = wait_for_condition(
            predicate,
            timeout_seconds=self._timeout(timeout_seconds),
            poll_interval_seconds=self.settings.poll_interval_seconds,
            description=description,
        )
        return _require_satisfied(result, description)

    async def until_async(
        self,
        predicate: Callable[[], bool | Awaitable[bool]],
        description: str = "condition",
        timeout_seconds: float | None = None,
    ) -> WaitResult:
        result = await async_wait_for_condition(
            predicate,
            timeout_seconds=self._timeout(timeout_seconds),
            poll_interval_seconds=self.settings.poll_interval_seconds,
            description=description,
        )
        return _require_satisfied(result, description)

    def assertion(self, assertion_fn: Callable[[], object], timeout_seconds: float | None = None) -> WaitResult:
        """Retry assertion_fn until its asserts pass; re-raises the last AssertionError on timeout."""
        return wait_for_assertion(
            assertion_fn,
            timeout_seconds=self._timeout(timeout_seconds),
            poll_interval_seconds=self.settings.poll_interval_seconds,
        )

    async def assertion_async(
        self,
        assertion_fn: Callable[[], object],
        timeout_seconds: float | None = None,
    ) -> WaitResult:
        return await async_wait_for_assertion(
            assertion_fn,
            timeout_seconds=self._timeout(timeout_seconds),
            poll_interval_seconds=self.settings.poll_interval_seconds,
        )

    def value(self, producer: Callable[[], T | None], timeout_seconds: float | None = None) -> T:
        """Return the first non-None value from producer, or raise ConditionTimeoutError."""
        value, poll_count, elapsed = poll_for_value(
            producer,
            timeout=self._timeout(timeout_seconds),
            poll_interval=self.settings.poll_interval_seconds,
        )
        if value is None:
            raise ConditionTimeoutError(f"No value produced after {elapsed:.2f}s ({poll_count} polls)")
        return value


def _require_satisfied(result: WaitResult, description: str) -> WaitResult:
    if not result.is_satisfied:
        raise ConditionTimeoutError(
            f"{description} not met after {result.elapsed_seconds:.2f}s ({result.poll_count} polls)",
            result=result,
        )
    return result


def load_session_settings(rootpath: Path) -> WaiterSettings:
    """Load settings from CONDITION_WAITER_CONFIG, else from the rootdir's pyproject.toml."""
    pyproject_path = rootpath / "pyproject.toml"
    if CONFIG_PATH_ENV_VAR not in os.environ and pyproject_path.exists():
        return load_waiter_settings(config_path=pyproject_path)
    return load_waiter_settings()


def configure_session_logging(rootpath: Path) -> WaiterSettings:
    """Point loguru at stderr using the configured log_level, returning the settings used."""
    settings = load_session_settings(rootpath)
    setup_logging(level=settings.log_level)
    return settings


@pytest.fixture(scope="session")
def waiter_settings(pytestconfig: pytest.Config) -> WaiterSettings:
    """Settings loaded once per session."""
    return load_session_settings(Path(pytestconfig.rootpath))


@pytest.fixture
def condition_waiter(waiter_settings: WaiterSettings) -> ConfiguredWaiter:
    return ConfiguredWaiter(settings=waiter_settings)
