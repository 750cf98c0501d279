"""Root conftest: registers the waiter fixtures and enforces a test suite time limit."""

import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Final

import pytest

from imbue.condition_waiter.pytest_plugin import configure_session_logging

pytest_plugins = ["imbue.condition_waiter.pytest_plugin"]

# Attribute name used to store the session start time on the session object.
_SESSION_START_TIME_ATTR: Final[str] = "start_time"

# Suite-wide limits, in seconds. These tests wait on real clocks, so keep them short.
_LOCAL_MAX_DURATION_SECONDS: Final[float] = 60.0
_CI_MAX_DURATION_SECONDS: Final[float] = 120.0


def get_max_suite_duration(environ: Mapping[str, str]) -> float:
    """Return the maximum allowed test suite duration for the given environment.

    PYTEST_MAX_DURATION overrides everything; CI machines get a higher limit
    because their clocks are noisier.
    """
    if "PYTEST_MAX_DURATION" in environ:
        return float(environ["PYTEST_MAX_DURATION"])
    if "CI" in environ:
        return _CI_MAX_DURATION_SECONDS
    return _LOCAL_MAX_DURATION_SECONDS


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "timing: tests that assert on wall-clock elapsed time")
    configure_session_logging(Path(config.rootpath))


@pytest.hookimpl(tryfirst=True)
def pytest_sessionstart(session: pytest.Session) -> None:
    setattr(session, _SESSION_START_TIME_ATTR, time.time())


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Check that the total test session time is under the configured limit."""
    if not hasattr(session, _SESSION_START_TIME_ATTR):
        return
    duration = time.time() - getattr(session, _SESSION_START_TIME_ATTR)
    max_duration = get_max_suite_duration(os.environ)
    if duration > max_duration:
        pytest.exit(
            f"Test suite took {duration:.2f}s, exceeding the {max_duration}s limit",
            returncode=1,
        )
