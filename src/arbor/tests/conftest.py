"""Shared fixtures: deterministic clock, quiet logging, isolated settings."""

from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from typing import Any

import orjson
import pytest

from arbor import VirtualClock, clear_settings_cache, configure_logging, reset_logging


@pytest.fixture
def clock() -> VirtualClock:
    """Virtual time starting at zero."""
    return VirtualClock()


@pytest.fixture(autouse=True)
def isolated_settings() -> Iterator[None]:
    """Reload settings from a clean environment for every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Exercise debug logging paths without printing anything."""
    configure_logging(format="none", level="DEBUG")
    yield
    reset_logging()


@pytest.fixture
def log_records() -> Iterator[Callable[[], list[dict[str, Any]]]]:
    """Capture JSON log lines; call the fixture value to parse them."""
    buffer = io.StringIO()
    configure_logging(format="json", level="DEBUG", output=buffer)

    def records() -> list[dict[str, Any]]:
        return [orjson.loads(line) for line in buffer.getvalue().splitlines() if line]

    yield records
    reset_logging()
