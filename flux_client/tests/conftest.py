"""Pytest configuration for the client test suite.

Provides a deterministic clock with an awaitable fake sleep, log capture on
the shared ``flux`` logger, and an isolated environment so developer
``ANTHROPIC_*`` variables or a local ``.env`` never leak into tests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterator, List

import pytest

from flux_client.config import reset_dotenv_for_testing


class FakeClock:
    """Monotonic clock advanced only by ``sleep`` or ``advance``.

    ``sleep`` records each requested delay, moves time forward and yields to
    the event loop once so concurrent tasks interleave as they would for real.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


class LogCapture(logging.Handler):
    """Collect records emitted under the ``flux`` logger."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def events(self, name: str | None = None) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for record in self.records:
            try:
                payload = json.loads(record.getMessage())
            except ValueError:
                continue
            if isinstance(payload, dict) and (name is None or payload.get("event") == name):
                out.append(payload)
        return out


@pytest.fixture()
def log_capture(monkeypatch: pytest.MonkeyPatch) -> Iterator[LogCapture]:
    # get_logger re-applies FLUX_LOG_LEVEL whenever its value changes.
    monkeypatch.setenv("FLUX_LOG_LEVEL", "DEBUG")
    logger = logging.getLogger("flux")
    handler = LogCapture()
    previous = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:
    """Strip ANTHROPIC_* / FLUX_* variables and point DOTENV_FILE at nothing."""
    import os

    for name in list(os.environ):
        if name.startswith(("ANTHROPIC_", "FLUX_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DOTENV_FILE", str(tmp_path / "missing.env"))
    reset_dotenv_for_testing()
    yield
    reset_dotenv_for_testing()
