"""Shared pytest fixtures for the report uploader tests.

Provides report files on disk, a scripted in-memory upload client, a
mock progress sink and a zero-backoff upload config.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from junit_uploader.models import Payload, TransportFailure, UploadConfig
from junit_uploader.upload.client import TransportError

VALID_SUITE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<testsuite name="unit" tests="1"><testcase name="ok"/></testsuite>\n'
)
VALID_SUITES = (
    "<testsuites><testsuite name=\"a\"><testcase name=\"x\"/></testsuite></testsuites>\n"
)
WRONG_ROOT = "<report><testsuite name=\"a\"/></report>\n"
MALFORMED = "<testsuite><testcase></testsuite>\n"


class ScriptedClient:
    """In-memory UploadClient with per-file scripted responses.

    ``script[path]`` is a list consumed one entry per attempt: ``None``
    means success, an int is an HTTP status failure, and the string
    ``"conn"`` is a connection-level failure. Once a script is exhausted
    its last entry repeats. Unscripted paths always succeed.
    """

    def __init__(
        self,
        script: dict[str, list] | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.script = script or {}
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[str] = []
        self.attempts: dict[str, int] = defaultdict(int)
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, payload: Payload) -> None:
        path = payload.source_path
        self.calls.append(path)
        self.attempts[path] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(path, self.delay))
            steps = self.script.get(path) or [None]
            step = steps[min(self.attempts[path], len(steps)) - 1]
            if step == "conn":
                raise TransportError(TransportFailure(None, "connect ECONNREFUSED"))
            if step is not None:
                raise TransportError(
                    TransportFailure(step, f"Request failed with status code {step}")
                )
        finally:
            self.in_flight -= 1


@pytest.fixture
def report_dir(tmp_path: Path) -> Path:
    """Directory with two valid reports, two invalid ones and a non-XML file.

    Structure:
        reports/
          unit.xml        (<testsuite>)
          e2e.xml         (<testsuites>)
          wrong_root.xml  (invalid root)
          broken.xml      (malformed)
          notes.txt       (ignored, not *.xml)
          nested/deep.xml (ignored, non-recursive)
    """
    root = tmp_path / "reports"
    root.mkdir()
    (root / "unit.xml").write_text(VALID_SUITE)
    (root / "e2e.xml").write_text(VALID_SUITES)
    (root / "wrong_root.xml").write_text(WRONG_ROOT)
    (root / "broken.xml").write_text(MALFORMED)
    (root / "notes.txt").write_text("not a report")
    (root / "nested").mkdir()
    (root / "nested" / "deep.xml").write_text(VALID_SUITE)
    return root


@pytest.fixture
def sink() -> MagicMock:
    """Mock ProgressSink recording every event."""
    return MagicMock()


@pytest.fixture
def make_config():
    """Factory for UploadConfig with zero backoff delays."""

    def _make(**overrides) -> UploadConfig:
        values = {
            "service": "my-service",
            "retry_initial_delay": 0,
            "retry_max_delay": 0,
            "retry_jitter": 0,
        }
        values.update(overrides)
        return UploadConfig(**values)

    return _make


@pytest.fixture
def make_payloads():
    """Factory for in-memory payloads (paths need not exist)."""

    def _make(count: int, prefix: str = "/reports/r") -> list[Payload]:
        return [
            Payload(service="my-service", span_tags={"env": "ci"}, source_path=f"{prefix}{i}.xml")
            for i in range(count)
        ]

    return _make


@pytest.fixture
def make_client():
    """Factory for ScriptedClient instances."""
    return ScriptedClient
