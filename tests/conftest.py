"""
Pytest configuration and shared fixtures.

Process-level tests drive synthetic transcoders (``cat`` and the running
Python interpreter) instead of ffmpeg, so they run anywhere.
"""

import pytest

from transcoder_gateway.converter.models import ProcessOutcome
from transcoder_gateway.utils.buffer_pool import BufferPool

AUDIO_DIAGNOSTICS = (
    "Input #0, ogg, from 'pipe:0':\n"
    "size=       4kB time=00:00:02.10 bitrate=  15.6kbits/s speed=  42x\n"
    "size=       9kB time=00:00:05.20 bitrate=  14.2kbits/s speed=  51x\n"
)


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


class RecordingRunner:
    """Stands in for ProcessRunner and records every invocation."""

    def __init__(self, outcome: ProcessOutcome):
        self.outcome = outcome
        self.calls = []

    async def run(self, plan, payload, input_format="bin"):
        self.calls.append((plan, payload, input_format))
        return self.outcome


@pytest.fixture
def buffer_pool():
    return BufferPool(max_idle=4)


@pytest.fixture
def make_runner():
    """
    Factory fixture returning a RecordingRunner with the given outcome.

    Usage:
        def test_something(make_runner):
            runner = make_runner(stdout=b"", exit_succeeded=False)
    """

    def _make(
        stdout: bytes = b"converted",
        diagnostics: str = AUDIO_DIAGNOSTICS,
        exit_succeeded: bool = True,
        return_code: int | None = None,
    ) -> RecordingRunner:
        if return_code is None:
            return_code = 0 if exit_succeeded else 1
        return RecordingRunner(ProcessOutcome(stdout, diagnostics, exit_succeeded, return_code))

    return _make
