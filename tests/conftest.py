"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest


class FakeTranscriptions:
    """Stands in for AsyncOpenAI().audio.transcriptions.

    Responses are consumed in order; the last one repeats. Exceptions in the
    list are raised instead of returned.
    """

    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeBackend:
    def __init__(self, *responses) -> None:
        self.transcriptions = FakeTranscriptions(list(responses))
        self.audio = SimpleNamespace(transcriptions=self.transcriptions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_backend():
    """Return the FakeBackend factory."""
    return FakeBackend


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    """Create a small stand-in audio file."""
    path = tmp_path / "clip.m4a"
    path.write_bytes(b"\x00\x00\x00\x18ftypM4A fake audio")
    return path


@pytest.fixture
def sample_response() -> dict:
    """Return a verbose_json-style response without confidence values."""
    return {
        "task": "transcribe",
        "language": "english",
        "duration": 3.0,
        "text": "hi there",
        "segments": [
            {"id": 0, "start": 0, "end": 1.5, "text": " hi "},
            {"id": 1, "start": 1.5, "end": 3, "text": "there"},
        ],
    }


@pytest.fixture
def expected_tokens() -> list[dict]:
    """Return the tokens sample_response maps to."""
    return [
        {"id": 1, "value": "hi", "startTimeMs": 0, "endTimeMs": 1500, "score": 1},
        {"id": 2, "value": "there", "startTimeMs": 1500, "endTimeMs": 3000, "score": 1},
    ]
