"""Tests for subline.transcribe modules."""

from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest

from subline.config import SublineConfig
from subline.exceptions import TranscriptionError
from subline.transcribe.client import (
    TranscriptionClient,
    create_transcriber,
    map_segments,
    seconds_to_ms,
)
from subline.transcribe.retry import (
    RetryPolicy,
    create_policy_from_config,
    no_jitter,
    proportional_jitter,
)


def make_policy(clock, jitter=no_jitter, **kwargs) -> RetryPolicy:
    return RetryPolicy(jitter=jitter, clock=clock, sleep=clock.sleep, **kwargs)


class FlakyOperation:
    """Fails with TranscriptionError a fixed number of times, then succeeds."""

    def __init__(self, failures: int | None, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise TranscriptionError(f"rate limited (call {self.calls})")
        return self.result


class TestSecondsToMs:
    def test_fractional_seconds(self) -> None:
        assert seconds_to_ms(1.5) == 1500

    def test_integer_seconds(self) -> None:
        assert seconds_to_ms(3) == 3000

    def test_rounds_to_nearest(self) -> None:
        assert seconds_to_ms(2.0004) == 2000
        assert seconds_to_ms(2.0006) == 2001

    def test_half_rounds_up(self) -> None:
        assert seconds_to_ms(0.0625) == 63

    def test_negative_floored_at_zero(self) -> None:
        assert seconds_to_ms(-0.2) == 0

    def test_missing_is_zero(self) -> None:
        assert seconds_to_ms(None) == 0

    def test_non_numeric_raises(self) -> None:
        with pytest.raises(TypeError):
            seconds_to_ms("1.5")


class TestMapSegments:
    def test_maps_segments_without_confidence(
        self, sample_response: dict, expected_tokens: list[dict]
    ) -> None:
        assert map_segments(sample_response["segments"]) == expected_tokens

    def test_uses_confidence_when_present(self) -> None:
        tokens = map_segments([{"start": 0, "end": 1, "text": "a", "confidence": 0.72}])
        assert tokens[0]["score"] == 0.72

    def test_non_numeric_confidence_defaults(self) -> None:
        tokens = map_segments([{"start": 0, "end": 1, "text": "a", "confidence": "high"}])
        assert tokens[0]["score"] == 1

    def test_missing_text_is_empty(self) -> None:
        tokens = map_segments([{"start": 0, "end": 1}])
        assert tokens[0]["value"] == ""

    def test_sdk_objects(self) -> None:
        segments = [
            SimpleNamespace(id=0, start=0.0, end=2.25, text="  Hello world "),
            SimpleNamespace(id=1, start=2.25, end=4.0, text="again"),
        ]
        tokens = map_segments(segments)
        assert tokens[0] == {
            "id": 1,
            "value": "Hello world",
            "startTimeMs": 0,
            "endTimeMs": 2250,
            "score": 1,
        }
        assert tokens[1]["id"] == 2

    def test_none_is_empty(self) -> None:
        assert map_segments(None) == []

    def test_non_list_raises(self) -> None:
        with pytest.raises(TypeError):
            map_segments("segments")


class TestRetryPolicy:
    def test_success_needs_no_sleep(self, fake_clock) -> None:
        operation = FlakyOperation(failures=0)
        assert asyncio.run(make_policy(fake_clock).run(operation)) == "ok"
        assert operation.calls == 1
        assert fake_clock.sleeps == []

    def test_two_failures_then_success(self, fake_clock) -> None:
        operation = FlakyOperation(failures=2, result="tokens")

        result = asyncio.run(make_policy(fake_clock).run(operation))

        assert result == "tokens"
        assert operation.calls == 3
        assert fake_clock.sleeps == pytest.approx([0.2, 0.4])
        assert fake_clock.now == pytest.approx(0.6)

    def test_jittered_delays_stay_near_backoff(self, fake_clock) -> None:
        operation = FlakyOperation(failures=2)
        asyncio.run(make_policy(fake_clock, jitter=proportional_jitter).run(operation))

        first, second = fake_clock.sleeps
        assert 0.16 <= first <= 0.24
        assert 0.32 <= second <= 0.48
        assert fake_clock.now <= 10.0

    def test_always_failing_gives_up_within_budget(self, fake_clock) -> None:
        operation = FlakyOperation(failures=None)

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(make_policy(fake_clock).run(operation))

        assert fake_clock.sleeps == pytest.approx([0.2, 0.4, 0.8, 1.6, 3.2])
        assert fake_clock.now <= 10.0
        assert operation.calls == 6
        assert exc_info.value.reason == "rate limited (call 6)"

    def test_max_jitter_still_within_budget(self, fake_clock) -> None:
        operation = FlakyOperation(failures=None)

        with pytest.raises(TranscriptionError):
            asyncio.run(make_policy(fake_clock, jitter=lambda d: d * 1.2).run(operation))

        assert fake_clock.now <= 10.0

    def test_slow_operation_counts_against_budget(self, fake_clock) -> None:
        async def slow_failure() -> str:
            fake_clock.now += 4.0
            raise TranscriptionError("timeout")

        with pytest.raises(TranscriptionError):
            asyncio.run(make_policy(fake_clock).run(slow_failure))

        assert fake_clock.sleeps == pytest.approx([0.2, 0.4])

    def test_other_errors_not_retried(self, fake_clock) -> None:
        calls = []

        async def broken() -> str:
            calls.append(1)
            raise KeyError("bug")

        with pytest.raises(KeyError):
            asyncio.run(make_policy(fake_clock).run(broken))
        assert calls == [1]

    def test_proportional_jitter_range(self) -> None:
        for _ in range(200):
            assert 0.8 <= proportional_jitter(1.0) <= 1.2

    @pytest.mark.parametrize(
        "kwargs",
        [{"initial_delay": 0}, {"multiplier": 0.5}, {"max_elapsed": -1}],
    )
    def test_invalid_parameters(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_from_config(self) -> None:
        config = SublineConfig(retry={"initial_delay": 0.5, "max_elapsed": 3, "jitter": False})
        policy = create_policy_from_config(config)
        assert policy.initial_delay == 0.5
        assert policy.multiplier == 2.0
        assert policy.max_elapsed == 3
        assert policy.jitter is no_jitter


class TestTranscriptionClient:
    def test_transcribe_maps_and_validates(
        self, audio_file: Path, fake_backend, fake_clock, sample_response, expected_tokens
    ) -> None:
        backend = fake_backend(sample_response)
        client = TranscriptionClient(backend, retry_policy=make_policy(fake_clock))

        result = asyncio.run(client.transcribe(audio_file))

        assert result.to_json_list() == expected_tokens
        call = backend.transcriptions.calls[0]
        assert call["model"] == "whisper-1"
        assert call["response_format"] == "verbose_json"
        assert call["timestamp_granularities"] == ["segment"]

    def test_sdk_object_response(self, audio_file: Path, fake_backend, fake_clock) -> None:
        response = SimpleNamespace(
            text="hello",
            segments=[SimpleNamespace(start=0.0, end=0.8, text=" hello")],
        )
        client = TranscriptionClient(fake_backend(response), retry_policy=make_policy(fake_clock))

        result = asyncio.run(client.transcribe(str(audio_file)))

        assert len(result) == 1
        assert result[0].value == "hello"
        assert result[0].end_time_ms == 800

    def test_missing_file_not_retried(self, tmp_path: Path, fake_backend, fake_clock) -> None:
        backend = fake_backend({"segments": []})
        client = TranscriptionClient(backend, retry_policy=make_policy(fake_clock))

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(client.transcribe(tmp_path / "missing.m4a"))

        assert "not found" in exc_info.value.reason
        assert backend.transcriptions.calls == []

    def test_transient_failures_retried(
        self, audio_file: Path, fake_backend, fake_clock, sample_response, expected_tokens
    ) -> None:
        backend = fake_backend(
            RuntimeError("429 Too Many Requests"),
            ConnectionError("connection reset"),
            sample_response,
        )
        client = TranscriptionClient(backend, retry_policy=make_policy(fake_clock))

        result = asyncio.run(client.transcribe(audio_file))

        assert result.to_json_list() == expected_tokens
        assert len(backend.transcriptions.calls) == 3

    def test_persistent_failure_surfaces_cause(
        self, audio_file: Path, fake_backend, fake_clock
    ) -> None:
        backend = fake_backend(RuntimeError("500 Internal Server Error"))
        client = TranscriptionClient(backend, retry_policy=make_policy(fake_clock))

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(client.transcribe(audio_file))

        assert "Whisper API failed" in exc_info.value.reason
        assert "500 Internal Server Error" in exc_info.value.reason
        assert fake_clock.now <= 10.0

    def test_invalid_segments_rejected(self, audio_file: Path, fake_backend, fake_clock) -> None:
        response = {"segments": [{"start": 2.0, "end": 1.0, "text": "backwards"}]}
        client = TranscriptionClient(fake_backend(response), retry_policy=make_policy(fake_clock))

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(client.transcribe(audio_file))

        assert "failed validation" in exc_info.value.reason

    def test_malformed_body_rejected(self, audio_file: Path, fake_backend, fake_clock) -> None:
        response = {"segments": [{"start": "zero", "end": 1.0, "text": "x"}]}
        client = TranscriptionClient(fake_backend(response), retry_policy=make_policy(fake_clock))

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(client.transcribe(audio_file))

        assert "Malformed transcription response" in exc_info.value.reason

    def test_no_segments_is_empty_result(self, audio_file: Path, fake_backend, fake_clock) -> None:
        client = TranscriptionClient(fake_backend({"text": ""}), retry_policy=make_policy(fake_clock))
        assert len(asyncio.run(client.transcribe(audio_file))) == 0


class TestCreateTranscriber:
    def test_builds_from_config(self) -> None:
        config = SublineConfig(transcription={"model": "whisper-1"}, retry={"max_elapsed": 5})
        client = create_transcriber(config, api_key="sk-test")
        assert client.model == "whisper-1"
        assert client.response_format == "verbose_json"
        assert client.retry_policy.max_elapsed == 5
        assert hasattr(client.backend.audio.transcriptions, "create")

    def test_sdk_retries_disabled(self) -> None:
        client = create_transcriber(SublineConfig(retry={"max_elapsed": 5}), api_key="sk-test")
        assert client.backend.max_retries == 0
        assert client.backend.timeout == 5

    def test_context_manager_closes_backend(self, fake_backend, sample_response) -> None:
        backend = fake_backend(sample_response)

        async def use() -> None:
            async with TranscriptionClient(backend) as client:
                assert client.backend is backend

        asyncio.run(use())
        assert backend.closed
