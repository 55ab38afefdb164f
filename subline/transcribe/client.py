"""
subline.transcribe.client - Whisper API transcription into subtitle tokens.

Submits an audio file with verbose_json output, maps each returned segment
to a SubtitleToken, and validates the whole sequence before returning it.
The backend response is untrusted: anything malformed surfaces as a
TranscriptionError, never as a partially valid result.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

from subline.exceptions import TranscriptionError, ValidationError
from subline.models import SubtitleResult, decode_result
from subline.transcribe.retry import RetryPolicy, create_policy_from_config

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 1


def _field(item: Any, name: str) -> Any:
    """Read a field from an SDK object or a plain mapping."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def seconds_to_ms(seconds: Any) -> int:
    """Convert seconds to whole milliseconds, rounding half up, floored at 0."""
    if seconds is None:
        return 0
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise TypeError(f"timestamp must be a number, got {seconds!r}")
    return max(0, math.floor(seconds * 1000 + 0.5))


def map_segments(segments: Any) -> list[dict[str, Any]]:
    """Map backend segments to token dicts in segment order.

    A segment without a numeric confidence gets DEFAULT_SCORE, which means
    "not reported", not a measured confidence.
    """
    if segments is not None and not isinstance(segments, (list, tuple)):
        raise TypeError(f"segments must be a list, got {type(segments).__name__}")

    tokens = []
    for i, seg in enumerate(segments or []):
        text = _field(seg, "text")
        confidence = _field(seg, "confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = DEFAULT_SCORE

        tokens.append(
            {
                "id": i + 1,
                "value": str(text if text is not None else "").strip(),
                "startTimeMs": seconds_to_ms(_field(seg, "start")),
                "endTimeMs": seconds_to_ms(_field(seg, "end")),
                "score": confidence,
            }
        )
    return tokens


class TranscriptionClient:
    """Transcribes audio files through an OpenAI-compatible async client."""

    def __init__(
        self,
        backend: Any,
        model: str = "whisper-1",
        response_format: str = "verbose_json",
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.backend = backend
        self.model = model
        self.response_format = response_format
        self.retry_policy = retry_policy or RetryPolicy()

    async def __aenter__(self) -> TranscriptionClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the backend's HTTP connections."""
        await self.backend.close()

    async def transcribe(self, audio_path: Path | str) -> SubtitleResult:
        """Transcribe an audio file, retrying transient failures.

        Args:
            audio_path: Path to a local audio file

        Returns:
            Validated SubtitleResult

        Raises:
            TranscriptionError: If the file is missing, or the backend keeps
                failing until the retry budget is spent
        """
        audio_path = Path(audio_path)
        if not audio_path.is_file():
            raise TranscriptionError(f"Audio file not found: {audio_path}")

        logger.info("Transcribing %s with %s", audio_path, self.model)
        result = await self.retry_policy.run(lambda: self._transcribe_once(audio_path))
        logger.info("Transcription produced %d tokens", len(result))
        return result

    async def _transcribe_once(self, audio_path: Path) -> SubtitleResult:
        try:
            with open(audio_path, "rb") as f:
                response = await self.backend.audio.transcriptions.create(
                    file=f,
                    model=self.model,
                    response_format=self.response_format,
                    timestamp_granularities=["segment"],
                )
        except Exception as e:
            raise TranscriptionError(f"Whisper API failed: {e}") from e

        try:
            tokens = map_segments(_field(response, "segments"))
        except (TypeError, ValueError, OverflowError) as e:
            raise TranscriptionError(f"Malformed transcription response: {e}") from e

        try:
            return decode_result(tokens)
        except ValidationError as e:
            raise TranscriptionError(f"Transcription output failed validation: {e.reason}") from e


def create_transcriber(config: Any, api_key: str) -> TranscriptionClient:
    """Create a TranscriptionClient from SublineConfig.

    Args:
        config: SublineConfig instance
        api_key: OpenAI API key

    Returns:
        Configured TranscriptionClient
    """
    from openai import AsyncOpenAI

    return TranscriptionClient(
        backend=AsyncOpenAI(
            api_key=api_key,
            # RetryPolicy is the only retry layer
            max_retries=0,
            timeout=config.retry.max_elapsed,
        ),
        model=config.transcription.model,
        response_format=config.transcription.response_format,
        retry_policy=create_policy_from_config(config),
    )
