"""
subline.pipeline - Input → extraction → transcription → output validation.

run_pipeline never raises PipelineError: every stage failure is returned as
a Failure carrying one of the three error kinds, and a finished run is a
Success carrying the validated tokens.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Union

from subline.exceptions import PipelineError, ValidationError
from subline.models import SourceReference, SubtitleResult, decode_args, decode_result

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    async def extract_audio(self, url: str | SourceReference) -> Path: ...


class Transcriber(Protocol):
    async def transcribe(self, audio_path: Path | str) -> SubtitleResult: ...


@dataclass(frozen=True)
class Success:
    result: SubtitleResult

    ok = True


@dataclass(frozen=True)
class Failure:
    error: PipelineError

    ok = False

    @property
    def reason(self) -> str:
        return self.error.reason


PipelineOutcome = Union[Success, Failure]


async def run_pipeline(
    raw_args: Mapping[str, Any],
    *,
    extractor: Extractor,
    transcriber: Transcriber,
    keep_audio: bool = True,
) -> PipelineOutcome:
    """Run one subtitle generation.

    Args:
        raw_args: Mapping with exactly one of 'url' or 'file'
        extractor: Downloads audio in URL mode
        transcriber: Turns an audio file into validated tokens
        keep_audio: If False, audio downloaded in URL mode is deleted afterwards

    Returns:
        Success with the token sequence, or Failure with the stage's error
    """
    downloaded: Path | None = None

    try:
        source = decode_args(raw_args)

        if source.is_url:
            logger.info("Extracting audio from %s", source.location)
            downloaded = await extractor.extract_audio(source)
            audio_path = downloaded
        else:
            logger.info("Using local audio file: %s", source.location)
            audio_path = Path(source.location)

        subtitles = await transcriber.transcribe(audio_path)

        try:
            final = decode_result(subtitles)
        except ValidationError as e:
            raise ValidationError(f"Output validation failed: {e.reason}") from e

        return Success(final)

    except PipelineError as e:
        logger.debug("Pipeline failed with %s: %s", e.kind, e.reason)
        return Failure(e)

    finally:
        if downloaded is not None and not keep_audio:
            _discard(downloaded)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
        logger.info("Removed downloaded audio: %s", path)
    except OSError as e:
        logger.warning("Could not remove downloaded audio %s: %s", path, e)
