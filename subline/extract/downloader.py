"""
subline.extract.downloader - yt-dlp audio download with strategy fallback.

Each strategy is run as its own downloader process. The first attempt that
exits cleanly and leaves a non-empty audio file wins; later strategies are
never started. Attempts run one at a time so upstream sees a single client
and every failure is attributable to exactly one strategy.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from subline.exceptions import ExtractionError
from subline.extract.strategies import DEFAULT_STRATEGIES, Strategy
from subline.models import SourceReference

logger = logging.getLogger(__name__)

EXT_PLACEHOLDER = ".%(ext)s"
TEMP_SUFFIXES = (".part", ".ytdl")


@dataclass(frozen=True)
class ExtractionAttempt:
    """One strategy applied to one URL."""

    strategy: Strategy
    url: str
    output_template: Path
    binary: str = "yt-dlp"
    audio_format: str = "bestaudio"


@dataclass(frozen=True)
class AttemptResult:
    """Outcome of a single downloader run."""

    strategy: str
    path: Path | None = None
    returncode: int | None = None
    stderr: str = ""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.path is not None


Runner = Callable[[ExtractionAttempt], Awaitable[AttemptResult]]


def build_command(attempt: ExtractionAttempt) -> list[str]:
    """Build the downloader argument vector for an attempt."""
    return [
        attempt.binary,
        attempt.url,
        "-f",
        attempt.audio_format,
        "-o",
        str(attempt.output_template),
        *attempt.strategy.args,
    ]


def _output_stem(template: Path) -> str:
    name = template.name
    if not name.endswith(EXT_PLACEHOLDER):
        raise ValueError(f"Output template must end with {EXT_PLACEHOLDER}: {template}")
    return name[: -len(EXT_PLACEHOLDER)]


def list_outputs(template: Path, include_temp: bool = False) -> list[Path]:
    """List files produced for a template, sorted lexicographically.

    Downloader temp files (.part, .ytdl) are excluded unless include_temp.
    """
    pattern = glob.escape(_output_stem(template)) + ".*"
    matches = sorted(template.parent.glob(pattern))
    if include_temp:
        return matches
    return [p for p in matches if not p.name.endswith(TEMP_SUFFIXES)]


def find_output(template: Path) -> Path | None:
    """Pick the downloaded file for a template.

    When several files match, the lexicographically first one is used. This
    is best effort: the downloader normally writes exactly one.
    """
    matches = list_outputs(template)
    return matches[0] if matches else None


def remove_outputs(template: Path) -> None:
    """Delete everything an attempt left behind for a template."""
    for path in list_outputs(template, include_temp=True):
        try:
            path.unlink(missing_ok=True)
            logger.debug("Removed leftover download: %s", path)
        except OSError as e:
            logger.warning("Could not remove leftover download %s: %s", path, e)


async def run_attempt(attempt: ExtractionAttempt) -> AttemptResult:
    """Run the downloader once and report the outcome.

    Never raises for downloader problems: spawn errors, non-zero exit codes
    and missing or empty output files all come back as failed results.
    """
    name = attempt.strategy.name
    cmd = build_command(attempt)
    logger.debug("Trying %s strategy: %s", name, " ".join(cmd))

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return AttemptResult(strategy=name, reason=f"Failed to spawn {attempt.binary}: {e}")

    _, stderr_bytes = await proc.communicate()
    stderr = stderr_bytes.decode("utf-8", errors="replace").strip() if stderr_bytes else ""

    if proc.returncode != 0:
        return AttemptResult(
            strategy=name,
            returncode=proc.returncode,
            stderr=stderr,
            reason=f"{attempt.binary} failed with code {proc.returncode}: {stderr}",
        )

    try:
        output = find_output(attempt.output_template)
        size = output.stat().st_size if output else 0
    except OSError as e:
        return AttemptResult(
            strategy=name,
            returncode=proc.returncode,
            stderr=stderr,
            reason=f"Could not inspect downloaded file: {e}",
        )

    if output is None or size == 0:
        return AttemptResult(
            strategy=name,
            returncode=proc.returncode,
            stderr=stderr,
            reason=f"{attempt.binary} produced no usable file: {stderr}",
        )

    logger.info("Downloaded %s (%d bytes) with %s strategy", output, size, name)
    return AttemptResult(strategy=name, path=output, returncode=0, stderr=stderr)


class AudioExtractor:
    """Downloads audio for a URL by walking an ordered strategy chain."""

    def __init__(
        self,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        binary: str = "yt-dlp",
        audio_format: str = "bestaudio",
        output_dir: Path = Path("."),
        output_prefix: str = "yt-audio",
        runner: Runner | None = None,
    ) -> None:
        self.strategies = tuple(strategies)
        self.binary = binary
        self.audio_format = audio_format
        self.output_dir = output_dir
        self.output_prefix = output_prefix
        self.runner = runner or run_attempt

    def output_template(self) -> Path:
        stamp = int(time.time() * 1000)
        return self.output_dir.resolve() / f"{self.output_prefix}-{stamp}{EXT_PLACEHOLDER}"

    def plan(self, url: str) -> list[ExtractionAttempt]:
        """Build every attempt up front, in strategy order."""
        template = self.output_template()
        return [
            ExtractionAttempt(
                strategy=strategy,
                url=url,
                output_template=template,
                binary=self.binary,
                audio_format=self.audio_format,
            )
            for strategy in self.strategies
        ]

    async def extract_audio(self, url: str | SourceReference) -> Path:
        """Download audio for a URL.

        Args:
            url: Video URL, or a URL-mode SourceReference

        Returns:
            Path to the downloaded, non-empty audio file

        Raises:
            ExtractionError: If no strategies are configured or all of them fail
        """
        location = url.location if isinstance(url, SourceReference) else url

        if not self.strategies:
            raise ExtractionError("No extraction strategies configured")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractionError(f"Could not create output directory {self.output_dir}: {e}") from e

        attempts = self.plan(location)
        total = len(attempts)
        last: AttemptResult | None = None

        for index, attempt in enumerate(attempts, start=1):
            try:
                result = await self.runner(attempt)
            except Exception as e:
                logger.debug("Strategy %s raised", attempt.strategy.name, exc_info=True)
                result = AttemptResult(strategy=attempt.strategy.name, reason=f"Unexpected error: {e}")

            if result.ok:
                logger.info("Strategy %s succeeded (%d/%d)", result.strategy, index, total)
                return result.path

            logger.info(
                "Strategy %s failed (%d/%d): %s", result.strategy, index, total, result.reason
            )
            remove_outputs(attempt.output_template)
            last = result

        names = ", ".join(attempt.strategy.name for attempt in attempts)
        raise ExtractionError(
            f"All {total} extraction strategies failed ({names}); "
            f"last error from {last.strategy}: {last.reason}"
        )


def create_extractor_from_config(config: Any) -> AudioExtractor:
    """Create an AudioExtractor from SublineConfig.

    Args:
        config: SublineConfig instance

    Returns:
        Configured AudioExtractor
    """
    downloader = config.downloader
    return AudioExtractor(
        strategies=downloader.strategies,
        binary=downloader.binary,
        audio_format=downloader.audio_format,
        output_dir=downloader.output_dir,
        output_prefix=downloader.output_prefix,
    )
