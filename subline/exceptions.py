"""
subline.exceptions - Custom exception classes.

All Subline-specific exceptions inherit from SublineError. Pipeline
failures come in exactly three flat kinds, each carrying a reason string.
"""

from __future__ import annotations


class SublineError(Exception):
    """Base exception for all Subline errors."""

    pass


class ConfigError(SublineError):
    """Configuration loading, validation, or credential error."""

    pass


class PipelineError(SublineError):
    """A failure that terminates a pipeline run."""

    kind = "PipelineError"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ValidationError(PipelineError):
    """Malformed input URL or malformed final output."""

    kind = "ValidationError"


class ExtractionError(PipelineError):
    """Every configured extraction strategy failed."""

    kind = "ExtractionError"


class TranscriptionError(PipelineError):
    """Transcription backend, transport, or response failure."""

    kind = "TranscriptionError"
