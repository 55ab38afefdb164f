"""
subline.models - Validated shapes for pipeline input and output.

Input arguments decode into a SourceReference; transcription output decodes
into a SubtitleResult. Both decoders raise subline.exceptions.ValidationError
with a descriptive reason instead of leaking pydantic errors.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

import pydantic
from pydantic import (
    AllowInfNan,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    Strict,
    StrictInt,
    field_validator,
    model_validator,
)

from subline.exceptions import ValidationError

YOUTUBE_URL_PATTERN = re.compile(r"^https?://(www\.)?(youtube\.com|youtu\.be)/")

FiniteScore = Annotated[float, Strict(), AllowInfNan(False)]


class UrlArgs(BaseModel):
    """Arguments for URL mode."""

    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not YOUTUBE_URL_PATTERN.match(v):
            raise ValueError(
                "must start with http(s)://youtube.com/, http(s)://www.youtube.com/ "
                "or http(s)://youtu.be/"
            )
        return v


class SourceReference(BaseModel):
    """The media source of one run: a local audio file or a video URL."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file", "url"]
    location: str

    @property
    def is_url(self) -> bool:
        return self.kind == "url"


class SubtitleToken(BaseModel):
    """One transcribed span with millisecond timing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(gt=0, strict=True)
    value: str = Field(strict=True)
    start_time_ms: int = Field(ge=0, strict=True, alias="startTimeMs")
    end_time_ms: int = Field(ge=0, strict=True, alias="endTimeMs")
    # Integer scores stay integers so a default of 1 serializes as 1
    score: Union[StrictInt, FiniteScore]

    @model_validator(mode="after")
    def validate_time_order(self) -> SubtitleToken:
        if self.end_time_ms < self.start_time_ms:
            raise ValueError(
                f"endTimeMs ({self.end_time_ms}) is before startTimeMs ({self.start_time_ms})"
            )
        return self


class SubtitleResult(RootModel[list[SubtitleToken]]):
    """Ordered token sequence in transcription-segment order."""

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> SubtitleToken:
        return self.root[index]

    def to_json_list(self) -> list[dict[str, Any]]:
        """Serialize tokens with their camelCase field names."""
        return [token.model_dump(by_alias=True) for token in self.root]


def _describe(error: pydantic.ValidationError, limit: int = 3) -> str:
    """Render the first few pydantic errors as a single line."""
    parts = []
    for detail in error.errors()[:limit]:
        loc = detail.get("loc", ())
        if loc and isinstance(loc[0], int):
            where = f"token {loc[0] + 1}"
            if len(loc) > 1:
                where += f" field '{loc[1]}'"
        elif loc:
            where = f"field '{'.'.join(str(part) for part in loc)}'"
        else:
            where = "result"
        parts.append(f"{where}: {detail.get('msg', 'invalid value')}")
    remaining = error.error_count() - limit
    if remaining > 0:
        parts.append(f"... and {remaining} more")
    return "; ".join(parts)


def decode_args(raw: Mapping[str, Any]) -> SourceReference:
    """Decode raw run arguments into a SourceReference.

    Args:
        raw: Mapping holding exactly one of 'url' or 'file'

    Returns:
        SourceReference for URL mode or file mode

    Raises:
        ValidationError: If both or neither mode is given, the file path is
            empty, or the URL is not a YouTube link
    """
    url = raw.get("url")
    file = raw.get("file")

    if (url is None) == (file is None):
        raise ValidationError("Exactly one of 'url' or 'file' must be provided")

    if file is not None:
        if not isinstance(file, str) or not file.strip():
            raise ValidationError(f"Invalid file path: {file!r}")
        return SourceReference(kind="file", location=file)

    try:
        args = UrlArgs.model_validate({"url": url})
    except pydantic.ValidationError as e:
        detail = e.errors()[0].get("msg", "invalid value") if e.errors() else "invalid value"
        raise ValidationError(f"Invalid URL {url!r}: {detail}") from e

    return SourceReference(kind="url", location=args.url)


def decode_result(raw: Any) -> SubtitleResult:
    """Validate a token sequence as a whole.

    A single invalid token rejects the entire sequence.

    Args:
        raw: List of token mappings (camelCase keys) or a SubtitleResult

    Returns:
        Validated SubtitleResult

    Raises:
        ValidationError: If any token fails validation
    """
    if isinstance(raw, SubtitleResult):
        raw = raw.to_json_list()

    try:
        return SubtitleResult.model_validate(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid subtitle result: {_describe(e)}") from e
