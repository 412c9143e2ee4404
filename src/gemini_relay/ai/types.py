"""Provider-neutral prompt, response and stream types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from gemini_relay.core.types import Role


# prompt fragments

@dataclass(frozen=True, slots=True)
class TextPrompt:
    text: str


@dataclass(frozen=True, slots=True)
class FilePrompt:
    """Raw bytes to be uploaded to provider storage before use."""

    name: str
    data: bytes
    mime_type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class URIPrompt:
    """A file the provider can read directly, e.g. a YouTube video."""

    uri: str
    mime_type: str


Prompt = Union[TextPrompt, FilePrompt, URIPrompt]


@dataclass(frozen=True, slots=True)
class UploadedFile:
    name: str
    uri: str
    mime_type: str


@dataclass(slots=True)
class HistoryTurn:
    role: Role
    text: str
    files: list[UploadedFile] = field(default_factory=list)


# response parts

@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class InlineBinaryPart:
    mime_type: str
    data: bytes

    def describe(self) -> str:
        return f"{self.mime_type};{len(self.data)} bytes"


@dataclass(frozen=True, slots=True)
class FileRefPart:
    uri: str
    mime_type: str


ResponsePart = Union[TextPart, InlineBinaryPart, FileRefPart]


@dataclass(frozen=True, slots=True)
class TokenCounts:
    input: int = 0
    output: int = 0

    def high_water(self, other: Optional[TokenCounts]) -> TokenCounts:
        if other is None:
            return self
        return TokenCounts(max(self.input, other.input), max(self.output, other.output))


@dataclass(slots=True)
class Candidate:
    parts: list[ResponsePart] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass(slots=True)
class Generation:
    """Complete result of a single-shot generation."""

    candidates: list[Candidate] = field(default_factory=list)
    tokens: TokenCounts = field(default_factory=TokenCounts)


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One increment of a streamed generation."""

    text_delta: Optional[str] = None
    finish_reason: Optional[str] = None
    tokens: Optional[TokenCounts] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True, slots=True)
class GeneratedVideo:
    data: bytes
    mime_type: str
