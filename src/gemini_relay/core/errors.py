"""Exception hierarchy, error aggregation and secret redaction."""

from __future__ import annotations

from typing import Iterable, Iterator

REDACTED = "<REDACTED>"


class RelayError(Exception):
    """Base class for all errors raised inside the relay."""


class PlatformError(RelayError):
    """The chat platform rejected a request."""

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class GenerationError(RelayError):
    """The generative AI provider failed to produce a result."""


class MediaConversionError(RelayError):
    """Audio could not be converted into a sendable container."""


class Redactor:
    """Replaces configured secrets with a fixed marker."""

    def __init__(self, secrets: Iterable[str] = ()):
        # longest first so that a secret containing another is fully masked
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def redact(self, value: str | BaseException) -> str:
        text = str(value)
        for secret in self._secrets:
            if secret in text:
                text = text.replace(secret, REDACTED)
        return text


class ErrorList:
    """Ordered collection of failure causes from one pipeline run.

    Stages append to it instead of raising; the top-level answer decides
    what (if anything) the user sees.
    """

    def __init__(self, errors: Iterable[BaseException | str] = ()):
        self._errors: list[BaseException | str] = list(errors)

    def add(self, error: BaseException | str, context: str | None = None) -> None:
        if context:
            error = f"{context}: {error}"
        self._errors.append(error)

    def extend(self, other: ErrorList | Iterable[BaseException | str]) -> None:
        self._errors.extend(other)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[BaseException | str]:
        return iter(self._errors)

    def join(self, redactor: Redactor | None = None) -> str:
        text = "\n".join(str(e) for e in self._errors)
        return redactor.redact(text) if redactor else text

    def __repr__(self) -> str:
        return f"ErrorList({self._errors!r})"
