"""Generation options: safety thresholds, tools and response modalities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gemini_relay.core.types import Modality

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


@dataclass(frozen=True)
class GenerationOptions:
    model: str
    harm_block_threshold: str = "BLOCK_ONLY_HIGH"
    system_instruction: Optional[str] = None
    web_search: bool = False
    url_context: bool = False
    modalities: tuple[Modality, ...] = (Modality.TEXT,)
    voice: Optional[str] = None

    def __post_init__(self) -> None:
        if Modality.AUDIO in self.modalities and len(self.modalities) != 1:
            raise ValueError("speech generation must request the AUDIO modality only")
        if Modality.IMAGE in self.modalities and Modality.TEXT not in self.modalities:
            raise ValueError("image generation must request TEXT and IMAGE modalities")

    @classmethod
    def for_text(cls, model: str, threshold: str, system_instruction: str | None, web_search: bool = False) -> "GenerationOptions":
        return cls(
            model=model,
            harm_block_threshold=threshold,
            system_instruction=system_instruction,
            web_search=web_search,
            url_context=True,
        )

    @classmethod
    def for_image(cls, model: str, threshold: str) -> "GenerationOptions":
        return cls(model=model, harm_block_threshold=threshold, modalities=(Modality.TEXT, Modality.IMAGE))

    @classmethod
    def for_speech(cls, model: str, threshold: str, voice: str | None) -> "GenerationOptions":
        return cls(model=model, harm_block_threshold=threshold, modalities=(Modality.AUDIO,), voice=voice)

    @property
    def safety_settings(self) -> list[dict[str, str]]:
        return [{"category": c, "threshold": self.harm_block_threshold} for c in HARM_CATEGORIES]


@dataclass(frozen=True)
class VideoOptions:
    model: str
    poll_interval_seconds: float = 10.0
