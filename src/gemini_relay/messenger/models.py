"""Platform-neutral message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from gemini_relay.core.types import MediaKind, Role


@dataclass(frozen=True, slots=True)
class MediaRef:
    """Reference to a media file stored on the chat platform."""

    kind: MediaKind
    file_id: str


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    chat_id: int
    message_id: int
    user_id: int
    username: Optional[str]
    display_name: str
    is_bot: bool = False
    text: Optional[str] = None
    caption: Optional[str] = None
    media: list[MediaRef] = field(default_factory=list)
    reply_to: Optional[IncomingMessage] = None
    media_group_id: Optional[str] = None
    edited: bool = False

    @property
    def has_media(self) -> bool:
        return bool(self.media)

    @property
    def sender_name(self) -> str:
        if self.username:
            return f"@{self.username} ({self.display_name})"
        return self.display_name


@dataclass(frozen=True, slots=True)
class InlineQuery:
    query_id: str
    query: str
    user_id: int
    username: Optional[str]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One conversation turn extracted from the chat platform."""

    role: Role
    text: str
    files: tuple[bytes, ...] = ()
    # (offset in `text`, url) of video links the sender wrote
    video_links: tuple[tuple[int, str], ...] = ()

    def describe(self) -> str:
        if self.files:
            return f"[{self.role}] {self.text} ({len(self.files)} file(s))"
        return f"[{self.role}] {self.text}"


def messages_to_prompt_text(parent: ChatMessage | None, original: ChatMessage | None) -> str:
    """Human-readable projection of a prompt, used for interaction logs."""
    return "\n--------\n".join(m.describe() for m in (parent, original) if m is not None)
