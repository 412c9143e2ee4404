"""Abstract chat platform interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from gemini_relay.messenger.models import IncomingMessage, InlineQuery

MessageCallback = Callable[[IncomingMessage], Awaitable[None]]
CommandCallback = Callable[[str, str, IncomingMessage], Awaitable[None]]
InlineQueryCallback = Callable[[InlineQuery], Awaitable[None]]


class ChatPlatform(ABC):
    """Outbound operations of the chat platform plus inbound callback registration.

    Every send returns the new message id and raises PlatformError when the
    platform rejects the request.
    """

    def __init__(self) -> None:
        self._message_callback: MessageCallback | None = None
        self._command_callback: CommandCallback | None = None
        self._inline_callback: InlineQueryCallback | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving updates."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        ...

    @abstractmethod
    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        ...

    @abstractmethod
    async def send_photo(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        ...

    @abstractmethod
    async def send_voice(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        ...

    @abstractmethod
    async def send_video(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        ...

    @abstractmethod
    async def send_document(
        self,
        chat_id: int,
        data: bytes,
        filename: str,
        caption: str | None = None,
        reply_to: int | None = None,
    ) -> int:
        ...

    @abstractmethod
    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        ...

    @abstractmethod
    async def send_typing(self, chat_id: int) -> None:
        ...

    @abstractmethod
    async def get_file(self, file_id: str) -> bytes:
        """Download the bytes of a file stored on the platform."""
        ...

    @abstractmethod
    async def answer_inline_query(self, query_id: str, title: str, text: str) -> None:
        ...

    def on_messages(self, callback: MessageCallback) -> None:
        """Register the callback for new and edited messages."""
        self._message_callback = callback

    def on_command(self, callback: CommandCallback) -> None:
        self._command_callback = callback

    def on_inline_query(self, callback: InlineQueryCallback) -> None:
        self._inline_callback = callback
