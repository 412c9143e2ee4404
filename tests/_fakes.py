from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

from gemini_relay.ai.client import GenerativeClient
from gemini_relay.ai.options import GenerationOptions, VideoOptions
from gemini_relay.ai.types import (
    FilePrompt,
    GeneratedVideo,
    Generation,
    HistoryTurn,
    Prompt,
    StreamEvent,
    UploadedFile,
)
from gemini_relay.config import AppConfig
from gemini_relay.core.errors import GenerationError, PlatformError
from gemini_relay.messenger.base import ChatPlatform
from gemini_relay.messenger.models import IncomingMessage, MediaRef
from gemini_relay.storage.models import InteractionRecord

BOT_TOKEN = "123456:TEST-BOT-TOKEN"
API_KEY = "AIza-test-api-key"
ALLOWED_USER = "alice"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 32


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "telegram_bot_token": BOT_TOKEN,
        "google_ai_api_key": API_KEY,
        "allowed_telegram_users": [ALLOWED_USER],
        "db_path": "",
        "media_group_wait_seconds": 0.01,
    }
    values.update(overrides)
    return AppConfig(**values)


def make_message(
    text: str | None = "hello",
    *,
    chat_id: int = 100,
    message_id: int = 10,
    user_id: int = 1,
    username: str | None = ALLOWED_USER,
    is_bot: bool = False,
    caption: str | None = None,
    media: Sequence[MediaRef] = (),
    reply_to: IncomingMessage | None = None,
    media_group_id: str | None = None,
) -> IncomingMessage:
    return IncomingMessage(
        chat_id=chat_id,
        message_id=message_id,
        user_id=user_id,
        username=username,
        display_name="Alice",
        is_bot=is_bot,
        text=text,
        caption=caption,
        media=list(media),
        reply_to=reply_to,
        media_group_id=media_group_id,
    )


@dataclass
class Call:
    method: str
    args: dict[str, Any] = field(default_factory=dict)
    result: int | None = None


class FakePlatform(ChatPlatform):
    """Records every outbound call; `fail` names methods that raise PlatformError."""

    def __init__(self, files: dict[str, bytes] | None = None, fail: Sequence[str] = ()):
        super().__init__()
        self.calls: list[Call] = []
        self.files = files or {}
        self.fail = set(fail)
        self.download_delay = 0.0
        self._next_id = 1000

    def _record(self, method: str, **args: Any) -> int:
        call = Call(method, args)
        self.calls.append(call)
        if method in self.fail:
            raise PlatformError(f"{method} rejected")
        self._next_id += 1
        call.result = self._next_id
        return self._next_id

    def of(self, method: str) -> list[Call]:
        return [c for c in self.calls if c.method == method]

    @property
    def outbound(self) -> list[Call]:
        """Calls that put something into a chat."""
        return [c for c in self.calls if c.method not in ("send_typing", "get_file")]

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def send_message(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        return self._record("send_message", chat_id=chat_id, text=text, reply_to=reply_to)

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        self._record("edit_message", chat_id=chat_id, message_id=message_id, text=text)

    async def send_photo(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        return self._record("send_photo", chat_id=chat_id, data=data, reply_to=reply_to)

    async def send_voice(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        return self._record("send_voice", chat_id=chat_id, data=data, reply_to=reply_to)

    async def send_video(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        return self._record("send_video", chat_id=chat_id, data=data, reply_to=reply_to)

    async def send_document(
        self,
        chat_id: int,
        data: bytes,
        filename: str,
        caption: str | None = None,
        reply_to: int | None = None,
    ) -> int:
        return self._record(
            "send_document", chat_id=chat_id, data=data, filename=filename, caption=caption, reply_to=reply_to
        )

    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        self._record("set_reaction", chat_id=chat_id, message_id=message_id, emoji=emoji)

    async def send_typing(self, chat_id: int) -> None:
        self._record("send_typing", chat_id=chat_id)

    async def get_file(self, file_id: str) -> bytes:
        self.calls.append(Call("get_file", {"file_id": file_id}))
        if self.download_delay:
            await asyncio.sleep(self.download_delay)
        if file_id not in self.files:
            raise PlatformError(f"file {file_id} not found")
        return self.files[file_id]

    async def answer_inline_query(self, query_id: str, title: str, text: str) -> None:
        self._record("answer_inline_query", query_id=query_id, title=title, text=text)


class FakeClient(GenerativeClient):
    """Scripted generative client.

    `events` is replayed by generate_streamed (with `delay` seconds between
    events); `generation` or `error` decide generate_once. Content conversion
    takes `conversion_delay` seconds.
    """

    def __init__(
        self,
        events: Sequence[StreamEvent] = (),
        generation: Generation | None = None,
        error: Exception | None = None,
        videos: Sequence[GeneratedVideo] = (),
        failing_uploads: Sequence[str] = (),
        delay: float = 0.0,
        conversion_delay: float = 0.0,
    ):
        self.events = list(events)
        self.generation = generation or Generation()
        self.error = error
        self.videos = list(videos)
        self.failing_uploads = set(failing_uploads)
        self.delay = delay
        self.conversion_delay = conversion_delay
        self.uploaded: list[FilePrompt] = []
        self.contents: list[Any] = []
        self.options: list[GenerationOptions] = []
        self.video_requests: list[dict[str, Any]] = []

    async def upload_file_and_wait(self, file: FilePrompt) -> UploadedFile:
        if file.name in self.failing_uploads:
            raise GenerationError(f"upload of {file.name} failed")
        self.uploaded.append(file)
        return UploadedFile(name=f"files/{len(self.uploaded)}", uri=f"https://files/{len(self.uploaded)}", mime_type="image/png")

    async def prompts_to_contents(self, prompts: Sequence[Prompt], history: Sequence[HistoryTurn] = ()) -> Any:
        if self.conversion_delay:
            await asyncio.sleep(self.conversion_delay)
        for prompt in prompts:
            if isinstance(prompt, FilePrompt):
                await self.upload_file_and_wait(prompt)
        contents = {"prompts": list(prompts), "history": list(history)}
        self.contents.append(contents)
        return contents

    async def generate_streamed(self, contents: Any, options: GenerationOptions) -> AsyncIterator[StreamEvent]:
        self.options.append(options)
        if self.error is not None:
            yield StreamEvent(error=self.error)
            return
        for event in self.events:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield event

    async def generate_once(self, contents: Any, options: GenerationOptions) -> Generation:
        self.options.append(options)
        if self.error is not None:
            raise self.error
        return self.generation

    async def generate_videos(
        self,
        prompt: str | None,
        first_frame: FilePrompt | None,
        last_frame: FilePrompt | None,
        video: FilePrompt | None,
        options: VideoOptions,
    ) -> list[GeneratedVideo]:
        self.video_requests.append(
            {"prompt": prompt, "first_frame": first_frame, "last_frame": last_frame, "video": video}
        )
        if self.error is not None:
            raise self.error
        return self.videos


class FakeRepo:
    """Stands in for InteractionRepository."""

    def __init__(self, fail: bool = False):
        self.records: list[InteractionRecord] = []
        self.fail = fail

    async def record_interaction(self, record: InteractionRecord) -> int:
        if self.fail:
            raise RuntimeError("database is locked")
        self.records.append(record)
        return len(self.records)

    async def query_stats(self):
        return None
