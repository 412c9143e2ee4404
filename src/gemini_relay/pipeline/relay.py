"""Mapping of generation output onto outbound chat actions."""

from __future__ import annotations

import asyncio

from gemini_relay.ai.types import InlineBinaryPart
from gemini_relay.core.errors import ErrorList, MediaConversionError, PlatformError
from gemini_relay.log import get_logger
from gemini_relay.media.audio import pcm_sample_rate, pcm_to_ogg, wav_to_ogg
from gemini_relay.media.sniff import base_mime_type, detect_mime_type
from gemini_relay.messenger.base import ChatPlatform

logger = get_logger(__name__)

RECEIVED_REACTION = "👌"
DONE_REACTION = "👌"
ANSWER_FILENAME = "answer.txt"
CAPTION_ELLIPSIS = "..."

_VOICE_MIME_TYPES = frozenset({"audio/ogg", "audio/mpeg", "audio/mp4"})
_WAV_MIME_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})


def caption_preview(text: str, length: int) -> str:
    return text[:length] + CAPTION_ELLIPSIS


class RelaySink:
    """Outbound side of an answer.

    Sends raise PlatformError (or MediaConversionError for audio that could
    not be transcoded). Typing indicators and reactions are best effort and
    never raise.
    """

    def __init__(
        self,
        platform: ChatPlatform,
        request_timeout: float,
        ignorable_timeout: float,
        max_message_length: int = 4096,
        caption_preview_length: int = 128,
        ffmpeg_path: str = "ffmpeg",
        verbose: bool = False,
    ):
        self._platform = platform
        self._request_timeout = request_timeout
        self._ignorable_timeout = ignorable_timeout
        self.max_message_length = max_message_length
        self._caption_preview_length = caption_preview_length
        self._ffmpeg_path = ffmpeg_path
        self._verbose = verbose

    async def _request(self, request):
        try:
            async with asyncio.timeout(self._request_timeout):
                return await request
        except TimeoutError as e:
            raise PlatformError(f"request timed out after {self._request_timeout}s") from e

    async def typing(self, chat_id: int) -> None:
        try:
            async with asyncio.timeout(self._ignorable_timeout):
                await self._platform.send_typing(chat_id)
        except (PlatformError, TimeoutError) as e:
            logger.debug("typing_indicator_failed", chat_id=chat_id, error=str(e) or type(e).__name__)

    async def react(self, chat_id: int, message_id: int, emoji: str = DONE_REACTION) -> bool:
        """Attach a reaction; failures are logged only."""
        try:
            async with asyncio.timeout(self._ignorable_timeout):
                await self._platform.set_reaction(chat_id, message_id, emoji)
            return True
        except (PlatformError, TimeoutError) as e:
            logger.warning("reaction_failed", chat_id=chat_id, message_id=message_id, error=str(e) or type(e).__name__)
            return False

    async def send_text(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        await self.typing(chat_id)
        if self._verbose:
            logger.debug("send_text_verbose", chat_id=chat_id, text=text)
        return await self._request(self._platform.send_message(chat_id, text, reply_to))

    async def edit_text(self, chat_id: int, message_id: int, text: str) -> None:
        await self.typing(chat_id)
        if self._verbose:
            logger.debug("edit_text_verbose", chat_id=chat_id, message_id=message_id, text=text)
        await self._request(self._platform.edit_message(chat_id, message_id, text))

    async def send_as_file(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        await self.typing(chat_id)
        return await self._request(
            self._platform.send_document(
                chat_id,
                text.encode("utf-8"),
                ANSWER_FILENAME,
                caption=caption_preview(text, self._caption_preview_length),
                reply_to=reply_to,
            )
        )

    async def send_text_or_file(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        """Send `text`, falling back to a document when it exceeds the message limit."""
        if len(text) > self.max_message_length:
            logger.info("answer_sent_as_file", chat_id=chat_id, length=len(text))
            return await self.send_as_file(chat_id, text, reply_to)
        return await self.send_text(chat_id, text, reply_to)

    async def send_binary(self, chat_id: int, part: InlineBinaryPart, reply_to: int | None = None) -> int:
        """Send generated bytes as the attachment type their content calls for.

        Raw PCM (recognized from the declared MIME type) is wrapped in WAV and
        transcoded to OGG/Opus; WAV is transcoded directly. Either failure
        abandons the send.
        """
        rate = pcm_sample_rate(part.mime_type)
        if rate is not None:
            if rate <= 0:
                raise MediaConversionError(f"no sample rate in mime type '{part.mime_type}'")
            return await self.send_voice(chat_id, await pcm_to_ogg(part.data, rate, self._ffmpeg_path), reply_to)

        mime_type = detect_mime_type(part.data)
        if mime_type == "application/octet-stream":
            mime_type = base_mime_type(part.mime_type) or mime_type

        if mime_type.startswith("image/"):
            await self.typing(chat_id)
            return await self._request(self._platform.send_photo(chat_id, part.data, reply_to))
        if mime_type in _WAV_MIME_TYPES:
            return await self.send_voice(chat_id, await wav_to_ogg(part.data, self._ffmpeg_path), reply_to)
        if mime_type in _VOICE_MIME_TYPES:
            return await self.send_voice(chat_id, part.data, reply_to)
        if mime_type.startswith("video/"):
            return await self.send_video(chat_id, part.data, reply_to)

        await self.typing(chat_id)
        return await self._request(
            self._platform.send_document(
                chat_id,
                part.data,
                "generated.bin",
                caption=f"{len(part.data)} byte(s) of {mime_type}",
                reply_to=reply_to,
            )
        )

    async def send_voice(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        await self.typing(chat_id)
        return await self._request(self._platform.send_voice(chat_id, data, reply_to))

    async def send_video(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        await self.typing(chat_id)
        return await self._request(self._platform.send_video(chat_id, data, reply_to))

    def streaming(self, chat_id: int, reply_to: int | None) -> StreamingRelay:
        return StreamingRelay(self, chat_id, reply_to)


class StreamingRelay:
    """Mirrors a growing answer buffer into one chat message.

    The first non-empty buffer creates the message; every later buffer edits
    it. Once the buffer outgrows the message limit, edits stop and `finish`
    sends the whole text as a document instead.
    """

    def __init__(self, sink: RelaySink, chat_id: int, reply_to: int | None):
        self._sink = sink
        self.chat_id = chat_id
        self.reply_to = reply_to
        self.message_id: int | None = None
        self.overflowed = False
        self.errors = ErrorList()

    async def __call__(self, buffer: str) -> None:
        if not buffer.strip() or self.overflowed:
            return
        if len(buffer) > self._sink.max_message_length:
            self.overflowed = True
            logger.info("stream_overflowed", chat_id=self.chat_id, length=len(buffer))
            return

        try:
            if self.message_id is None:
                self.message_id = await self._sink.send_text(self.chat_id, buffer, self.reply_to)
            else:
                await self._sink.edit_text(self.chat_id, self.message_id, buffer)
        except PlatformError as e:
            action = "send" if self.message_id is None else "update"
            logger.warning("stream_relay_failed", chat_id=self.chat_id, action=action, error=e.description)
            self.errors.add(e, context=f"failed to {action} message")

    async def finish(self, text: str) -> int | None:
        """Complete the relay; returns the id of the message holding the final answer."""
        if not self.overflowed:
            return self.message_id
        try:
            return await self._sink.send_as_file(self.chat_id, text, self.reply_to)
        except PlatformError as e:
            logger.error("answer_file_send_failed", chat_id=self.chat_id, error=e.description)
            self.errors.add(e, context="failed to send answer as file")
            return None
