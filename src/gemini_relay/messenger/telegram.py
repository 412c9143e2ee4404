"""Telegram chat platform using python-telegram-bot v21+."""

from __future__ import annotations

import io
import uuid
from typing import Any, Awaitable, TypeVar

from telegram import (
    InlineQueryResultArticle,
    InputFile,
    InputTextMessageContent,
    Message,
    ReactionTypeEmoji,
    ReplyParameters,
    Update,
)
from telegram.constants import ChatAction
from telegram.error import TelegramError
from telegram.ext import Application, InlineQueryHandler, MessageHandler as TGMessageHandler, filters

from gemini_relay.core.errors import PlatformError
from gemini_relay.core.types import MediaKind
from gemini_relay.log import get_logger
from gemini_relay.messenger.base import ChatPlatform
from gemini_relay.messenger.models import IncomingMessage, InlineQuery, MediaRef

logger = get_logger(__name__)

T = TypeVar("T")


def _reply(reply_to: int | None) -> ReplyParameters | None:
    return ReplyParameters(message_id=reply_to) if reply_to is not None else None


def _media_refs(msg: Message) -> list[MediaRef]:
    refs: list[MediaRef] = []
    if msg.photo:
        # highest resolution is the last size
        refs.append(MediaRef(MediaKind.PHOTO, msg.photo[-1].file_id))
    if msg.video:
        refs.append(MediaRef(MediaKind.VIDEO, msg.video.file_id))
    if msg.video_note:
        refs.append(MediaRef(MediaKind.VIDEO_NOTE, msg.video_note.file_id))
    if msg.audio:
        refs.append(MediaRef(MediaKind.AUDIO, msg.audio.file_id))
    if msg.voice:
        refs.append(MediaRef(MediaKind.VOICE, msg.voice.file_id))
    if msg.document:
        refs.append(MediaRef(MediaKind.DOCUMENT, msg.document.file_id))
    return refs


def to_incoming(msg: Message, edited: bool = False, with_reply: bool = True) -> IncomingMessage | None:
    """Convert a Telegram message into an IncomingMessage (reply parent one level deep)."""
    user = msg.from_user
    if user is None:
        return None

    reply_to = None
    if with_reply and msg.reply_to_message is not None:
        reply_to = to_incoming(msg.reply_to_message, with_reply=False)

    return IncomingMessage(
        chat_id=msg.chat_id,
        message_id=msg.message_id,
        user_id=user.id,
        username=user.username,
        display_name=user.first_name,
        is_bot=user.is_bot,
        text=msg.text,
        caption=msg.caption,
        media=_media_refs(msg),
        reply_to=reply_to,
        media_group_id=msg.media_group_id,
        edited=edited,
    )


class TelegramPlatform(ChatPlatform):
    """Telegram bot using long polling."""

    def __init__(self, token: str):
        super().__init__()
        if not token:
            raise ValueError("Telegram bot token not configured")
        self._token = token
        self._app: Application | None = None  # type: ignore[type-arg]

    @property
    def bot(self):
        if not self._app:
            raise RuntimeError("Telegram platform not started")
        return self._app.bot

    async def start(self) -> None:
        self._app = Application.builder().token(self._token).concurrent_updates(True).build()

        self._app.add_handler(TGMessageHandler(filters.COMMAND, self._on_telegram_command))
        self._app.add_handler(TGMessageHandler(~filters.COMMAND, self._on_telegram_message))
        self._app.add_handler(InlineQueryHandler(self._on_telegram_inline_query))

        await self._app.initialize()
        await self._app.bot.delete_webhook(drop_pending_updates=False)
        await self._app.start()
        await self._app.updater.start_polling()  # type: ignore[union-attr]
        me = self._app.bot.username
        logger.info("telegram_platform_started", bot=me)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            logger.info("telegram_platform_stopped")

    async def _call(self, request: Awaitable[T]) -> T:
        try:
            return await request
        except TelegramError as e:
            raise PlatformError(e.message) from e

    async def send_message(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        sent = await self._call(
            self.bot.send_message(chat_id=chat_id, text=text, reply_parameters=_reply(reply_to))
        )
        return sent.message_id

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        await self._call(
            self.bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)
        )

    async def send_photo(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        sent = await self._call(
            self.bot.send_photo(chat_id=chat_id, photo=data, reply_parameters=_reply(reply_to))
        )
        return sent.message_id

    async def send_voice(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        sent = await self._call(
            self.bot.send_voice(chat_id=chat_id, voice=data, reply_parameters=_reply(reply_to))
        )
        return sent.message_id

    async def send_video(self, chat_id: int, data: bytes, reply_to: int | None = None) -> int:
        sent = await self._call(
            self.bot.send_video(chat_id=chat_id, video=data, reply_parameters=_reply(reply_to))
        )
        return sent.message_id

    async def send_document(
        self,
        chat_id: int,
        data: bytes,
        filename: str,
        caption: str | None = None,
        reply_to: int | None = None,
    ) -> int:
        sent = await self._call(
            self.bot.send_document(
                chat_id=chat_id,
                document=InputFile(io.BytesIO(data), filename=filename),
                caption=caption,
                reply_parameters=_reply(reply_to),
            )
        )
        return sent.message_id

    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None:
        await self._call(
            self.bot.set_message_reaction(
                chat_id=chat_id, message_id=message_id, reaction=[ReactionTypeEmoji(emoji)]
            )
        )

    async def send_typing(self, chat_id: int) -> None:
        await self._call(self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING))

    async def get_file(self, file_id: str) -> bytes:
        tg_file = await self._call(self.bot.get_file(file_id))
        data = await self._call(tg_file.download_as_bytearray())
        return bytes(data)

    async def answer_inline_query(self, query_id: str, title: str, text: str) -> None:
        result = InlineQueryResultArticle(
            id=uuid.uuid4().hex,
            title=title,
            input_message_content=InputTextMessageContent(text),
        )
        await self._call(self.bot.answer_inline_query(query_id, results=[result]))

    async def _on_telegram_message(self, update: Update, context: Any) -> None:
        msg = update.message or update.edited_message
        if msg is None or not self._message_callback:
            return
        incoming = to_incoming(msg, edited=update.edited_message is not None)
        if incoming is None:
            return

        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), chat_id=msg.chat_id)

    async def _on_telegram_command(self, update: Update, context: Any) -> None:
        msg = update.message or update.edited_message
        if msg is None or not msg.text or not self._command_callback:
            return
        incoming = to_incoming(msg, edited=update.edited_message is not None)
        if incoming is None:
            return

        head, _, args = msg.text.partition(" ")
        command = head.split("@", 1)[0].lower()
        try:
            await self._command_callback(command, args.strip(), incoming)
        except Exception as e:
            logger.error("telegram_command_error", command=command, error=str(e), chat_id=msg.chat_id)

    async def _on_telegram_inline_query(self, update: Update, context: Any) -> None:
        query = update.inline_query
        if query is None or not self._inline_callback:
            return
        try:
            await self._inline_callback(
                InlineQuery(
                    query_id=query.id,
                    query=query.query,
                    user_id=query.from_user.id,
                    username=query.from_user.username,
                )
            )
        except Exception as e:
            logger.error("telegram_inline_query_error", error=str(e))
