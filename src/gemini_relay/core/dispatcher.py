"""Routes platform updates to commands and answer pipelines."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from importlib.metadata import PackageNotFoundError, version

from gemini_relay.config import AppConfig
from gemini_relay.core.errors import ErrorList, PlatformError
from gemini_relay.log import get_logger
from gemini_relay.messenger.base import ChatPlatform
from gemini_relay.messenger.models import IncomingMessage, InlineQuery
from gemini_relay.pipeline.answer import Answerer
from gemini_relay.storage.interaction_repo import InteractionRepository

logger = get_logger(__name__)

CMD_START = "/start"
CMD_HELP = "/help"
CMD_STATS = "/stats"
CMD_PRIVACY = "/privacy"
CMD_IMAGE = "/image"
CMD_SPEECH = "/speech"
CMD_VIDEO = "/video"
CMD_GOOGLE = "/google"

MSG_START = "This bot will answer your messages with Gemini API :-)"
MSG_CMD_NOT_SUPPORTED = "Not a supported bot command: {command}"
MSG_TYPE_NOT_SUPPORTED = "Not a supported message type."
MSG_PROMPT_NOT_GIVEN = "Prompt not given."
MSG_DATABASE_NOT_CONFIGURED = "Database not configured. Set `db_path` in your config file."
MSG_DATABASE_EMPTY = "Database is empty."
MSG_PRIVACY = (
    "Privacy policy:\n\n"
    "This bot sends your messages, their attachments and the contents of linked URLs "
    "to the Google Gemini API to generate answers. Prompts and results are logged "
    "on the bot's server for usage statistics. Nothing else is collected or shared."
)

MSG_HELP = """Help message here:

{image} <prompt> : generate an image with the prompt.
{video} <prompt> : generate a video with the prompt.
{speech} <prompt> : generate a speech with the prompt.
{google} <prompt> : answer the prompt with Google Search grounding.
{stats} : show stats of this bot.
{privacy} : show the privacy policy of this bot.
{help} : show this help message.

- models: {text} / {image_model} / {video_model} / {speech_model}
- version: {version}
"""


def package_version() -> str:
    try:
        return version("telegram-gemini-relay")
    except PackageNotFoundError:
        return "unknown"


class UpdateDispatcher:
    """Handles every inbound update: allow-list, commands, albums and inline queries."""

    def __init__(
        self,
        config: AppConfig,
        platform: ChatPlatform,
        answerer: Answerer,
        repo: InteractionRepository | None = None,
    ):
        self._config = config
        self._platform = platform
        self._answerer = answerer
        self._repo = repo
        self._allowed = config.allowed_users
        self._media_groups: dict[str, list[IncomingMessage]] = {}
        self._tasks: set[asyncio.Task] = set()

    def attach(self) -> None:
        """Register this dispatcher's callbacks on the platform."""
        self._platform.on_messages(self.handle_message)
        self._platform.on_command(self.handle_command)
        self._platform.on_inline_query(self.handle_inline_query)

    def is_allowed(self, username: str | None) -> bool:
        return username is not None and username in self._allowed

    async def handle_message(self, message: IncomingMessage) -> None:
        if not self.is_allowed(message.username):
            logger.info("message_not_allowed", username=message.username, chat_id=message.chat_id)
            return

        if message.media_group_id is not None:
            self._buffer_media_group(message.media_group_id, message)
            return

        if not message.text and not message.has_media:
            await self._reply(message, MSG_TYPE_NOT_SUPPORTED)
            return

        self._log_errors("answer_text", message, await self._answerer.answer_text(message))

    def _buffer_media_group(self, group_id: str, message: IncomingMessage) -> None:
        buffered = self._media_groups.setdefault(group_id, [])
        buffered.append(message)
        if len(buffered) == 1:
            task = asyncio.create_task(self._answer_media_group(group_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _answer_media_group(self, group_id: str) -> None:
        await asyncio.sleep(self._config.media_group_wait_seconds)
        messages = self._media_groups.pop(group_id, [])
        if not messages:
            return
        messages.sort(key=lambda m: m.message_id)
        primary, siblings = messages[0], messages[1:]
        # a caption on any album item counts as the album's prompt
        if not primary.caption:
            caption = next((m.caption for m in siblings if m.caption), None)
            if caption:
                primary = replace(primary, caption=caption)
        logger.info("media_group_answering", group_id=group_id, count=len(messages))
        try:
            errors = await self._answerer.answer_text(primary, siblings)
        except Exception as e:
            logger.error("media_group_answer_failed", group_id=group_id, error=str(e))
            return
        self._log_errors("answer_media_group", primary, errors)

    async def handle_command(self, command: str, args: str, message: IncomingMessage) -> None:
        if command == CMD_PRIVACY:
            await self._reply(message, MSG_PRIVACY)
            return

        if not self.is_allowed(message.username):
            logger.info("command_not_allowed", command=command, username=message.username)
            return

        if command == CMD_START:
            await self._reply(message, MSG_START, reply=False)
        elif command == CMD_HELP:
            await self._reply(message, self.help_text())
        elif command == CMD_STATS:
            await self._reply(message, await self.stats_text())
        elif command in (CMD_IMAGE, CMD_SPEECH, CMD_VIDEO, CMD_GOOGLE):
            await self._generate(command, args, message)
        else:
            await self._reply(message, MSG_CMD_NOT_SUPPORTED.format(command=command))

    async def _generate(self, command: str, args: str, message: IncomingMessage) -> None:
        if not args:
            await self._reply(message, MSG_PROMPT_NOT_GIVEN)
            return

        prompt_message = replace(message, text=args)
        if command == CMD_IMAGE:
            errors = await self._answerer.answer_image(prompt_message)
        elif command == CMD_SPEECH:
            errors = await self._answerer.answer_speech(prompt_message)
        elif command == CMD_VIDEO:
            errors = await self._answerer.answer_video(prompt_message)
        else:
            errors = await self._answerer.answer_text(prompt_message, web_search=True)
        self._log_errors(command.lstrip("/"), message, errors)

    async def handle_inline_query(self, query: InlineQuery) -> None:
        if not self.is_allowed(query.username):
            logger.info("inline_query_not_allowed", username=query.username)
            return
        if not query.query.strip():
            return

        text, errors = await self._answerer.answer_inline(query)
        if errors:
            logger.warning("inline_query_errors", user_id=query.user_id, errors=errors.join())
        try:
            await self._platform.answer_inline_query(query.query_id, query.query[:64], text)
        except PlatformError as e:
            logger.error("inline_query_answer_failed", user_id=query.user_id, error=e.description)

    def help_text(self) -> str:
        models = self._config.models
        return MSG_HELP.format(
            image=CMD_IMAGE,
            video=CMD_VIDEO,
            speech=CMD_SPEECH,
            google=CMD_GOOGLE,
            stats=CMD_STATS,
            privacy=CMD_PRIVACY,
            help=CMD_HELP,
            text=models.text,
            image_model=models.image,
            video_model=models.video,
            speech_model=models.speech,
            version=package_version(),
        )

    async def stats_text(self) -> str:
        if self._repo is None:
            return MSG_DATABASE_NOT_CONFIGURED
        stats = await self._repo.query_stats()
        if stats is None:
            return MSG_DATABASE_EMPTY
        return stats.format()

    async def _reply(self, message: IncomingMessage, text: str, reply: bool = True) -> None:
        try:
            await self._platform.send_message(message.chat_id, text, message.message_id if reply else None)
        except PlatformError as e:
            logger.error("reply_failed", chat_id=message.chat_id, error=e.description)

    @staticmethod
    def _log_errors(action: str, message: IncomingMessage, errors: ErrorList) -> None:
        if errors:
            logger.warning(
                "answer_errors",
                action=action,
                chat_id=message.chat_id,
                message_id=message.message_id,
                errors=errors.join(),
            )
