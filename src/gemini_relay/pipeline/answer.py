"""Top-level answer functions: one per kind of request.

Each runs the whole pipeline for one inbound update (prompt building,
history, generation, relay, recording) and is the only place that decides
what the user sees when something fails. Errors are returned for logging,
never raised.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Sequence

from gemini_relay.ai.client import GenerativeClient
from gemini_relay.ai.options import GenerationOptions, VideoOptions
from gemini_relay.ai.types import (
    FilePrompt,
    FileRefPart,
    Generation,
    HistoryTurn,
    InlineBinaryPart,
    TextPart,
    TextPrompt,
    TokenCounts,
)
from gemini_relay.config import AppConfig
from gemini_relay.core.errors import (
    ErrorList,
    GenerationError,
    MediaConversionError,
    PlatformError,
    Redactor,
)
from gemini_relay.core.types import FINISH_REASON_STOP, Role
from gemini_relay.log import get_logger
from gemini_relay.media.audio import pcm_sample_rate
from gemini_relay.media.sniff import base_mime_type, detect_mime_type
from gemini_relay.messenger.models import (
    ChatMessage,
    IncomingMessage,
    InlineQuery,
    messages_to_prompt_text,
)
from gemini_relay.pipeline.history import build_history
from gemini_relay.pipeline.orchestrator import generation_text, stream_answer
from gemini_relay.pipeline.prompt_builder import PromptBuilder, prompt_text_of, to_prompts
from gemini_relay.pipeline.recorder import OutcomeRecorder
from gemini_relay.pipeline.relay import RECEIVED_REACTION, RelaySink

logger = get_logger(__name__)

MSG_NO_RESPONSE = "There was no response from the API."
MSG_SEND_FAILED = "Failed to send you the answer. See the server logs for more information."
MSG_NO_IMAGE = "No image was returned from API."
MSG_IMAGE_SEND_FAILED = "Successfully generated image(s), but send failed."
MSG_NO_SPEECH = "No speech was returned from API."
MSG_NO_VIDEO = "No video was returned from API."
MSG_VIDEO_SEND_FAILED = "Successfully generated video(s), but send failed."


@dataclass
class PreparedPrompt:
    original: ChatMessage
    parent: ChatMessage | None = None
    history: list[HistoryTurn] = field(default_factory=list)
    errors: ErrorList = field(default_factory=ErrorList)

    @property
    def prompt_text(self) -> str:
        return messages_to_prompt_text(self.parent, self.original)


@dataclass
class ArtifactWalk:
    """Result of walking a candidate set for one kind of binary artifact."""

    sent_message_id: int | None = None
    result_text: str = ""
    generated: bool = False
    merged_text: str = ""
    finish_reason: str | None = None
    send_error: str | None = None
    errors: ErrorList = field(default_factory=ErrorList)


def unprepared_prompt_text(message: IncomingMessage) -> str:
    """Prompt log text for a message whose prompt was never built."""
    return messages_to_prompt_text(None, ChatMessage(role=Role.USER, text=prompt_text_of(message)))


def is_image(part: InlineBinaryPart) -> bool:
    return detect_mime_type(part.data).startswith("image/") or part.mime_type.startswith("image/")


def is_audio(part: InlineBinaryPart) -> bool:
    if pcm_sample_rate(part.mime_type) is not None:
        return True
    return detect_mime_type(part.data).startswith("audio/") or base_mime_type(part.mime_type).startswith("audio/")


class Answerer:
    """Runs the answer pipelines for messages, commands and inline queries."""

    def __init__(
        self,
        config: AppConfig,
        client: GenerativeClient,
        builder: PromptBuilder,
        sink: RelaySink,
        recorder: OutcomeRecorder,
        redactor: Redactor,
    ):
        self._config = config
        self._client = client
        self._builder = builder
        self._sink = sink
        self._recorder = recorder
        self._redactor = redactor

    # deadlines

    def _deadline(self, seconds: float) -> float:
        return asyncio.get_running_loop().time() + seconds

    def _within(self, deadline: float, seconds: float) -> float:
        """Deadline of a stage that may take `seconds`, capped by the answer deadline."""
        return min(deadline, self._deadline(seconds))

    def _remaining(self, deadline: float) -> float:
        return max(deadline - asyncio.get_running_loop().time(), 0.0)

    # prompt preparation

    async def _prepare_until(
        self,
        deadline: float,
        message: IncomingMessage,
        siblings: Sequence[IncomingMessage] = (),
        with_history: bool = True,
    ) -> PreparedPrompt | None:
        """Prepare the prompt, or None when the answer deadline passes first."""
        try:
            async with asyncio.timeout_at(deadline):
                return await self._prepare(message, siblings, with_history)
        except TimeoutError:
            logger.warning("prompt_preparation_timed_out", chat_id=message.chat_id, message_id=message.message_id)
            return None

    async def _prepare(
        self,
        message: IncomingMessage,
        siblings: Sequence[IncomingMessage] = (),
        with_history: bool = True,
    ) -> PreparedPrompt:
        built, (parent, history, parent_errors) = await asyncio.gather(
            self._builder.build(message, siblings),
            self._prepare_parent(message.reply_to, with_history),
        )
        errors = ErrorList()
        errors.extend(built.errors)
        errors.extend(parent_errors)
        return PreparedPrompt(original=built.message, parent=parent, history=history, errors=errors)

    async def _prepare_parent(
        self, reply_to: IncomingMessage | None, with_history: bool
    ) -> tuple[ChatMessage | None, list[HistoryTurn], ErrorList]:
        if reply_to is None:
            return None, [], ErrorList()
        built = await self._builder.build(reply_to, enrich_urls=False)
        errors = built.errors
        history: list[HistoryTurn] = []
        if with_history:
            history, history_errors = await build_history(
                self._client, built.message, self._config.timeouts.request
            )
            errors.extend(history_errors)
        return built.message, history, errors

    # outcome helpers

    async def _fail(
        self,
        message: IncomingMessage,
        prompt_text: str,
        user_text: str,
        result_text: str,
        errors: ErrorList,
        tokens: TokenCounts | None = None,
    ) -> ErrorList:
        """Tell the user why there is no answer, and record the failure."""
        user_text = self._redactor.redact(user_text)
        try:
            await self._sink.send_text_or_file(message.chat_id, user_text, message.message_id)
        except PlatformError as e:
            logger.error("error_message_send_failed", chat_id=message.chat_id, error=e.description)
            errors.add(e, context="failed to send error message")

        tokens = tokens or TokenCounts()
        await self._recorder.record(
            message.chat_id,
            message.user_id,
            message.sender_name,
            prompt_text,
            tokens.input,
            self._redactor.redact(result_text),
            tokens.output,
            False,
        )
        return errors

    async def _succeed(
        self,
        message: IncomingMessage,
        prompt_text: str,
        sent_message_id: int | None,
        result_text: str,
        tokens: TokenCounts,
    ) -> None:
        if sent_message_id is not None:
            await self._sink.react(message.chat_id, sent_message_id)
        await self._recorder.record(
            message.chat_id,
            message.user_id,
            message.sender_name,
            prompt_text,
            tokens.input,
            result_text,
            tokens.output,
            True,
        )

    async def _timed_out(
        self,
        message: IncomingMessage,
        prompt_text: str,
        timeout: float,
        errors: ErrorList,
        tokens: TokenCounts | None = None,
    ) -> ErrorList:
        user_text = f"Failed to answer in {timeout} seconds."
        errors.add(user_text)
        return await self._fail(message, prompt_text, user_text, user_text, errors, tokens)

    def _error_text(self, error: BaseException) -> str:
        if isinstance(error, TimeoutError):
            return "request timed out"
        return self._redactor.redact(error)

    def _text_options(self, web_search: bool) -> GenerationOptions:
        return GenerationOptions.for_text(
            self._config.models.text,
            self._config.harm_block_threshold,
            self._config.system_instruction,
            web_search=web_search,
        )

    # streamed text answer

    async def answer_text(
        self,
        message: IncomingMessage,
        siblings: Sequence[IncomingMessage] = (),
        web_search: bool = False,
    ) -> ErrorList:
        """Answer with a streamed text generation, edited into one chat message."""
        chat_id = message.chat_id
        timeout = self._config.timeouts.answer
        deadline = self._deadline(timeout)
        await self._sink.react(chat_id, message.message_id, RECEIVED_REACTION)

        prepared = await self._prepare_until(deadline, message, siblings)
        if prepared is None:
            return await self._timed_out(message, unprepared_prompt_text(message), timeout, ErrorList())
        errors = prepared.errors
        prompt_text = prepared.prompt_text

        conversion_deadline = self._within(deadline, self._config.timeouts.request)
        try:
            async with asyncio.timeout_at(conversion_deadline):
                contents = await self._client.prompts_to_contents(to_prompts(prepared.original), prepared.history)
        except TimeoutError:
            if conversion_deadline == deadline:
                return await self._timed_out(message, prompt_text, timeout, errors)
            errors.add("request timed out", context="failed to convert prompts")
            return await self._fail(
                message, prompt_text, "Failed to generate an answer: request timed out", "request timed out", errors
            )
        except GenerationError as e:
            error = self._error_text(e)
            errors.add(error, context="failed to convert prompts")
            return await self._fail(message, prompt_text, f"Failed to generate an answer: {error}", error, errors)

        relay = self._sink.streaming(chat_id, message.message_id)
        outcome = await stream_answer(
            self._client, contents, self._text_options(web_search), relay, self._remaining(deadline)
        )
        final_message_id = await relay.finish(outcome.text)
        errors.extend(outcome.errors)
        errors.extend(relay.errors)

        if final_message_id is not None or relay.message_id is not None:
            if outcome.timed_out:
                logger.info("partial_answer_kept", chat_id=chat_id, length=len(outcome.text))
            logger.info("answer_sent", chat_id=chat_id, length=len(outcome.text))
            await self._succeed(message, prompt_text, final_message_id, outcome.text, outcome.tokens)
            return errors

        if outcome.timed_out:
            user_text = f"Failed to answer in {timeout} seconds."
            result_text = outcome.errors.join(self._redactor)
        elif outcome.errors:
            result_text = outcome.errors.join(self._redactor)
            user_text = f"Failed to generate an answer: {result_text}"
        elif relay.errors:
            user_text = MSG_SEND_FAILED
            result_text = relay.errors.join(self._redactor)
        else:
            user_text = MSG_NO_RESPONSE
            result_text = MSG_NO_RESPONSE
        return await self._fail(message, prompt_text, user_text, result_text, errors, outcome.tokens)

    # single-shot answers

    async def _generate_once(
        self, prepared: PreparedPrompt, options: GenerationOptions, deadline: float
    ) -> Generation:
        async with asyncio.timeout_at(deadline):
            contents = await self._client.prompts_to_contents(to_prompts(prepared.original), prepared.history)
            return await self._client.generate_once(contents, options)

    async def _send_first_artifact(
        self,
        message: IncomingMessage,
        generation: Generation,
        accept: Callable[[InlineBinaryPart], bool],
    ) -> ArtifactWalk:
        """Send the first accepted binary part that the platform takes."""
        walk = ArtifactWalk()
        for candidate in generation.candidates:
            if walk.sent_message_id is not None:
                break
            if candidate.finish_reason and candidate.finish_reason != FINISH_REASON_STOP and not candidate.parts:
                walk.finish_reason = candidate.finish_reason
                continue
            for part in candidate.parts:
                match part:
                    case InlineBinaryPart() if accept(part):
                        walk.generated = True
                        try:
                            walk.sent_message_id = await self._sink.send_binary(
                                message.chat_id, part, message.message_id
                            )
                        except (PlatformError, MediaConversionError) as e:
                            walk.send_error = self._redactor.redact(e)
                            walk.errors.add(walk.send_error, context=f"failed to send {part.describe()}")
                            continue
                        walk.result_text = part.describe()
                        break
                    case InlineBinaryPart():
                        walk.errors.add(f"unexpected part {part.describe()}")
                    case TextPart(text=text):
                        walk.merged_text += text
                    case FileRefPart(uri=uri, mime_type=mime_type):
                        walk.errors.add(f"unsupported file reference {uri} ({mime_type})")
        return walk

    async def answer_image(self, message: IncomingMessage, siblings: Sequence[IncomingMessage] = ()) -> ErrorList:
        """Generate an image and send it as a photo."""
        timeout = self._config.timeouts.long_request
        deadline = self._deadline(timeout)
        await self._sink.react(message.chat_id, message.message_id, RECEIVED_REACTION)
        prepared = await self._prepare_until(deadline, message, siblings)
        if prepared is None:
            return await self._timed_out(message, unprepared_prompt_text(message), timeout, ErrorList())
        errors = prepared.errors
        options = GenerationOptions.for_image(self._config.models.image, self._config.harm_block_threshold)

        try:
            generation = await self._generate_once(prepared, options, deadline)
        except TimeoutError:
            return await self._timed_out(message, prepared.prompt_text, timeout, errors)
        except GenerationError as e:
            error = self._error_text(e)
            errors.add(error, context="image generation failed")
            return await self._fail(message, prepared.prompt_text, f"Image generation failed: {error}", error, errors)

        walk = await self._send_first_artifact(message, generation, is_image)
        errors.extend(walk.errors)
        if walk.sent_message_id is not None:
            logger.info("image_sent", chat_id=message.chat_id, result=walk.result_text)
            await self._succeed(message, prepared.prompt_text, walk.sent_message_id, walk.result_text, generation.tokens)
            return errors

        if walk.finish_reason and not walk.generated:
            user_text = f"Image generation failed with finish reason: {walk.finish_reason}"
        elif walk.generated:
            user_text = MSG_IMAGE_SEND_FAILED
        elif walk.merged_text:
            user_text = f"Image generation failed: {walk.merged_text}"
        else:
            user_text = MSG_NO_IMAGE
        return await self._fail(message, prepared.prompt_text, user_text, user_text, errors, generation.tokens)

    async def answer_speech(self, message: IncomingMessage, siblings: Sequence[IncomingMessage] = ()) -> ErrorList:
        """Generate speech and send it as a voice message."""
        timeout = self._config.timeouts.long_request
        deadline = self._deadline(timeout)
        await self._sink.react(message.chat_id, message.message_id, RECEIVED_REACTION)
        prepared = await self._prepare_until(deadline, message, siblings)
        if prepared is None:
            return await self._timed_out(message, unprepared_prompt_text(message), timeout, ErrorList())
        errors = prepared.errors
        options = GenerationOptions.for_speech(
            self._config.models.speech, self._config.harm_block_threshold, self._config.speech_voice
        )

        try:
            generation = await self._generate_once(prepared, options, deadline)
        except TimeoutError:
            return await self._timed_out(message, prepared.prompt_text, timeout, errors)
        except GenerationError as e:
            error = self._error_text(e)
            errors.add(error, context="speech generation failed")
            return await self._fail(message, prepared.prompt_text, f"Speech generation failed: {error}", error, errors)

        walk = await self._send_first_artifact(message, generation, is_audio)
        errors.extend(walk.errors)
        if walk.sent_message_id is not None:
            logger.info("speech_sent", chat_id=message.chat_id, result=walk.result_text)
            await self._succeed(message, prepared.prompt_text, walk.sent_message_id, walk.result_text, generation.tokens)
            return errors

        if walk.finish_reason and not walk.generated:
            user_text = f"Speech generation failed with finish reason: {walk.finish_reason}"
        elif walk.generated:
            user_text = f"Speech generation failed: {walk.send_error}"
        elif walk.merged_text:
            user_text = f"Speech generation failed: {walk.merged_text}"
        else:
            user_text = MSG_NO_SPEECH
        return await self._fail(message, prepared.prompt_text, user_text, user_text, errors, generation.tokens)

    async def answer_video(self, message: IncomingMessage, siblings: Sequence[IncomingMessage] = ()) -> ErrorList:
        """Generate video(s) from the prompt text and attached frames or video."""
        timeout = self._config.timeouts.long_request
        deadline = self._deadline(timeout)
        await self._sink.react(message.chat_id, message.message_id, RECEIVED_REACTION)
        prepared = await self._prepare_until(deadline, message, siblings, with_history=False)
        if prepared is None:
            return await self._timed_out(message, unprepared_prompt_text(message), timeout, ErrorList())
        errors = prepared.errors

        files = list(prepared.original.files)
        if prepared.parent is not None:
            files.extend(prepared.parent.files)
        images = [f for f in files if detect_mime_type(f).startswith("image/")]
        videos = [f for f in files if detect_mime_type(f).startswith("video/")]

        try:
            async with asyncio.timeout_at(deadline):
                generated = await self._client.generate_videos(
                    prepared.original.text,
                    FilePrompt("first frame", images[0]) if images else None,
                    FilePrompt("last frame", images[1]) if len(images) > 1 else None,
                    FilePrompt("video", videos[0]) if videos else None,
                    VideoOptions(model=self._config.models.video),
                )
        except TimeoutError:
            return await self._timed_out(message, prepared.prompt_text, timeout, errors)
        except GenerationError as e:
            error = self._error_text(e)
            errors.add(error, context="video generation failed")
            return await self._fail(message, prepared.prompt_text, f"Video generation failed: {error}", error, errors)

        sent: list[tuple[int, str]] = []
        for video in generated:
            description = InlineBinaryPart(video.mime_type, video.data).describe()
            try:
                sent_id = await self._sink.send_video(message.chat_id, video.data, message.message_id)
            except PlatformError as e:
                errors.add(self._redactor.redact(e), context=f"failed to send {description}")
                continue
            sent.append((sent_id, description))

        if sent:
            result_text = "\n".join(description for _, description in sent)
            logger.info("video_sent", chat_id=message.chat_id, count=len(sent))
            await self._succeed(message, prepared.prompt_text, sent[-1][0], result_text, TokenCounts())
            return errors

        user_text = MSG_VIDEO_SEND_FAILED if generated else MSG_NO_VIDEO
        return await self._fail(message, prepared.prompt_text, user_text, user_text, errors)

    # inline queries

    async def answer_inline(self, query: InlineQuery) -> tuple[str, ErrorList]:
        """Non-streamed text generation for an inline query; returns the article text."""
        errors = ErrorList()
        username = f"@{query.username}" if query.username else str(query.user_id)
        prompt_text = messages_to_prompt_text(None, ChatMessage(role=Role.USER, text=query.query))
        try:
            async with asyncio.timeout(self._config.timeouts.answer):
                contents = await self._client.prompts_to_contents([TextPrompt(query.query)])
                generation = await self._client.generate_once(contents, self._text_options(web_search=False))
        except (GenerationError, TimeoutError) as e:
            error = self._error_text(e)
            errors.add(error, context="inline query generation failed")
            await self._recorder.record(query.user_id, query.user_id, username, prompt_text, 0, error, 0, False)
            return f"Failed to generate an answer: {error}", errors

        text = generation_text(generation) or MSG_NO_RESPONSE
        text = text[: self._sink.max_message_length]
        await self._recorder.record(
            query.user_id,
            query.user_id,
            username,
            prompt_text,
            generation.tokens.input,
            text,
            generation.tokens.output,
            bool(generation.candidates),
        )
        return text, errors
