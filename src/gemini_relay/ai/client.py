"""Generative AI client abstraction with a Google Gemini backend."""

from __future__ import annotations

import asyncio
import io
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Sequence

from google import genai
from google.genai import types

from gemini_relay.ai.options import GenerationOptions, VideoOptions
from gemini_relay.ai.types import (
    Candidate,
    FilePrompt,
    FileRefPart,
    GeneratedVideo,
    Generation,
    HistoryTurn,
    InlineBinaryPart,
    Prompt,
    ResponsePart,
    StreamEvent,
    TextPart,
    TextPrompt,
    TokenCounts,
    UploadedFile,
    URIPrompt,
)
from gemini_relay.core.errors import GenerationError
from gemini_relay.core.types import Role
from gemini_relay.log import get_logger
from gemini_relay.media.sniff import detect_mime_type

logger = get_logger(__name__)

FILE_STATE_POLL_SECONDS = 0.3


class GenerativeClient(ABC):
    """Abstract base class for generation backends."""

    @abstractmethod
    async def upload_file_and_wait(self, file: FilePrompt) -> UploadedFile:
        """Upload `file` to provider storage and block until it is usable."""
        ...

    @abstractmethod
    async def prompts_to_contents(
        self, prompts: Sequence[Prompt], history: Sequence[HistoryTurn] = ()
    ) -> Any:
        """Convert prompt fragments plus history into the provider's request contents.

        File fragments are uploaded (and awaited) as part of the conversion.
        """
        ...

    @abstractmethod
    def generate_streamed(self, contents: Any, options: GenerationOptions) -> AsyncIterator[StreamEvent]:
        """Lazy, finite, non-restartable sequence of stream events.

        A provider failure is delivered as a final event carrying `error`.
        """
        ...

    @abstractmethod
    async def generate_once(self, contents: Any, options: GenerationOptions) -> Generation:
        ...

    @abstractmethod
    async def generate_videos(
        self,
        prompt: str | None,
        first_frame: FilePrompt | None,
        last_frame: FilePrompt | None,
        video: FilePrompt | None,
        options: VideoOptions,
    ) -> list[GeneratedVideo]:
        ...

    async def delete_uploaded_files(self) -> int:
        return 0


def _finish_reason(candidate: Any) -> str | None:
    reason = getattr(candidate, "finish_reason", None)
    if reason is None:
        return None
    return getattr(reason, "value", None) or str(reason)


def _token_counts(usage: Any) -> TokenCounts | None:
    if usage is None:
        return None
    return TokenCounts(
        input=usage.prompt_token_count or 0,
        output=usage.candidates_token_count or 0,
    )


def _response_parts(content: Any) -> list[ResponsePart]:
    parts: list[ResponsePart] = []
    if content is None or not content.parts:
        return parts
    for part in content.parts:
        if part.thought:
            continue
        if part.inline_data is not None and part.inline_data.data:
            parts.append(
                InlineBinaryPart(
                    mime_type=part.inline_data.mime_type or detect_mime_type(part.inline_data.data),
                    data=part.inline_data.data,
                )
            )
        elif part.file_data is not None and part.file_data.file_uri:
            parts.append(
                FileRefPart(uri=part.file_data.file_uri, mime_type=part.file_data.mime_type or "")
            )
        elif part.text:
            parts.append(TextPart(part.text))
    return parts


def _image(file: FilePrompt | None) -> types.Image | None:
    if file is None:
        return None
    return types.Image(image_bytes=file.data, mime_type=file.mime_type or detect_mime_type(file.data))


class GeminiClient(GenerativeClient):
    """Google Gemini backend using the google-genai SDK."""

    def __init__(self, api_key: str):
        self._client = genai.Client(api_key=api_key)

    async def upload_file_and_wait(self, file: FilePrompt) -> UploadedFile:
        mime_type = file.mime_type or detect_mime_type(file.data)
        uploaded = await self._client.aio.files.upload(
            file=io.BytesIO(file.data),
            config=types.UploadFileConfig(mime_type=mime_type, display_name=file.name),
        )
        while uploaded.state == types.FileState.PROCESSING:
            await asyncio.sleep(FILE_STATE_POLL_SECONDS)
            uploaded = await self._client.aio.files.get(name=uploaded.name)

        if uploaded.state == types.FileState.FAILED:
            raise GenerationError(f"processing of uploaded file '{file.name}' failed: {uploaded.error}")

        logger.debug("file_uploaded", name=uploaded.name, mime_type=uploaded.mime_type)
        return UploadedFile(
            name=uploaded.name or file.name,
            uri=uploaded.uri or "",
            mime_type=uploaded.mime_type or mime_type,
        )

    async def prompts_to_contents(
        self, prompts: Sequence[Prompt], history: Sequence[HistoryTurn] = ()
    ) -> list[types.Content]:
        contents: list[types.Content] = []
        for turn in history:
            parts = [types.Part.from_text(text=turn.text)]
            parts.extend(types.Part.from_uri(file_uri=f.uri, mime_type=f.mime_type) for f in turn.files)
            contents.append(types.Content(role=turn.role.value, parts=parts))

        to_upload = [p for p in prompts if isinstance(p, FilePrompt)]
        results = await asyncio.gather(
            *(self.upload_file_and_wait(p) for p in to_upload), return_exceptions=True
        )
        uploaded: dict[int, UploadedFile] = {}
        for prompt, result in zip(to_upload, results):
            if isinstance(result, BaseException):
                raise GenerationError(f"failed to upload '{prompt.name}': {result}") from result
            uploaded[id(prompt)] = result

        parts: list[types.Part] = []
        for prompt in prompts:
            match prompt:
                case TextPrompt(text=text):
                    parts.append(types.Part.from_text(text=text))
                case URIPrompt(uri=uri, mime_type=mime_type):
                    parts.append(types.Part.from_uri(file_uri=uri, mime_type=mime_type))
                case FilePrompt():
                    file = uploaded[id(prompt)]
                    parts.append(types.Part.from_uri(file_uri=file.uri, mime_type=file.mime_type))
        contents.append(types.Content(role=Role.USER.value, parts=parts))
        return contents

    def _config(self, options: GenerationOptions) -> types.GenerateContentConfig:
        tools: list[types.Tool] = []
        if options.web_search:
            tools.append(types.Tool(google_search=types.GoogleSearch()))
        if options.url_context:
            tools.append(types.Tool(url_context=types.UrlContext()))

        speech_config = None
        if options.voice:
            speech_config = types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=options.voice)
                )
            )

        return types.GenerateContentConfig(
            system_instruction=options.system_instruction or None,
            safety_settings=[types.SafetySetting(**s) for s in options.safety_settings],
            tools=tools or None,
            response_modalities=[m.value for m in options.modalities],
            speech_config=speech_config,
        )

    async def generate_streamed(self, contents: Any, options: GenerationOptions) -> AsyncIterator[StreamEvent]:
        try:
            stream = await self._client.aio.models.generate_content_stream(
                model=options.model, contents=contents, config=self._config(options)
            )
            async for chunk in stream:
                text = ""
                finish_reason = None
                if chunk.candidates:
                    candidate = chunk.candidates[0]
                    finish_reason = _finish_reason(candidate)
                    text = "".join(
                        p.text for p in _response_parts(candidate.content) if isinstance(p, TextPart)
                    )
                yield StreamEvent(
                    text_delta=text or None,
                    finish_reason=finish_reason,
                    tokens=_token_counts(chunk.usage_metadata),
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            yield StreamEvent(error=GenerationError(f"failed to generate stream: {e}"))

    async def generate_once(self, contents: Any, options: GenerationOptions) -> Generation:
        try:
            response = await self._client.aio.models.generate_content(
                model=options.model, contents=contents, config=self._config(options)
            )
        except Exception as e:
            raise GenerationError(str(e)) from e

        return Generation(
            candidates=[
                Candidate(parts=_response_parts(c.content), finish_reason=_finish_reason(c))
                for c in response.candidates or []
            ],
            tokens=_token_counts(response.usage_metadata) or TokenCounts(),
        )

    async def generate_videos(
        self,
        prompt: str | None,
        first_frame: FilePrompt | None,
        last_frame: FilePrompt | None,
        video: FilePrompt | None,
        options: VideoOptions,
    ) -> list[GeneratedVideo]:
        config = types.GenerateVideosConfig(number_of_videos=1)
        if last_frame is not None:
            config.last_frame = _image(last_frame)
        source_video = None
        if video is not None:
            source_video = types.Video(video_bytes=video.data, mime_type=video.mime_type or "video/mp4")

        try:
            operation = await self._client.aio.models.generate_videos(
                model=options.model,
                prompt=prompt,
                image=_image(first_frame),
                video=source_video,
                config=config,
            )
            while not operation.done:
                await asyncio.sleep(options.poll_interval_seconds)
                operation = await self._client.aio.operations.get(operation)
        except Exception as e:
            raise GenerationError(str(e)) from e

        if operation.error:
            raise GenerationError(f"video generation failed: {operation.error}")

        generated: list[GeneratedVideo] = []
        for item in (operation.response.generated_videos if operation.response else None) or []:
            v = item.video
            if v is None:
                continue
            data = v.video_bytes
            if not data and v.uri:
                data = await self._client.aio.files.download(file=v)
            if data:
                generated.append(GeneratedVideo(data=data, mime_type=v.mime_type or detect_mime_type(data)))
        return generated

    async def delete_uploaded_files(self) -> int:
        deleted = 0
        async for file in await self._client.aio.files.list():
            try:
                await self._client.aio.files.delete(name=file.name)
                deleted += 1
            except Exception as e:
                logger.warning("uploaded_file_delete_failed", name=file.name, error=str(e))
        return deleted
