"""Conversion of chat messages into prompt fragments.

A message's text has its URLs replaced with fetched content, and any media
(of the message itself and of its album siblings) is downloaded from the
chat platform. Every network step is best effort: a failure is recorded in
the returned ErrorList and the build continues without that piece.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from gemini_relay.ai.types import FilePrompt, Prompt, TextPrompt, URIPrompt
from gemini_relay.core.errors import ErrorList
from gemini_relay.core.types import Role
from gemini_relay.log import get_logger
from gemini_relay.messenger.base import ChatPlatform
from gemini_relay.messenger.models import ChatMessage, IncomingMessage, MediaRef
from gemini_relay.pipeline.fetch import UrlFetcher, replace_urls, substitute_urls

logger = get_logger(__name__)

DEFAULT_PROMPT_FOR_MEDIAS = "Describe provided media(s)."
YOUTUBE_MIME_TYPE = "video/mp4"


@dataclass
class BuiltPrompt:
    message: ChatMessage
    errors: ErrorList = field(default_factory=ErrorList)


def prompt_text_of(message: IncomingMessage) -> str:
    """Body text, else caption, else the default prompt for media."""
    return message.text or message.caption or DEFAULT_PROMPT_FOR_MEDIAS


def to_prompts(message: ChatMessage) -> list[Prompt]:
    """Split a chat message into prompt fragments.

    YouTube links the sender wrote become provider-side file references; the
    text around them stays in order. Links inside fetched content stay text.
    Attached files follow the text, named `file N`.
    """
    prompts: list[Prompt] = []
    position = 0
    for offset, url in message.video_links:
        before = message.text[position:offset].strip()
        if before:
            prompts.append(TextPrompt(before))
        prompts.append(URIPrompt(uri=url, mime_type=YOUTUBE_MIME_TYPE))
        position = offset + len(url)

    rest = message.text[position:].strip()
    if rest or not prompts:
        prompts.append(TextPrompt(rest or message.text))

    prompts.extend(FilePrompt(name=f"file {i}", data=data) for i, data in enumerate(message.files, start=1))
    return prompts


class PromptBuilder:
    """Builds ChatMessages from inbound platform messages."""

    def __init__(self, platform: ChatPlatform, fetcher: UrlFetcher, download_timeout: float):
        self._platform = platform
        self._fetcher = fetcher
        self._download_timeout = download_timeout

    async def build(
        self,
        message: IncomingMessage,
        siblings: Sequence[IncomingMessage] = (),
        enrich_urls: bool = True,
    ) -> BuiltPrompt:
        errors = ErrorList()
        role = Role.MODEL if message.is_bot else Role.USER
        text = prompt_text_of(message)

        refs: list[MediaRef] = list(message.media)
        for sibling in siblings:
            refs.extend(sibling.media)
        files = await self._download_all(refs, errors)

        if enrich_urls and (message.text or message.caption):
            replaced = await replace_urls(text, self._fetcher, first_file_index=len(files) + 1)
            text = replaced.text
            video_links = replaced.video_links
            files.extend(replaced.files)
            errors.extend(replaced.errors)
        else:
            text, video_links = substitute_urls(text, {})

        if errors:
            logger.warning("prompt_build_degraded", chat_id=message.chat_id, message_id=message.message_id, errors=errors.join())
        chat_message = ChatMessage(role=role, text=text, files=tuple(files), video_links=video_links)
        return BuiltPrompt(message=chat_message, errors=errors)

    async def _download_all(self, refs: Sequence[MediaRef], errors: ErrorList) -> list[bytes]:
        results = await asyncio.gather(*(self._download(ref) for ref in refs), return_exceptions=True)
        files: list[bytes] = []
        for ref, result in zip(refs, results):
            if isinstance(result, BaseException):
                errors.add(str(result) or type(result).__name__, context=f"failed to download {ref.kind}")
                continue
            files.append(result)
        return files

    async def _download(self, ref: MediaRef) -> bytes:
        async with asyncio.timeout(self._download_timeout):
            data = await self._platform.get_file(ref.file_id)
        logger.debug("media_downloaded", kind=str(ref.kind), size=len(data))
        return data
