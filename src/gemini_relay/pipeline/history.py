"""Conversion of a reply-parent message into a prior model turn."""

from __future__ import annotations

import asyncio

from gemini_relay.ai.client import GenerativeClient
from gemini_relay.ai.types import FilePrompt, HistoryTurn
from gemini_relay.core.errors import ErrorList
from gemini_relay.core.types import Role
from gemini_relay.log import get_logger
from gemini_relay.messenger.models import ChatMessage

logger = get_logger(__name__)


async def build_history(
    client: GenerativeClient,
    parent: ChatMessage | None,
    upload_timeout: float,
) -> tuple[list[HistoryTurn], ErrorList]:
    """Build the history for a reply: one model turn with the parent's text and files.

    Each file is uploaded and awaited until the provider reports it usable.
    Failed uploads are dropped from the turn and reported; the turn itself is
    always produced.
    """
    errors = ErrorList()
    if parent is None:
        return [], errors

    async def _upload(index: int, data: bytes):
        async with asyncio.timeout(upload_timeout):
            return await client.upload_file_and_wait(FilePrompt(name=f"file {index}", data=data))

    results = await asyncio.gather(
        *(_upload(i, data) for i, data in enumerate(parent.files, start=1)),
        return_exceptions=True,
    )

    turn = HistoryTurn(role=Role.MODEL, text=parent.text)
    for index, result in enumerate(results, start=1):
        if isinstance(result, BaseException):
            logger.warning("history_file_upload_failed", index=index, error=str(result) or type(result).__name__)
            errors.add(str(result) or type(result).__name__, context=f"failed to upload file {index} for history")
            continue
        turn.files.append(result)
    return [turn], errors
