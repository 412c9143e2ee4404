"""Drives a streamed generation and accumulates its output."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable

from gemini_relay.ai.client import GenerativeClient
from gemini_relay.ai.options import GenerationOptions
from gemini_relay.ai.types import Generation, StreamEvent, TextPart, TokenCounts
from gemini_relay.core.errors import ErrorList
from gemini_relay.core.types import FINISH_REASON_STOP
from gemini_relay.log import get_logger

logger = get_logger(__name__)

PartialCallback = Callable[[str], Awaitable[None]]


class StreamState(StrEnum):
    INIT = "init"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


def finish_marker(reason: str | None) -> str | None:
    """Inline marker for an abnormal finish reason, e.g. `<<<SAFETY>>>`."""
    if reason is None or reason == FINISH_REASON_STOP:
        return None
    return f"<<<{reason}>>>"


@dataclass
class StreamOutcome:
    text: str = ""
    tokens: TokenCounts = field(default_factory=TokenCounts)
    state: StreamState = StreamState.INIT
    timed_out: bool = False
    errors: ErrorList = field(default_factory=ErrorList)


class StreamAccumulator:
    """Applies stream events, in order, to one growing answer buffer."""

    def __init__(self, on_partial: PartialCallback):
        self._on_partial = on_partial
        self.outcome = StreamOutcome()

    async def apply(self, event: StreamEvent) -> None:
        outcome = self.outcome
        outcome.state = StreamState.STREAMING
        outcome.tokens = outcome.tokens.high_water(event.tokens)

        if event.error is not None:
            outcome.state = StreamState.FAILED
            outcome.errors.add(event.error)
            return

        if event.text_delta:
            outcome.text += event.text_delta
            await self._on_partial(outcome.text)

        marker = finish_marker(event.finish_reason)
        if marker:
            outcome.text += marker
            await self._on_partial(outcome.text)


async def stream_answer(
    client: GenerativeClient,
    contents: Any,
    options: GenerationOptions,
    on_partial: PartialCallback,
    timeout: float,
) -> StreamOutcome:
    """Run a streamed generation under `timeout`, relaying every buffer mutation.

    On timeout the text accumulated so far is kept as the outcome.
    """
    accumulator = StreamAccumulator(on_partial)
    outcome = accumulator.outcome
    try:
        async with asyncio.timeout(timeout):
            async for event in client.generate_streamed(contents, options):
                await accumulator.apply(event)
                if outcome.state is StreamState.FAILED:
                    break
    except TimeoutError:
        outcome.timed_out = True
        outcome.state = StreamState.FAILED
        outcome.errors.add(f"answer timed out after {timeout:.3g} seconds")
        logger.warning("stream_timed_out", timeout=timeout, partial_length=len(outcome.text))
    except Exception as e:
        outcome.state = StreamState.FAILED
        outcome.errors.add(e, context="failed to iterate stream")
        logger.warning("stream_failed", error=str(e))
    else:
        if outcome.state is not StreamState.FAILED:
            outcome.state = StreamState.DONE

    logger.debug(
        "stream_finished",
        state=str(outcome.state),
        length=len(outcome.text),
        input_tokens=outcome.tokens.input,
        output_tokens=outcome.tokens.output,
    )
    return outcome


def generation_text(generation: Generation) -> str:
    """All text parts of all candidates, with abnormal finish markers appended."""
    text = ""
    for candidate in generation.candidates:
        text += "".join(p.text for p in candidate.parts if isinstance(p, TextPart))
        text += finish_marker(candidate.finish_reason) or ""
    return text
