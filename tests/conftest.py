from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

from _fakes import FakeClient, FakePlatform, FakeRepo, make_config
from gemini_relay.config import AppConfig
from gemini_relay.core.errors import Redactor
from gemini_relay.pipeline.answer import Answerer
from gemini_relay.pipeline.fetch import UrlFetcher
from gemini_relay.pipeline.prompt_builder import PromptBuilder
from gemini_relay.pipeline.recorder import OutcomeRecorder
from gemini_relay.pipeline.relay import RelaySink


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture
async def httpx_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as client:
        yield client


@pytest.fixture
def sink(platform: FakePlatform, config: AppConfig) -> RelaySink:
    return RelaySink(
        platform,
        request_timeout=1,
        ignorable_timeout=1,
        max_message_length=config.max_message_length,
        caption_preview_length=config.caption_preview_length,
    )


@pytest.fixture
def builder(platform: FakePlatform, httpx_client: httpx.AsyncClient) -> PromptBuilder:
    return PromptBuilder(platform, UrlFetcher(httpx_client, timeout=1), download_timeout=1)


@pytest.fixture
def answerer(
    config: AppConfig,
    client: FakeClient,
    builder: PromptBuilder,
    sink: RelaySink,
    repo: FakeRepo,
) -> Answerer:
    return Answerer(config, client, builder, sink, OutcomeRecorder(repo), Redactor(config.secrets))  # type: ignore[arg-type]
