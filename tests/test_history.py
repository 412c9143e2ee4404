from __future__ import annotations

import pytest

from _fakes import FakeClient
from gemini_relay.core.types import Role
from gemini_relay.messenger.models import ChatMessage
from gemini_relay.pipeline.history import build_history


@pytest.mark.asyncio
async def test_no_parent_means_no_history() -> None:
    history, errors = await build_history(FakeClient(), None, upload_timeout=1)

    assert history == []
    assert not errors


@pytest.mark.asyncio
async def test_parent_becomes_model_turn_with_uploaded_files() -> None:
    client = FakeClient()
    parent = ChatMessage(role=Role.USER, text="look at these", files=(b"one", b"two"))

    history, errors = await build_history(client, parent, upload_timeout=1)

    assert not errors
    assert len(history) == 1
    turn = history[0]
    assert turn.role is Role.MODEL
    assert turn.text == "look at these"
    assert [f.uri for f in turn.files] == ["https://files/1", "https://files/2"]
    assert [f.name for f in client.uploaded] == ["file 1", "file 2"]


@pytest.mark.asyncio
async def test_failed_upload_degrades_to_partial_turn() -> None:
    client = FakeClient(failing_uploads=["file 1"])
    parent = ChatMessage(role=Role.MODEL, text="answer", files=(b"bad", b"good"))

    history, errors = await build_history(client, parent, upload_timeout=1)

    assert len(history) == 1
    assert len(history[0].files) == 1
    assert len(errors) == 1
    assert "file 1" in errors.join()
