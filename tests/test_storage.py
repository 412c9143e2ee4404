from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone

import pytest

from gemini_relay.storage.database import Database
from gemini_relay.storage.interaction_repo import InteractionRepository
from gemini_relay.storage.models import InteractionRecord, InteractionStats


@pytest.fixture
async def interaction_repo() -> AsyncIterator[InteractionRepository]:
    db = Database(":memory:")
    await db.initialize()
    yield InteractionRepository(db)
    await db.close()


def _record(**overrides) -> InteractionRecord:
    values = {
        "chat_id": 100,
        "user_id": 1,
        "username": "@alice (Alice)",
        "prompt_text": "[user] hi",
        "prompt_tokens": 10,
        "result_text": "hello",
        "result_tokens": 5,
        "successful": True,
    }
    values.update(overrides)
    return InteractionRecord(**values)


@pytest.mark.asyncio
async def test_empty_database_has_no_stats(interaction_repo: InteractionRepository) -> None:
    assert await interaction_repo.query_stats() is None


@pytest.mark.asyncio
async def test_stats_aggregate(interaction_repo: InteractionRepository) -> None:
    first = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    await interaction_repo.record_interaction(_record(created_at=first))
    await interaction_repo.record_interaction(_record(chat_id=200, prompt_tokens=1000, result_tokens=2500))
    await interaction_repo.record_interaction(
        _record(prompt_tokens=0, result_text="failed", result_tokens=0, successful=False)
    )

    stats = await interaction_repo.query_stats()

    assert stats is not None
    assert stats.since == first
    assert stats.chats == 2
    assert (stats.prompts, stats.prompt_tokens) == (2, 1010)
    assert (stats.completions, stats.completion_tokens) == (2, 2505)
    assert stats.errors == 1


@pytest.mark.asyncio
async def test_record_is_stored_as_one_row(interaction_repo: InteractionRepository) -> None:
    created = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    row_id = await interaction_repo.record_interaction(_record(successful=False, created_at=created))

    cursor = await interaction_repo._db.conn.execute("SELECT * FROM interactions WHERE id = ?", (row_id,))
    row = await cursor.fetchone()

    assert row["username"] == "@alice (Alice)"
    assert (row["prompt_tokens"], row["result_tokens"]) == (10, 5)
    assert row["successful"] == 0
    assert datetime.fromisoformat(row["created_at"]) == created


def test_stats_format() -> None:
    stats = InteractionStats(
        since=datetime(2024, 5, 1, 12, 30, 15),
        chats=3,
        prompts=1234,
        prompt_tokens=1234567,
        completions=1200,
        completion_tokens=7654321,
        errors=34,
    )

    assert stats.format() == (
        "Since 2024-05-01 12:30:15\n"
        "\n"
        "Chats: 3\n"
        "Prompts: 1,234 (Total tokens: 1,234,567)\n"
        "Completions: 1,200 (Total tokens: 7,654,321)\n"
        "Errors: 34"
    )


def test_database_requires_initialize() -> None:
    with pytest.raises(RuntimeError):
        Database(":memory:").conn
