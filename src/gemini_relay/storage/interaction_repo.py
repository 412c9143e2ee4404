"""Append-only log of prompt/result pairs and aggregate statistics."""

from __future__ import annotations

from datetime import datetime

from gemini_relay.storage.database import Database
from gemini_relay.storage.models import InteractionRecord, InteractionStats

class InteractionRepository:
    """Insert and aggregate queries over the interactions table."""

    def __init__(self, db: Database):
        self._db = db

    async def record_interaction(self, record: InteractionRecord) -> int:
        """Insert one record and return its ID."""
        cursor = await self._db.conn.execute(
            """INSERT INTO interactions
               (chat_id, user_id, username, prompt_text, prompt_tokens,
                result_text, result_tokens, successful, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.chat_id,
                record.user_id,
                record.username,
                record.prompt_text,
                record.prompt_tokens,
                record.result_text,
                record.result_tokens,
                int(record.successful),
                record.created_at.isoformat(),
            ),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def query_stats(self) -> InteractionStats | None:
        """Aggregate counts over all interactions; None when the table is empty."""
        conn = self._db.conn

        cursor = await conn.execute("SELECT MIN(created_at) AS since, COUNT(DISTINCT chat_id) AS chats FROM interactions")
        row = await cursor.fetchone()
        if row is None or row["since"] is None:
            return None

        cursor = await conn.execute(
            "SELECT COUNT(id) AS count, COALESCE(SUM(prompt_tokens), 0) AS tokens FROM interactions WHERE prompt_tokens > 0"
        )
        prompts = await cursor.fetchone()
        cursor = await conn.execute(
            "SELECT COUNT(id) AS count, COALESCE(SUM(result_tokens), 0) AS tokens FROM interactions WHERE successful = 1"
        )
        completions = await cursor.fetchone()
        cursor = await conn.execute("SELECT COUNT(id) AS count FROM interactions WHERE successful = 0")
        errors = await cursor.fetchone()

        return InteractionStats(
            since=datetime.fromisoformat(row["since"]),
            chats=row["chats"],
            prompts=prompts["count"],
            prompt_tokens=prompts["tokens"],
            completions=completions["count"],
            completion_tokens=completions["tokens"],
            errors=errors["count"],
        )
