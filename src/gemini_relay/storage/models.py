"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class InteractionRecord:
    chat_id: int
    user_id: int
    username: str
    prompt_text: str
    prompt_tokens: int = 0
    result_text: str = ""
    result_tokens: int = 0
    successful: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class InteractionStats:
    since: Optional[datetime]
    chats: int
    prompts: int
    prompt_tokens: int
    completions: int
    completion_tokens: int
    errors: int

    def format(self) -> str:
        lines: list[str] = []
        if self.since is not None:
            lines.append(f"Since {self.since.strftime('%Y-%m-%d %H:%M:%S')}")
            lines.append("")
        lines.append(f"Chats: {self.chats:,}")
        lines.append(f"Prompts: {self.prompts:,} (Total tokens: {self.prompt_tokens:,})")
        lines.append(f"Completions: {self.completions:,} (Total tokens: {self.completion_tokens:,})")
        lines.append(f"Errors: {self.errors:,}")
        return "\n".join(lines)
