"""Fire-and-forget persistence of answer outcomes."""

from __future__ import annotations

from gemini_relay.log import get_logger
from gemini_relay.storage.interaction_repo import InteractionRepository
from gemini_relay.storage.models import InteractionRecord

logger = get_logger(__name__)


class OutcomeRecorder:
    """Writes one InteractionRecord per answer attempt; never raises."""

    def __init__(self, repo: InteractionRepository | None):
        self._repo = repo

    async def record(
        self,
        chat_id: int,
        user_id: int,
        username: str,
        prompt_text: str,
        input_tokens: int,
        result_text: str,
        output_tokens: int,
        success: bool,
    ) -> None:
        if self._repo is None:
            return
        try:
            await self._repo.record_interaction(
                InteractionRecord(
                    chat_id=chat_id,
                    user_id=user_id,
                    username=username,
                    prompt_text=prompt_text,
                    prompt_tokens=input_tokens,
                    result_text=result_text,
                    result_tokens=output_tokens,
                    successful=success,
                )
            )
        except Exception as e:
            logger.error("interaction_record_failed", chat_id=chat_id, error=str(e))
