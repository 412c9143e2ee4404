"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import httpx

from gemini_relay.ai.client import GeminiClient, GenerativeClient
from gemini_relay.config import AppConfig
from gemini_relay.core.dispatcher import UpdateDispatcher
from gemini_relay.core.errors import Redactor
from gemini_relay.log import get_logger
from gemini_relay.messenger.base import ChatPlatform
from gemini_relay.messenger.telegram import TelegramPlatform
from gemini_relay.pipeline.answer import Answerer
from gemini_relay.pipeline.fetch import UrlFetcher
from gemini_relay.pipeline.prompt_builder import PromptBuilder
from gemini_relay.pipeline.recorder import OutcomeRecorder
from gemini_relay.pipeline.relay import RelaySink
from gemini_relay.storage.database import Database
from gemini_relay.storage.interaction_repo import InteractionRepository

logger = get_logger(__name__)


class GeminiRelayApp:
    """Top-level application orchestrator."""

    def __init__(
        self,
        config: AppConfig,
        platform: ChatPlatform | None = None,
        client: GenerativeClient | None = None,
    ):
        self.config = config
        self.redactor = Redactor(config.secrets)
        self.db = Database(config.db_path) if config.db_path else None
        self.interaction_repo = InteractionRepository(self.db) if self.db else None

        self.platform = platform or TelegramPlatform(config.telegram_bot_token)
        self.client = client or GeminiClient(config.google_ai_api_key)
        self.http = httpx.AsyncClient()

        timeouts = config.timeouts
        self.sink = RelaySink(
            self.platform,
            request_timeout=timeouts.request,
            ignorable_timeout=timeouts.ignorable_request,
            max_message_length=config.max_message_length,
            caption_preview_length=config.caption_preview_length,
            ffmpeg_path=config.ffmpeg_path,
            verbose=config.verbose,
        )
        self.builder = PromptBuilder(
            self.platform,
            UrlFetcher(self.http, timeouts.fetch_url),
            download_timeout=timeouts.request,
        )
        self.answerer = Answerer(
            config,
            self.client,
            self.builder,
            self.sink,
            OutcomeRecorder(self.interaction_repo),
            self.redactor,
        )
        self.dispatcher = UpdateDispatcher(config, self.platform, self.answerer, self.interaction_repo)

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Database
        if self.db:
            await self.db.initialize()
        else:
            logger.warning("database_not_configured")

        # 2. Leftover provider uploads from earlier runs
        try:
            deleted = await self.client.delete_uploaded_files()
            logger.info("uploaded_files_deleted", count=deleted)
        except Exception as e:
            logger.warning("uploaded_files_delete_failed", error=str(e))

        # 3. Chat platform
        self.dispatcher.attach()
        await self.platform.start()
        logger.info(
            "gemini_relay_started",
            model=self.config.models.text,
            allowed_users=len(self.config.allowed_users),
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.platform.stop()
        except Exception as e:
            logger.error("platform_stop_error", error=str(e))

        await self.http.aclose()
        if self.db:
            await self.db.close()
        logger.info("gemini_relay_stopped")
