from __future__ import annotations

from datetime import datetime, timezone

import pytest
from telegram import Chat, Message, PhotoSize, Update, User

from gemini_relay.core.types import MediaKind
from gemini_relay.messenger.models import IncomingMessage
from gemini_relay.messenger.telegram import TelegramPlatform, to_incoming

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)
CHAT = Chat(id=100, type=Chat.PRIVATE)
ALICE = User(id=1, first_name="Alice", is_bot=False, username="alice")
BOT = User(id=2, first_name="Relay", is_bot=True, username="relay_bot")


def test_to_incoming_picks_largest_photo_and_reply_parent() -> None:
    parent = Message(message_id=5, date=NOW, chat=CHAT, from_user=BOT, text="earlier answer")
    message = Message(
        message_id=6,
        date=NOW,
        chat=CHAT,
        from_user=ALICE,
        caption="what is this?",
        photo=(PhotoSize("small", "s", 90, 90), PhotoSize("large", "l", 1280, 1280)),
        reply_to_message=parent,
        media_group_id="album-1",
    )

    incoming = to_incoming(message)

    assert incoming is not None
    assert (incoming.chat_id, incoming.message_id, incoming.user_id) == (100, 6, 1)
    assert incoming.sender_name == "@alice (Alice)"
    assert incoming.caption == "what is this?"
    assert [(m.kind, m.file_id) for m in incoming.media] == [(MediaKind.PHOTO, "large")]
    assert incoming.media_group_id == "album-1"
    assert incoming.reply_to is not None
    assert incoming.reply_to.is_bot
    assert incoming.reply_to.text == "earlier answer"


def test_to_incoming_without_sender() -> None:
    message = Message(message_id=7, date=NOW, chat=CHAT, text="channel post")

    assert to_incoming(message) is None


@pytest.mark.asyncio
async def test_command_is_split_from_bot_mention_and_arguments() -> None:
    platform = TelegramPlatform("123:token")
    received: list[tuple[str, str, IncomingMessage]] = []

    async def _on_command(command: str, args: str, message: IncomingMessage) -> None:
        received.append((command, args, message))

    platform.on_command(_on_command)
    message = Message(message_id=8, date=NOW, chat=CHAT, from_user=ALICE, text="/Image@relay_bot a red fox ")

    await platform._on_telegram_command(Update(update_id=1, message=message), None)

    [(command, args, incoming)] = received
    assert command == "/image"
    assert args == "a red fox"
    assert incoming.message_id == 8


def test_platform_requires_token() -> None:
    with pytest.raises(ValueError):
        TelegramPlatform("")
