from typing import List
from unittest.mock import AsyncMock

import pytest
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from picturebot.picture_bot import PictureBot
from picturebot.recognizer import IntentRecognizer, RegExpRecognizer
from picturebot.state import ConversationStore
from services import IntentResult, SearchHit


def make_hits(count: int, prefix: str = "pic") -> List[SearchHit]:
    return [
        SearchHit(
            key=str(i),
            title=f"{prefix}-{i}.png",
            image_url=f"https://img.example.com/{prefix}-{i}.png",
        )
        for i in range(count)
    ]


@pytest.fixture
def key():
    return StorageKey(bot_id=1, chat_id=42, user_id=42)


@pytest.fixture
def store():
    return ConversationStore(MemoryStorage())


@pytest.fixture
def intent_service():
    service = AsyncMock()
    service.classify.return_value = IntentResult(name=None, score=0.0)
    return service


@pytest.fixture
def search():
    search = AsyncMock()
    search.search_primary.return_value = []
    search.search_fallback.return_value = []
    return search


@pytest.fixture
def picture_bot(store, intent_service, search):
    return PictureBot(store=store, recognizer=IntentRecognizer(intent_service), search=search)


@pytest.fixture
def say(picture_bot, key):
    """Send one message the way the Telegram handler does (regex middleware first)."""
    regex = RegExpRecognizer()

    async def _say(text: str):
        return await picture_bot.handle_turn(key, text, recognized=regex.recognize(text))

    return _say
