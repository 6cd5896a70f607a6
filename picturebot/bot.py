"""
PictureBot — Telegram bot (aiogram 3)

Every text message is one turn:
- the regex middleware tags obvious intents ("search pics ...", "help") up front
- the dialog engine resumes whatever dialog the chat is in, or starts the main one
- replies are rendered as text, a photo, or photo albums
Turns of one chat run strictly one after another; different chats run in parallel.
"""

import asyncio
import logging
import weakref
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiogram import BaseMiddleware, Bot, Dispatcher, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.storage.base import StorageKey
from aiogram.types import InputMediaPhoto, Message, TelegramObject

from . import config, responses
from .dialogs import Attachment, Reply
from .picture_bot import PictureBot
from .recognizer import IntentRecognizer, RegExpRecognizer
from .state import ConversationStore, create_storage
from services import IntentResult
from services.classifier import OpenAIIntentClassifier
from services.luis import LuisRecognizer
from services.search import ImageSearchClient, SearchIndexClient, SearchOrchestrator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MEDIA_GROUP_MAX = 10
CAPTION_MAX = 1024

# chat -> lock; entries disappear once no turn holds them
_turn_locks: "weakref.WeakValueDictionary[StorageKey, asyncio.Lock]" = weakref.WeakValueDictionary()


def _turn_lock(key: StorageKey) -> asyncio.Lock:
    lock = _turn_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _turn_locks[key] = lock
    return lock


def conversation_key(bot: Bot, msg: Message) -> StorageKey:
    # Conversation-scoped: everyone in the chat (or forum topic) shares the state
    return StorageKey(
        bot_id=bot.id,
        chat_id=msg.chat.id,
        user_id=msg.chat.id,
        thread_id=msg.message_thread_id,
    )


class RegExpRecognizerMiddleware(BaseMiddleware):
    """Tags the message with a regex-recognized intent before the handler runs."""

    def __init__(self, recognizer: Optional[RegExpRecognizer] = None):
        self.recognizer = recognizer or RegExpRecognizer()

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        text = getattr(event, "text", None)
        data["recognized"] = self.recognizer.recognize(text) if text else None
        return await handler(event, data)


# ─────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────

def _caption(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return text[:CAPTION_MAX]


async def send_reply(msg: Message, reply: Reply) -> None:
    if reply.text:
        await msg.answer(reply.text)

    photos: List[Attachment] = [a for a in reply.attachments if a.content_type.startswith("image/")]
    for start in range(0, len(photos), MEDIA_GROUP_MAX):
        chunk = photos[start:start + MEDIA_GROUP_MAX]
        try:
            if len(chunk) == 1:
                await msg.answer_photo(chunk[0].content_url, caption=_caption(chunk[0].name))
            else:
                await msg.answer_media_group(
                    [InputMediaPhoto(media=a.content_url, caption=_caption(a.name)) for a in chunk]
                )
        except TelegramBadRequest as e:
            # Telegram refuses URLs it can't fetch; fall back to plain links
            logger.warning("Telegram rejected %d photo(s): %s", len(chunk), e)
            links = "\n".join(a.content_url for a in chunk)
            await msg.answer(f"{responses.PHOTOS_UNAVAILABLE}\n{links}")


# ─────────────────────────────────────────────────────────────
# Handlers
# ─────────────────────────────────────────────────────────────

async def handle_text(
    msg: Message,
    bot: Bot,
    picture_bot: PictureBot,
    recognized: Optional[IntentResult] = None,
    turn_timeout: float = config.TURN_TIMEOUT_SEC,
):
    text = (msg.text or "").strip()
    if not text:
        return await msg.answer(responses.ERROR_NOT_TEXT)

    key = conversation_key(bot, msg)
    metadata = {
        "message_id": msg.message_id,
        "user_id": msg.from_user.id if msg.from_user else None,
        "chat_type": msg.chat.type,
    }

    try:
        async with _turn_lock(key):
            replies = await asyncio.wait_for(
                picture_bot.handle_turn(key, text, recognized=recognized, metadata=metadata),
                timeout=turn_timeout,
            )
            for reply in replies:
                await send_reply(msg, reply)
    except Exception:
        logger.exception("Uncaught exception in bot! chat=%s", msg.chat.id)
        await msg.answer(responses.ERROR_GENERAL)


async def handle_other(msg: Message):
    await msg.answer(responses.ERROR_NOT_TEXT)


# ─────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────

def _require(name: str, value: Optional[str]) -> str:
    if not value:
        raise RuntimeError(f"{name} is not set")
    return value


def build_intent_service():
    timeout = config.HTTP_TIMEOUT_SEC
    if config.INTENT_BACKEND == "openai":
        return OpenAIIntentClassifier(
            api_key=_require("OPENAI_API_KEY", config.OPENAI_API_KEY),
            model=config.OPENAI_INTENT_MODEL,
            timeout=timeout,
        )
    if config.INTENT_BACKEND == "luis":
        return LuisRecognizer(
            app_id=_require("LUIS_APP_ID", config.LUIS_APP_ID),
            key=_require("LUIS_KEY", config.LUIS_KEY),
            endpoint=_require("LUIS_ENDPOINT", config.LUIS_ENDPOINT),
            timeout=timeout,
        )
    raise RuntimeError(f"Unknown INTENT_BACKEND {config.INTENT_BACKEND!r} (expected 'luis' or 'openai')")


def build_picture_bot() -> PictureBot:
    timeout = config.HTTP_TIMEOUT_SEC
    search = SearchOrchestrator(
        index=SearchIndexClient(
            service_name=_require("SEARCH_SERVICE_NAME", config.SEARCH_SERVICE_NAME),
            index_name=config.SEARCH_INDEX_NAME,
            query_key=_require("SEARCH_QUERY_KEY", config.SEARCH_QUERY_KEY),
            timeout=timeout,
        ),
        images=ImageSearchClient(
            key=_require("BING_SEARCH_KEY", config.BING_SEARCH_KEY),
            endpoint=config.BING_SEARCH_ENDPOINT,
            timeout=timeout,
        ),
        fallback_count=config.FALLBACK_IMAGE_COUNT,
    )
    return PictureBot(
        store=ConversationStore(create_storage(config.REDIS_URL)),
        recognizer=IntentRecognizer(build_intent_service()),
        search=search,
        intent_threshold=config.INTENT_THRESHOLD,
    )


def build_dispatcher(picture_bot: PictureBot) -> Dispatcher:
    dp = Dispatcher(picture_bot=picture_bot)

    dp.message.middleware(RegExpRecognizerMiddleware())
    dp.message.register(handle_text, F.text)
    dp.message.register(handle_other)

    return dp


# ─────────────────────────────────────────────────────────────
# Run
# ─────────────────────────────────────────────────────────────

async def run() -> None:
    token = config.TELEGRAM_BOT_TOKEN
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    picture_bot = build_picture_bot()
    bot = Bot(token=token)
    dp = build_dispatcher(picture_bot)

    logger.info("PictureBot started")
    try:
        await dp.start_polling(bot)
    finally:
        await picture_bot.search.aclose()
        await picture_bot.engine.store.close()
        await bot.session.close()


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
