"""Per-conversation state kept in aiogram's FSM storage.

Each conversation owns one storage record holding two documents: the
``PictureState`` the dialogs read and write, and the ``DialogState`` stack the
engine uses to resume a suspended waterfall on the next message. Both are
always written together.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from aiogram.fsm.storage.base import BaseStorage, StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

PICTURE_STATE_NAME = "picture_state"
DIALOG_STATE_NAME = "dialog_state"


@dataclass
class PictureState:
    has_greeted: bool = False
    is_searching: bool = False
    search: Optional[str] = None

    def reset_search(self) -> None:
        self.is_searching = False
        self.search = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PictureState":
        search = data.get("search")
        if search is not None and not isinstance(search, str):
            raise ValueError(f"search must be a string, got {type(search).__name__}")
        return cls(
            has_greeted=bool(data.get("has_greeted", False)),
            is_searching=bool(data.get("is_searching", False)),
            search=search or None,
        )


@dataclass
class DialogFrame:
    """One active dialog: which waterfall, which step, what it is waiting for."""

    dialog: str
    step: int = 0
    prompt: Optional[str] = None  # prompt kind while suspended
    prompt_text: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogFrame":
        dialog = data["dialog"]
        if not isinstance(dialog, str) or not dialog:
            raise ValueError("frame has no dialog name")
        step = int(data.get("step", 0))
        if step < 0:
            raise ValueError(f"negative step index {step}")
        return cls(
            dialog=dialog,
            step=step,
            prompt=data.get("prompt"),
            prompt_text=data.get("prompt_text"),
        )


@dataclass
class DialogState:
    stack: List[DialogFrame] = field(default_factory=list)

    @property
    def active(self) -> Optional[DialogFrame]:
        return self.stack[-1] if self.stack else None

    def to_dict(self) -> Dict[str, Any]:
        return {"stack": [asdict(f) for f in self.stack]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogState":
        frames = data.get("stack") or []
        if not isinstance(frames, list):
            raise ValueError("dialog stack must be a list")
        return cls(stack=[DialogFrame.from_dict(f) for f in frames])


class ConversationStore:
    """Loads and saves conversation state through an aiogram storage backend."""

    def __init__(self, storage: BaseStorage):
        self.storage = storage

    async def load(self, key: StorageKey) -> Tuple[PictureState, DialogState]:
        data = await self.storage.get_data(key)

        try:
            state = PictureState.from_dict(data.get(PICTURE_STATE_NAME) or {})
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Discarding invalid picture state for chat %s: %s", key.chat_id, e)
            state = PictureState()

        try:
            dialog_state = DialogState.from_dict(data.get(DIALOG_STATE_NAME) or {})
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.warning("Discarding invalid dialog state for chat %s: %s", key.chat_id, e)
            dialog_state = DialogState()

        return state, dialog_state

    async def save(self, key: StorageKey, state: PictureState, dialog_state: DialogState) -> None:
        await self.storage.update_data(
            key,
            {
                PICTURE_STATE_NAME: state.to_dict(),
                DIALOG_STATE_NAME: dialog_state.to_dict(),
            },
        )

    async def close(self) -> None:
        await self.storage.close()


def create_storage(redis_url: Optional[str] = None) -> BaseStorage:
    if redis_url:
        from aiogram.fsm.storage.redis import RedisStorage

        logger.info("Using Redis conversation storage")
        return RedisStorage.from_url(redis_url)

    logger.info("Using in-memory conversation storage")
    return MemoryStorage()
