import pytest
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from picturebot.state import (
    DialogFrame,
    DialogState,
    PictureState,
    create_storage,
)


@pytest.mark.asyncio
async def test_fresh_conversation_gets_defaults(store, key):
    state, dialog_state = await store.load(key)

    assert state == PictureState(has_greeted=False, is_searching=False, search=None)
    assert dialog_state.stack == []
    assert dialog_state.active is None


@pytest.mark.asyncio
async def test_save_then_load(store, key):
    state = PictureState(has_greeted=True, is_searching=True, search="sunset")
    dialog_state = DialogState(
        stack=[
            DialogFrame(dialog="mainDialog", step=1),
            DialogFrame(dialog="searchDialog", step=1, prompt="confirm", prompt_text="Bing?"),
        ]
    )

    await store.save(key, state, dialog_state)
    loaded_state, loaded_dialogs = await store.load(key)

    assert loaded_state == state
    assert loaded_dialogs == dialog_state
    assert loaded_dialogs.active.prompt == "confirm"


@pytest.mark.asyncio
async def test_conversations_are_isolated(store, key):
    other = StorageKey(bot_id=1, chat_id=7, user_id=7)
    await store.save(key, PictureState(has_greeted=True), DialogState())

    state, _ = await store.load(other)

    assert state.has_greeted is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data",
    [
        {"picture_state": "garbage", "dialog_state": {"stack": "nope"}},
        {"picture_state": {"search": 12}, "dialog_state": {"stack": [{"step": 1}]}},
        {"picture_state": {"has_greeted": True}, "dialog_state": {"stack": [{"dialog": "x", "step": -3}]}},
    ],
)
async def test_invalid_stored_state_falls_back_to_defaults(store, key, data):
    await store.storage.set_data(key, data)

    state, dialog_state = await store.load(key)

    assert state.search is None
    assert state.is_searching is False
    assert dialog_state.stack == []


@pytest.mark.asyncio
async def test_save_keeps_unrelated_storage_fields(store, key):
    await store.storage.set_data(key, {"other": 1})

    await store.save(key, PictureState(), DialogState())

    assert (await store.storage.get_data(key))["other"] == 1


def test_reset_search():
    state = PictureState(has_greeted=True, is_searching=True, search="cats")
    state.reset_search()

    assert state == PictureState(has_greeted=True)


def test_create_storage_defaults_to_memory():
    assert isinstance(create_storage(None), MemoryStorage)
    assert isinstance(create_storage(""), MemoryStorage)

