import pytest

from picturebot import responses
from picturebot.picture_bot import SEARCH_DIALOG
from services import IntentResult, ServiceError

from .conftest import make_hits


def texts(replies):
    return [r.text for r in replies]


class TestGreeting:
    """The greeting is sent once per conversation."""

    @pytest.mark.asyncio
    async def test_first_turn_greets_then_routes(self, say, store, key):
        replies = await say("hello there")

        assert texts(replies) == [responses.GREETING, responses.HELP, responses.CONFUSED]
        state, dialog_state = await store.load(key)
        assert state.has_greeted is True
        assert dialog_state.stack == []

    @pytest.mark.asyncio
    async def test_later_turns_do_not_greet(self, say):
        await say("hello there")
        replies = await say("hello again")

        assert texts(replies) == [responses.CONFUSED]

    @pytest.mark.asyncio
    async def test_help_sends_single_canned_reply(self, say, store, key):
        await say("hi")
        replies = await say("help")

        assert texts(replies) == [responses.HELP]
        state, _ = await store.load(key)
        assert state.has_greeted is True
        assert state.is_searching is False
        assert state.search is None

    @pytest.mark.asyncio
    async def test_share_and_order(self, say):
        await say("hi")
        assert texts(await say("share pics")) == [responses.SHARE_CONFIRMATION]
        assert texts(await say("order prints")) == [responses.ORDER_CONFIRMATION]


class TestIntentThreshold:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "score, expected",
        [
            (0.64, responses.CONFUSED),
            (0.65, responses.CONFUSED),
            (0.651, responses.SHARE_CONFIRMATION),
            (0.9, responses.SHARE_CONFIRMATION),
        ],
    )
    async def test_score_must_exceed_threshold(self, say, intent_service, score, expected):
        await say("hi")
        intent_service.classify.return_value = IntentResult(name="Share", score=score)

        replies = await say("could you post my photos somewhere")

        assert texts(replies) == [expected]

    @pytest.mark.asyncio
    async def test_regex_intent_skips_intent_service(self, say, intent_service, search):
        search.search_primary.return_value = make_hits(2)

        await say("search pics of mountains")

        intent_service.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_intent_service_failure_apologises_and_saves(self, say, intent_service, store, key):
        intent_service.classify.side_effect = ServiceError("LUIS down")

        replies = await say("what is this")

        assert texts(replies) == [responses.GREETING, responses.HELP, responses.RECOGNIZER_ERROR]
        state, dialog_state = await store.load(key)
        assert state.has_greeted is True
        assert dialog_state.stack == []


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_with_facet_on_fresh_conversation(self, say, search, store, key):
        search.search_primary.return_value = make_hits(3)

        replies = await say("search pics of mountains")

        assert texts(replies) == [responses.GREETING, responses.HELP, responses.RESULTS_HEADER]
        assert len(replies[-1].attachments) == 3
        search.search_primary.assert_awaited_once_with("mountains")

        state, dialog_state = await store.load(key)
        assert state.has_greeted is True
        assert state.is_searching is False
        assert state.search is None
        assert dialog_state.stack == []

    @pytest.mark.asyncio
    async def test_intent_service_facet_prefills_query(self, say, intent_service, search):
        await say("hi")
        intent_service.classify.return_value = IntentResult(
            name="SearchPictures", score=0.92, entities={"facet": ["beach"]}
        )
        search.search_primary.return_value = make_hits(1)

        replies = await say("find me something with a beach")

        assert texts(replies) == [responses.RESULTS_HEADER]
        search.search_primary.assert_awaited_once_with("beach")

    @pytest.mark.asyncio
    async def test_prompts_for_query_when_no_facet(self, say, search, store, key):
        await say("hi")

        replies = await say("search pictures")

        assert texts(replies) == [responses.SEARCH_PROMPT]
        search.search_primary.assert_not_called()
        state, dialog_state = await store.load(key)
        assert state.is_searching is True
        assert dialog_state.active.dialog == SEARCH_DIALOG

    @pytest.mark.asyncio
    async def test_query_is_persisted_before_searching(self, say, search, store, key):
        await say("hi")
        await say("search pictures")

        seen = []

        async def check_saved(query):
            state, _ = await store.load(key)
            seen.append(state.search)
            return make_hits(1)

        search.search_primary.side_effect = check_saved
        await say("sunset")

        assert seen == ["sunset"]

    @pytest.mark.asyncio
    async def test_retry_after_crash_replays_same_query(self, say, search, store, key):
        await say("hi")
        await say("search pictures")

        search.search_primary.side_effect = RuntimeError("connection reset")
        with pytest.raises(RuntimeError):
            await say("sunset")

        state, dialog_state = await store.load(key)
        assert state.search == "sunset"
        assert dialog_state.active.dialog == SEARCH_DIALOG

        search.search_primary.side_effect = None
        search.search_primary.return_value = make_hits(2)
        replies = await say("sunset")

        assert texts(replies) == [responses.RESULTS_HEADER]
        search.search_primary.assert_awaited_with("sunset")

    @pytest.mark.asyncio
    async def test_zero_hits_then_yes_runs_one_fallback(self, say, search, store, key):
        await say("hi")
        await say("search pictures")
        search.search_fallback.return_value = make_hits(5, prefix="bing")

        replies = await say("sunset")
        assert texts(replies) == [responses.no_results("sunset"), responses.FALLBACK_PROMPT]

        replies = await say("yes")

        search.search_fallback.assert_awaited_once_with("sunset")
        assert texts(replies) == [responses.FALLBACK_HEADER]
        assert replies[0].layout == "carousel"
        assert len(replies[0].attachments) <= 5
        assert all(a.content_type == "image/png" for a in replies[0].attachments)

        state, dialog_state = await store.load(key)
        assert state.is_searching is False
        assert state.search is None
        assert dialog_state.stack == []

    @pytest.mark.asyncio
    async def test_zero_hits_then_no_skips_fallback(self, say, search, store, key):
        await say("hi")
        await say("search pictures")
        await say("sunset")

        replies = await say("no")

        assert texts(replies) == [responses.FALLBACK_DECLINED]
        search.search_fallback.assert_not_called()
        state, _ = await store.load(key)
        assert state.is_searching is False
        assert state.search is None

    @pytest.mark.asyncio
    async def test_unclear_confirm_answer_asks_again(self, say, search):
        await say("hi")
        await say("search pictures")
        await say("sunset")

        replies = await say("hmm, not sure")
        assert texts(replies) == [responses.FALLBACK_PROMPT]
        search.search_fallback.assert_not_called()

        replies = await say("nope")
        assert texts(replies) == [responses.FALLBACK_DECLINED]

    @pytest.mark.asyncio
    async def test_fallback_failure_is_reported_softly(self, say, search, store, key):
        await say("hi")
        await say("search pics of sunset")
        search.search_fallback.side_effect = ServiceError("quota exceeded")

        replies = await say("yes")

        assert texts(replies) == [responses.FALLBACK_ERROR]
        assert "quota" not in replies[0].text
        state, dialog_state = await store.load(key)
        assert state.is_searching is False
        assert dialog_state.stack == []

    @pytest.mark.asyncio
    async def test_fallback_with_no_images(self, say, search):
        await say("hi")
        await say("search pics of sunset")

        replies = await say("yes")

        assert texts(replies) == [responses.no_fallback_results("sunset")]

    @pytest.mark.asyncio
    async def test_primary_failure_ends_search(self, say, search, store, key):
        await say("hi")
        search.search_primary.side_effect = ServiceError("index offline")

        replies = await say("search pics of cats")

        assert texts(replies) == [responses.SEARCH_ERROR]
        state, dialog_state = await store.load(key)
        assert state.is_searching is False
        assert state.search is None
        assert dialog_state.stack == []

    @pytest.mark.asyncio
    async def test_conversation_restarts_after_search(self, say, search):
        await say("hi")
        search.search_primary.return_value = make_hits(1)
        await say("search pics of cats")

        replies = await say("help")

        assert texts(replies) == [responses.HELP]
