"""PictureBot conversation: a main menu plus a picture search waterfall.

mainDialog:   greet (once per conversation) -> route by intent
searchDialog: ask what to search -> search the index -> offer Bing fallback
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from aiogram.fsm.storage.base import StorageKey

from services import IntentResult, ServiceError
from services.search import SearchOrchestrator

from . import responses
from .dialogs import (
    CONFIRM_PROMPT,
    DialogEngine,
    DialogSet,
    Reply,
    StepContext,
    StepResult,
    WaterfallDialog,
    begin_dialog,
    end_dialog,
    next_step,
    prompt,
)
from .recognizer import IntentRecognizer, get_search_query
from .state import ConversationStore

logger = logging.getLogger(__name__)

MAIN_DIALOG = "mainDialog"
SEARCH_DIALOG = "searchDialog"

SEARCH_INTENTS = ("SearchPics", "SearchPictures")

DEFAULT_INTENT_THRESHOLD = 0.65


class PictureBot:
    def __init__(
        self,
        store: ConversationStore,
        recognizer: IntentRecognizer,
        search: SearchOrchestrator,
        intent_threshold: float = DEFAULT_INTENT_THRESHOLD,
    ):
        self.recognizer = recognizer
        self.search = search
        self.intent_threshold = intent_threshold

        dialogs = DialogSet()
        dialogs.add(WaterfallDialog(MAIN_DIALOG, [self.greeting, self.main_menu]))
        dialogs.add(
            WaterfallDialog(SEARCH_DIALOG, [self.search_request, self.search_index, self.search_fallback])
        )
        self.engine = DialogEngine(dialogs, store, root_dialog=MAIN_DIALOG)

    async def handle_turn(
        self,
        key: StorageKey,
        text: str,
        recognized: Optional[IntentResult] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Reply]:
        return await self.engine.handle_turn(key, text, recognized=recognized, metadata=metadata)

    def accept_intent(self, intent: IntentResult) -> Optional[str]:
        """Intent name if the score clears the threshold, else None."""
        if intent.name and intent.score > self.intent_threshold:
            return intent.name
        return None

    # ─────────────────────────────────────────────
    # mainDialog
    # ─────────────────────────────────────────────

    async def greeting(self, step: StepContext) -> StepResult:
        if not step.state.has_greeted:
            step.send(responses.GREETING)
            step.send(responses.HELP)
            step.state.has_greeted = True
            await step.save()

        return next_step()

    async def main_menu(self, step: StepContext) -> StepResult:
        state = step.state

        try:
            intent = await self.recognizer.resolve_intent(step.turn)
        except ServiceError as e:
            logger.warning("Intent recognition failed: %s", e)
            step.send(responses.RECOGNIZER_ERROR)
            return end_dialog()

        best_intent = self.accept_intent(intent)
        if best_intent is None and intent.name:
            logger.info("Rejected intent %s with score %.2f", intent.name, intent.score)

        if best_intent in SEARCH_INTENTS:
            query = get_search_query(intent.entities)
            if query:
                state.search = query
                state.is_searching = True
                await step.save()
            return begin_dialog(SEARCH_DIALOG)

        if best_intent == "Share":
            step.send(responses.SHARE_CONFIRMATION)
        elif best_intent == "Order":
            step.send(responses.ORDER_CONFIRMATION)
        elif best_intent == "Help":
            step.send(responses.HELP)
        else:
            step.send(responses.CONFUSED)

        return end_dialog()

    # ─────────────────────────────────────────────
    # searchDialog
    # ─────────────────────────────────────────────

    async def search_request(self, step: StepContext) -> StepResult:
        if step.state.is_searching:
            return next_step()

        step.state.is_searching = True
        return prompt(responses.SEARCH_PROMPT)

    async def search_index(self, step: StepContext) -> StepResult:
        state = step.state

        query = state.search
        if not query:
            query = (step.result or "").strip()
            if not query:
                # flagged as searching with nothing to search for; ask again
                state.is_searching = False
                return next_step(index=0)
            state.search = query
            await step.save()

        try:
            hits = await self.search.search_primary(query)
        except ServiceError as e:
            logger.warning("Primary search failed for %r: %s", query, e)
            step.send(responses.SEARCH_ERROR)
            state.reset_search()
            return end_dialog()

        if not hits:
            step.send(responses.no_results(query))
            return prompt(responses.FALLBACK_PROMPT, kind=CONFIRM_PROMPT)

        step.send(responses.results_reply(hits))
        state.reset_search()
        return end_dialog()

    async def search_fallback(self, step: StepContext) -> StepResult:
        state = step.state
        query = state.search or ""

        if step.result is True:
            try:
                hits = await self.search.search_fallback(query)
            except ServiceError as e:
                logger.warning("Fallback search failed for %r: %s", query, e)
                step.send(responses.FALLBACK_ERROR)
            else:
                if hits:
                    step.send(responses.fallback_reply(hits))
                else:
                    step.send(responses.no_fallback_results(query))
        else:
            step.send(responses.FALLBACK_DECLINED)

        state.reset_search()
        return end_dialog()
