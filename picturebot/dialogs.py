"""Waterfall dialogs that survive between messages.

A dialog is an ordered list of async steps. The engine keeps an explicit stack
of ``DialogFrame`` records (dialog name + step index + pending prompt) in the
conversation store, so a step that asks the user something simply ends the
turn and the next message picks up where the stack says.

Step outcomes:

- ``next_step()``: run the following step (or ``index``) in the same turn
- ``prompt()``: send a question and suspend until the next message
- ``begin_dialog()``: push a child dialog; the parent continues after it ends
- ``end_dialog()``: pop, handing ``result`` to the parent's next step
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from aiogram.fsm.storage.base import StorageKey

from services import IntentResult

from .state import ConversationStore, DialogFrame, DialogState, PictureState

logger = logging.getLogger(__name__)

NEXT = "next"
WAIT = "wait"
BEGIN = "begin"
END = "end"

TEXT_PROMPT = "text"
CONFIRM_PROMPT = "confirm"

_yes_re = re.compile(r"^\s*(y|yes|yeah|yep|sure|ok|okay|of course|please)\b", flags=re.I)
_no_re = re.compile(r"^\s*(n|no|nope|nah)\b", flags=re.I)


# ─────────────────────────────────────────────
# Replies
# ─────────────────────────────────────────────

@dataclass
class Attachment:
    content_url: str
    content_type: str = "image/png"
    name: Optional[str] = None


@dataclass
class Reply:
    text: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    layout: str = "list"


# ─────────────────────────────────────────────
# Turn / step plumbing
# ─────────────────────────────────────────────

@dataclass
class TurnContext:
    """Everything one inbound message carries through the engine."""

    key: StorageKey
    text: str
    recognized: Optional[IntentResult] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    replies: List[Reply] = field(default_factory=list)
    # dialog stack as loaded at the start of the turn
    checkpoint: DialogState = field(default_factory=DialogState)

    @property
    def responded(self) -> bool:
        return bool(self.replies)

    def send(self, reply: Any) -> None:
        if isinstance(reply, str):
            reply = Reply(text=reply)
        self.replies.append(reply)


@dataclass
class StepResult:
    kind: str
    result: Any = None
    index: Optional[int] = None
    dialog: Optional[str] = None
    prompt: Optional[str] = None
    prompt_text: Optional[str] = None


def next_step(result: Any = None, index: Optional[int] = None) -> StepResult:
    return StepResult(NEXT, result=result, index=index)


def prompt(text: str, kind: str = TEXT_PROMPT) -> StepResult:
    return StepResult(WAIT, prompt=kind, prompt_text=text)


def begin_dialog(name: str) -> StepResult:
    return StepResult(BEGIN, dialog=name)


def end_dialog(result: Any = None) -> StepResult:
    return StepResult(END, result=result)


Step = Callable[["StepContext"], Awaitable[StepResult]]


@dataclass
class WaterfallDialog:
    name: str
    steps: Sequence[Step]


class StepContext:
    def __init__(self, engine: "DialogEngine", turn: TurnContext, state: PictureState,
                 dialog_state: DialogState, result: Any = None):
        self._engine = engine
        self.turn = turn
        self.state = state
        self.dialog_state = dialog_state
        self.result = result

    @property
    def text(self) -> str:
        return self.turn.text

    def send(self, reply: Any) -> None:
        self.turn.send(reply)

    async def save(self) -> None:
        """Persist the conversation state now.

        The dialog stack is written as it was when the turn started, so if the
        rest of the turn fails the same message replays the same step.
        """
        await self._engine.store.save(self.turn.key, self.state, self.turn.checkpoint)


def parse_confirm(text: str) -> Optional[bool]:
    if _yes_re.match(text or ""):
        return True
    if _no_re.match(text or ""):
        return False
    return None


def parse_prompt_answer(kind: Optional[str], text: str) -> Any:
    """Returns the parsed answer, or None when the prompt has to be asked again."""
    if kind == CONFIRM_PROMPT:
        return parse_confirm(text)
    text = (text or "").strip()
    return text or None


# ─────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────

class DialogSet:
    def __init__(self):
        self._dialogs: Dict[str, WaterfallDialog] = {}

    def add(self, dialog: WaterfallDialog) -> "DialogSet":
        if dialog.name in self._dialogs:
            raise ValueError(f"Dialog {dialog.name!r} is already registered")
        self._dialogs[dialog.name] = dialog
        return self

    def find(self, name: str) -> Optional[WaterfallDialog]:
        return self._dialogs.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._dialogs


class DialogEngine:
    def __init__(self, dialogs: DialogSet, store: ConversationStore, root_dialog: str):
        if root_dialog not in dialogs:
            raise ValueError(f"Root dialog {root_dialog!r} is not registered")
        self.dialogs = dialogs
        self.store = store
        self.root_dialog = root_dialog

    async def handle_turn(
        self,
        key: StorageKey,
        text: str,
        recognized: Optional[IntentResult] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Reply]:
        turn = TurnContext(key=key, text=text, recognized=recognized, metadata=dict(metadata or {}))
        logger.debug("Turn in chat %s: %s", key.chat_id, turn.metadata)
        state, dialog_state = await self.store.load(key)
        turn.checkpoint = DialogState.from_dict(dialog_state.to_dict())

        await self.continue_dialog(turn, state, dialog_state)

        if not turn.responded and dialog_state.active is None:
            await self.begin(turn, state, dialog_state, self.root_dialog)

        # Always the last thing a turn does
        await self.store.save(key, state, dialog_state)
        return turn.replies

    async def begin(self, turn: TurnContext, state: PictureState, dialog_state: DialogState, name: str) -> None:
        self._push(dialog_state, name)
        await self._run(turn, state, dialog_state, None)

    async def continue_dialog(self, turn: TurnContext, state: PictureState, dialog_state: DialogState) -> None:
        frame = dialog_state.active
        if frame is None:
            return

        unknown = [f.dialog for f in dialog_state.stack if self.dialogs.find(f.dialog) is None]
        if unknown:
            logger.warning("Dropping dialog stack with unknown dialog(s) %r from chat %s", unknown, turn.key.chat_id)
            dialog_state.stack.clear()
            return

        result = None
        if frame.prompt:
            result = parse_prompt_answer(frame.prompt, turn.text)
            if result is None:
                logger.info("Prompt answer not understood, asking again (%s)", frame.dialog)
                turn.send(frame.prompt_text or "")
                return
            frame.prompt = None
            frame.prompt_text = None

        frame.step += 1
        await self._run(turn, state, dialog_state, result)

    def _push(self, dialog_state: DialogState, name: str) -> None:
        if self.dialogs.find(name) is None:
            raise KeyError(f"Unknown dialog {name!r}")
        dialog_state.stack.append(DialogFrame(dialog=name, step=0))

    async def _run(self, turn: TurnContext, state: PictureState, dialog_state: DialogState, result: Any) -> None:
        while dialog_state.stack:
            frame = dialog_state.stack[-1]
            dialog = self.dialogs.find(frame.dialog)
            if dialog is None:
                logger.warning("Dropping dialog stack at unknown dialog %r", frame.dialog)
                dialog_state.stack.clear()
                return

            if frame.step >= len(dialog.steps):
                # Falling off the end of a waterfall ends it
                self._pop(dialog_state)
                result = None
                continue

            step = dialog.steps[frame.step]
            ctx = StepContext(self, turn, state, dialog_state, result)
            outcome = await step(ctx)
            logger.debug("%s[%d] -> %s", frame.dialog, frame.step, outcome.kind)

            if outcome.kind == NEXT:
                frame.step = outcome.index if outcome.index is not None else frame.step + 1
                result = outcome.result
            elif outcome.kind == WAIT:
                frame.prompt = outcome.prompt
                frame.prompt_text = outcome.prompt_text
                if outcome.prompt_text:
                    turn.send(outcome.prompt_text)
                return
            elif outcome.kind == BEGIN:
                self._push(dialog_state, outcome.dialog)
                result = None
            elif outcome.kind == END:
                self._pop(dialog_state)
                result = outcome.result
            else:
                raise ValueError(f"Unknown step outcome {outcome.kind!r}")

    @staticmethod
    def _pop(dialog_state: DialogState) -> None:
        # the parent resumes at its next step
        dialog_state.stack.pop()
        if dialog_state.stack:
            dialog_state.stack[-1].step += 1
