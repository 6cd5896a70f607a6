"""Canned texts and reply builders for PictureBot."""

from __future__ import annotations

from typing import List

from services import SearchHit

from .dialogs import Attachment, Reply

# ─────────────────────────────────────────────────────────────
# Texts
# ─────────────────────────────────────────────────────────────

GREETING = "Hi! I'm PictureBot!"

HELP = """You can:
🔎 search for pictures ("search pics of mountains")
📤 share pictures ("share pics")
🖨️ order prints of pictures ("order prints")"""

SHARE_CONFIRMATION = "Posting your picture(s) on twitter..."
ORDER_CONFIRMATION = "Ordering standard prints of your picture(s)..."
CONFUSED = "I'm sorry, I don't understand."

SEARCH_PROMPT = "What would you like to search for?"
FALLBACK_PROMPT = "Would you like to search on Bing?"
FALLBACK_DECLINED = "Alright, we will not Bing."

RESULTS_HEADER = "Here are the results:"
FALLBACK_HEADER = "We found the following images on Bing:"

RECOGNIZER_ERROR = "Sorry, I couldn't work out what you meant just now. Please try again 🙏"
SEARCH_ERROR = "Sorry, the picture search is unavailable right now. Please try again later 🙏"
FALLBACK_ERROR = "Problem during Bing search. Please try again later 🙏"
ERROR_GENERAL = "Sorry, it looks like something went wrong."
ERROR_NOT_TEXT = "Send me a text message 🙂"
PHOTOS_UNAVAILABLE = "Some pictures couldn't be shown here, but you can open them:"


def no_results(query: str) -> str:
    return f'There were no results found for "{query}".'


def no_fallback_results(query: str) -> str:
    return f'Bing had nothing for "{query}" either.'


# ─────────────────────────────────────────────────────────────
# Result replies
# ─────────────────────────────────────────────────────────────

def _caption(hit: SearchHit) -> str:
    parts = [hit.title]
    if hit.description and hit.description != hit.title:
        parts.append(hit.description)
    return " — ".join(p for p in parts if p)


def results_reply(hits: List[SearchHit]) -> Reply:
    """Primary index hits as a list of picture cards."""
    attachments = [
        Attachment(content_url=h.image_url, content_type="image/png", name=_caption(h))
        for h in hits
        if h.image_url
    ]
    return Reply(text=RESULTS_HEADER, attachments=attachments, layout="list")


def fallback_reply(hits: List[SearchHit]) -> Reply:
    """Bing images as a carousel; every image is assumed to be a PNG."""
    attachments = [
        Attachment(content_url=h.image_url, content_type="image/png", name=h.title)
        for h in hits
        if h.image_url
    ]
    return Reply(text=FALLBACK_HEADER, attachments=attachments, layout="carousel")
