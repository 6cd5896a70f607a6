"""External service clients for PictureBot.

This package wraps the collaborators the bot talks to over the network: the
intent services (LUIS or an OpenAI classifier), the primary image index on
Azure Cognitive Search and the Bing image search used as a fallback. Every
client reports transport or payload problems as :class:`ServiceError`.
"""

from .models import IntentResult, SearchHit, ServiceError

__all__ = ["IntentResult", "SearchHit", "ServiceError"]
