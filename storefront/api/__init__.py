from storefront.api.client import StorefrontClient
from storefront.api.models import (
    CartLine,
    ChatMessage,
    ChatSession,
    InboxItem,
    ParticipantInfo,
    ProductSnapshot,
)

__all__ = [
    "StorefrontClient",
    "CartLine",
    "ChatMessage",
    "ChatSession",
    "InboxItem",
    "ParticipantInfo",
    "ProductSnapshot",
]
