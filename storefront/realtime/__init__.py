from storefront.realtime.channel import ConnectionState, RealtimeNotificationChannel
from storefront.realtime.counters import CounterSnapshot, NotificationCounters
from storefront.realtime.live_chat import ChatState, LiveChatSession
from storefront.realtime.transport import (
    SocketConnection,
    SocketTransport,
    WebsocketsConnection,
    WebsocketsTransport,
)

__all__ = [
    "ChatState",
    "ConnectionState",
    "CounterSnapshot",
    "LiveChatSession",
    "NotificationCounters",
    "RealtimeNotificationChannel",
    "SocketConnection",
    "SocketTransport",
    "WebsocketsConnection",
    "WebsocketsTransport",
]
