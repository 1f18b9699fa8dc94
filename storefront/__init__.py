"""
Storefront client: cart persistence and admin realtime notifications.

Usage:
    from storefront import CartStore, get_config

    store = CartStore.from_config(get_config())
    await store.start()
    await store.add_to_cart(42, 2, "Desk lamp", 100.0)
"""

from storefront.api.client import StorefrontClient
from storefront.cart.backends import CartMode
from storefront.cart.store import CartState, CartStore
from storefront.core.config import StorefrontConfig, get_config, set_config
from storefront.errors import (
    BackendError,
    BackendUnavailable,
    ChannelError,
    ChannelNotConnected,
    StorageError,
    StorefrontError,
    UnauthorizedError,
)
from storefront.notify import Notifier, Toast
from storefront.realtime.channel import ConnectionState, RealtimeNotificationChannel
from storefront.realtime.counters import CounterSnapshot, NotificationCounters
from storefront.realtime.live_chat import ChatState, LiveChatSession

__version__ = '0.1.0'

__all__ = [
    # Cart
    'CartMode',
    'CartState',
    'CartStore',
    # Realtime
    'ChatState',
    'ConnectionState',
    'CounterSnapshot',
    'LiveChatSession',
    'NotificationCounters',
    'RealtimeNotificationChannel',
    # Plumbing
    'Notifier',
    'StorefrontClient',
    'StorefrontConfig',
    'Toast',
    'get_config',
    'set_config',
    # Errors
    'BackendError',
    'BackendUnavailable',
    'ChannelError',
    'ChannelNotConnected',
    'StorageError',
    'StorefrontError',
    'UnauthorizedError',
]
