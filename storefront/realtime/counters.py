"""
Badge counters for the admin console.

unread_messages and pending_support_requests are replaced wholesale by the
periodic poll; unassigned_live_chats moves by push events and admin actions.
No counter ever goes below zero.
"""
from dataclasses import dataclass
from typing import Callable, List

from storefront.utils.logger import get_logger

logger = get_logger("realtime.counters")


@dataclass(frozen=True)
class CounterSnapshot:
    unread_messages: int = 0
    pending_support_requests: int = 0
    unassigned_live_chats: int = 0


CounterCallback = Callable[[CounterSnapshot], None]


class NotificationCounters:

    def __init__(self):
        self._unread_messages = 0
        self._pending_support_requests = 0
        self._unassigned_live_chats = 0
        self._subscribers: List[CounterCallback] = []

    @property
    def unread_messages(self) -> int:
        return self._unread_messages

    @property
    def pending_support_requests(self) -> int:
        return self._pending_support_requests

    @property
    def unassigned_live_chats(self) -> int:
        return self._unassigned_live_chats

    def snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(
            unread_messages=self._unread_messages,
            pending_support_requests=self._pending_support_requests,
            unassigned_live_chats=self._unassigned_live_chats,
        )

    def subscribe(self, callback: CounterCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _changed(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Counter subscriber failed: {e}")

    def set_unread_messages(self, count: int) -> None:
        self._unread_messages = max(0, count)
        self._changed()

    def set_pending_support_requests(self, count: int) -> None:
        self._pending_support_requests = max(0, count)
        self._changed()

    def set_live_chat_count(self, count: int) -> None:
        self._unassigned_live_chats = max(0, count)
        self._changed()

    def increment_live_chat_count(self, amount: int = 1) -> None:
        self.set_live_chat_count(self._unassigned_live_chats + amount)

    def decrement_live_chat_count(self, amount: int = 1) -> None:
        self.set_live_chat_count(self._unassigned_live_chats - amount)
