"""
User-facing toast channel.

Subsystems never raise to the page; they post a Toast here and whatever UI
is attached (CLI printer, test recorder) subscribes to it.
"""
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List

from storefront.utils.logger import get_logger

logger = get_logger("notify")

VARIANT_DEFAULT = "default"
VARIANT_DESTRUCTIVE = "destructive"
VARIANT_WARNING = "warning"


@dataclass(frozen=True)
class Toast:
    title: str
    description: str = ""
    variant: str = VARIANT_DEFAULT


ToastCallback = Callable[[Toast], None]


class Notifier:
    """Fan-out of toasts to subscribers, with a short history."""

    def __init__(self, history_size: int = 50):
        self.history: Deque[Toast] = deque(maxlen=history_size)
        self._subscribers: List[ToastCallback] = []

    def subscribe(self, callback: ToastCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, toast: Toast) -> None:
        self.history.append(toast)
        for callback in list(self._subscribers):
            try:
                callback(toast)
            except Exception as e:
                logger.error(f"Toast subscriber failed: {e}")

    def info(self, title: str, description: str = "") -> None:
        self.notify(Toast(title, description, VARIANT_DEFAULT))

    def error(self, title: str, description: str = "") -> None:
        self.notify(Toast(title, description, VARIANT_DESTRUCTIVE))

    def warning(self, title: str, description: str = "") -> None:
        self.notify(Toast(title, description, VARIANT_WARNING))
