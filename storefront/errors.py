"""
Exception taxonomy for the storefront client.

The REST client and the socket layer raise these; CartStore and
LiveChatSession catch them at their boundary and turn them into toasts.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for every error raised by this package."""


class BackendError(StorefrontError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message or 'no message'}")


class UnauthorizedError(BackendError):
    """401 from the backend: the session is missing or expired."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(401, message)


class BackendUnavailable(StorefrontError):
    """The request never got an HTTP answer (DNS, refused, timeout...)."""


class ChannelError(StorefrontError):
    """Base class for realtime socket failures."""


class ChannelNotConnected(ChannelError):
    """A send was attempted while the socket is not open."""


class TransportClosed(ChannelError):
    """The socket closed while we were reading from it."""


class StorageError(StorefrontError):
    """Durable client storage could not be read or written."""
