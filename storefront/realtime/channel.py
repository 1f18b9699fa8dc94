"""
Admin realtime notification channel.

Keeps one socket open per admin session and folds push events into the
live-chat badge counter; the two inbox counters are refreshed by a periodic
REST poll instead.

Connection state machine:
    disconnected -> connecting -> connected -> disconnected -> (delay) -> connecting ...

At most one reconnect timer exists at a time, and none is scheduled while a
connect attempt is in flight or after stop().
"""

import asyncio
import json
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from storefront.api.client import StorefrontClient
from storefront.errors import ChannelError, ChannelNotConnected, StorefrontError, TransportClosed
from storefront.realtime.counters import NotificationCounters
from storefront.realtime.transport import SocketConnection, SocketTransport, WebsocketsTransport
from storefront.utils.logger import get_logger

logger = get_logger("realtime.channel")

# Push events that mean "a customer is waiting for an admin"
LIVE_CHAT_ALERTS = frozenset({"new_chat", "unassigned_message"})

SUPPORT_PENDING_STATUS = "pending"
MESSAGE_NEW_STATUS = "new"

EventListener = Callable[[Dict[str, Any]], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RealtimeNotificationChannel:
    """
    Args:
        url: admin socket URL (see StorefrontConfig.websocket_url)
        transport: socket transport, defaults to the websockets adapter
        client: REST client for the inbox poll; None disables polling
        counters: shared badge counters
        reconnect_delay: fixed seconds between a disconnect and the next attempt
        poll_interval: seconds between inbox polls
    """

    def __init__(
        self,
        url: str,
        transport: Optional[SocketTransport] = None,
        client: Optional[StorefrontClient] = None,
        counters: Optional[NotificationCounters] = None,
        reconnect_delay: float = 5.0,
        poll_interval: float = 60.0,
    ):
        self.url = url
        self.transport = transport or WebsocketsTransport()
        self.client = client
        self.counters = counters or NotificationCounters()
        self.reconnect_delay = reconnect_delay
        self.poll_interval = poll_interval

        self.state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self._connection: Optional[SocketConnection] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[EventListener] = []
        self._mounted = False

    @classmethod
    def from_config(
        cls,
        config,
        client: Optional[StorefrontClient] = None,
        transport: Optional[SocketTransport] = None,
        counters: Optional[NotificationCounters] = None,
    ) -> "RealtimeNotificationChannel":
        return cls(
            config.websocket_url(),
            transport=transport,
            client=client,
            counters=counters,
            reconnect_delay=config.reconnect_delay,
            poll_interval=config.poll_interval,
        )

    async def __aenter__(self) -> "RealtimeNotificationChannel":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return (
            self.state is ConnectionState.CONNECTED
            and self._connection is not None
            and self._connection.is_open
        )

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug(f"Socket state {self.state.value} -> {state.value}")
            self.state = state

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Receive every well-formed inbound event (a dict with a "type")."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Mount: connect right away and start polling the inbox."""
        if self._mounted:
            return
        self._mounted = True
        self._connect_now()
        if self.client is not None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Unmount: close the socket and cancel every timer; nothing reconnects afterwards."""
        self._mounted = False
        tasks = [t for t in (self._reconnect_task, self._poll_task, self._connect_task) if t is not None]
        self._reconnect_task = None
        self._poll_task = None

        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close_connection(connection)

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._connect_task = None
        self._set_state(ConnectionState.DISCONNECTED)

    def _connect_in_flight(self) -> bool:
        task = self._connect_task
        return task is not None and not task.done() and task is not asyncio.current_task()

    def _connect_now(self) -> None:
        if not self._mounted or self._connect_in_flight():
            return
        self._connect_task = asyncio.create_task(self._run_connection())

    async def _run_connection(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1
        try:
            connection = await self.transport.connect(self.url)
        except ChannelError as e:
            logger.error(f"Admin notifications socket error: {e}")
            self.handle_disconnect()
            return
        except Exception as e:
            logger.exception(f"Unexpected error opening admin socket: {e}")
            self.handle_disconnect()
            return

        if not self._mounted:
            await self._close_connection(connection)
            return

        self._connection = connection
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Admin notifications socket connected")
        try:
            while True:
                raw = await connection.recv()
                self._dispatch(raw)
        except TransportClosed as e:
            logger.info(f"Admin notifications socket disconnected: {e}")
        except Exception as e:
            logger.exception(f"Admin notifications socket failed: {e}")
            await self._close_connection(connection)
        finally:
            if self._connection is connection:
                self._connection = None
        self.handle_disconnect()

    async def _close_connection(self, connection: SocketConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error closing admin socket: {e}")

    def handle_disconnect(self) -> None:
        """
        React to a socket close or error.

        Schedules a single reconnect after reconnect_delay, unless one is
        already pending, a connect attempt is running, or the channel is stopped.
        Does nothing while the current socket is still open.
        """
        if self._connection is not None and self._connection.is_open:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        if not self._mounted or self.reconnect_pending or self._connect_in_flight():
            return
        logger.info(f"Reconnecting admin socket in {self.reconnect_delay}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay())

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        if not self.is_connected:
            self._connect_now()

    def reconnect(self) -> None:
        """Connect now instead of waiting for the reconnect timer."""
        if not self._mounted:
            return
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        if not self.is_connected:
            self._connect_now()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _dispatch(self, raw: str) -> None:
        try:
            event = json.loads(raw)
        except ValueError as e:
            logger.error(f"Error parsing socket message: {e}")
            return
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.warning(f"Discarding socket message without a type: {raw[:200]!r}")
            return

        event_type = event["type"]
        if event_type in LIVE_CHAT_ALERTS:
            self.counters.increment_live_chat_count(1)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Socket listener failed on {event_type}: {e}")

    async def send(self, payload: Dict[str, Any]) -> None:
        """Send one event now; raises ChannelNotConnected rather than queueing."""
        connection = self._connection
        if connection is None or not connection.is_open:
            raise ChannelNotConnected("Not connected to chat server")
        await connection.send(json.dumps(payload))

    # ------------------------------------------------------------------
    # Inbox poll
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> None:
        """Replace the two inbox counters; a failed fetch keeps the old value."""
        if self.client is None:
            return

        try:
            requests = await self.client.list_support_requests()
        except StorefrontError as e:
            logger.error(f"Error fetching support requests count: {e}")
        else:
            self.counters.set_pending_support_requests(
                sum(1 for r in requests if r.status == SUPPORT_PENDING_STATUS)
            )

        try:
            messages = await self.client.list_contact_messages()
        except StorefrontError as e:
            logger.error(f"Error fetching contact messages count: {e}")
        else:
            self.counters.set_unread_messages(
                sum(1 for m in messages if m.status == MESSAGE_NEW_STATUS)
            )
