"""
Admin side of a live-chat conversation, multiplexed over the notification socket.

States: idle -> joining -> active -> idle. One conversation is active at a
time; choosing another simply stops tracking the previous one locally (the
server still considers the admin joined there).

Nothing here is optimistic except the has_admin flag and the badge
decrement on join: sent messages appear when the server echoes them back,
and a conversation leaves the list only when the server says chat_ended.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from storefront.api.models import ChatMessage, ChatSession, ParticipantInfo
from storefront.errors import ChannelError
from storefront.notify import Notifier
from storefront.realtime.channel import RealtimeNotificationChannel
from storefront.utils.logger import get_logger

logger = get_logger("realtime.live_chat")


class ChatState(str, Enum):
    IDLE = "idle"
    JOINING = "joining"
    ACTIVE = "active"


class LiveChatSession:

    def __init__(self, channel: RealtimeNotificationChannel, notifier: Optional[Notifier] = None):
        self.channel = channel
        self.counters = channel.counters
        self.notifier = notifier or Notifier()

        self.state = ChatState.IDLE
        self.sessions: List[ChatSession] = []
        self.active_chat_id: Optional[str] = None
        self.messages: List[ChatMessage] = []
        self.participant: Optional[ParticipantInfo] = None

        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "connection_established": self._on_connection_established,
            "active_sessions": self._on_active_sessions,
            "new_chat": self._on_new_chat,
            "chat_joined": self._on_chat_joined,
            "chat_message": self._on_chat_message,
            "chat_ended": self._on_chat_ended,
            "participant_disconnected": self._on_participant_disconnected,
            "error": self._on_error,
        }
        self._remove_listener = channel.add_listener(self.handle_event)

    def detach(self) -> None:
        """Stop receiving events from the channel."""
        self._remove_listener()

    def get_session(self, chat_id: str) -> Optional[ChatSession]:
        return next((s for s in self.sessions if s.chat_id == chat_id), None)

    def _update_session(self, chat_id: str, **changes: Any) -> None:
        self.sessions = [
            s.model_copy(update=changes) if s.chat_id == chat_id else s
            for s in self.sessions
        ]

    def _reset_active(self) -> None:
        self.state = ChatState.IDLE
        self.active_chat_id = None
        self.messages = []
        self.participant = None

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def handle_event(self, event: Dict[str, Any]) -> None:
        handler = self._handlers.get(event.get("type"))
        if handler is None:
            return
        try:
            handler(event)
        except (ValidationError, KeyError, TypeError) as e:
            logger.error(f"Malformed {event.get('type')} event: {e}")

    def _on_connection_established(self, event: Dict[str, Any]) -> None:
        self.notifier.info("Connected to chat server", "You can now chat with customers")

    def _on_active_sessions(self, event: Dict[str, Any]) -> None:
        self.sessions = [ChatSession.model_validate(s) for s in event.get("sessions") or []]

    def _on_new_chat(self, event: Dict[str, Any]) -> None:
        session = ChatSession.model_validate(event["session"])
        self.sessions = [session] + [s for s in self.sessions if s.chat_id != session.chat_id]
        self.notifier.info("New chat request", f"New chat from {session.user_name}")

    def _on_chat_joined(self, event: Dict[str, Any]) -> None:
        chat_id = event.get("chatId")
        if chat_id is not None and chat_id != self.active_chat_id:
            logger.debug(f"Ignoring chat_joined for inactive chat {chat_id}")
            return
        self.messages = [ChatMessage.model_validate(m) for m in event.get("history") or []]
        user_info = event.get("userInfo")
        self.participant = ParticipantInfo.model_validate(user_info) if user_info else None
        self.state = ChatState.ACTIVE

    def _on_chat_message(self, event: Dict[str, Any]) -> None:
        message = ChatMessage.model_validate(event["message"])
        if message.chat_id == self.active_chat_id:
            self.messages.append(message)

        session = self.get_session(message.chat_id)
        if session is not None:
            self._update_session(
                message.chat_id,
                last_message_time=message.timestamp,
                message_count=session.message_count + 1,
            )

    def _on_chat_ended(self, event: Dict[str, Any]) -> None:
        chat_id = event.get("chatId")
        if chat_id is None:
            # Participant copy; the admin broadcast with the chat id follows
            return
        self.sessions = [s for s in self.sessions if s.chat_id != chat_id]
        if chat_id == self.active_chat_id:
            self._reset_active()
            self.notifier.info("Chat ended", "The chat session has ended")

    def _on_participant_disconnected(self, event: Dict[str, Any]) -> None:
        if event.get("participantType") == "user" and self.active_chat_id is not None:
            name = event.get("participantName") or "The customer"
            self.notifier.warning("User disconnected", f"{name} has disconnected")

    def _on_error(self, event: Dict[str, Any]) -> None:
        self.notifier.error("Chat Error", event.get("message") or "Unknown chat error")

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    async def _send(self, payload: Dict[str, Any]) -> bool:
        try:
            await self.channel.send(payload)
        except ChannelError as e:
            logger.error(f"Cannot send {payload.get('type')}: {e}")
            self.notifier.error("Connection Error", "Not connected to chat server")
            return False
        return True

    async def join_chat(self, chat_id: str) -> bool:
        if not self.channel.is_connected:
            self.notifier.error("Connection Error", "Not connected to chat server. Trying to reconnect...")
            self.channel.reconnect()
            return False

        self.state = ChatState.JOINING
        self.active_chat_id = chat_id
        self.messages = []
        self.participant = None

        if not await self._send({"type": "join_chat", "chatId": chat_id}):
            self._reset_active()
            return False

        self._update_session(chat_id, has_admin=True)
        self.counters.decrement_live_chat_count(1)
        return True

    async def send_message(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        if self.state is not ChatState.ACTIVE or self.active_chat_id is None:
            self.notifier.error("No active chat", "Join a chat before sending messages")
            return False
        return await self._send({"type": "message", "chatId": self.active_chat_id, "content": text})

    async def end_chat(self) -> bool:
        if self.active_chat_id is None:
            return False
        return await self._send({"type": "end_chat", "chatId": self.active_chat_id})
