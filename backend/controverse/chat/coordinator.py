"""Session and message-state coordinator for the shared chat room.

The coordinator receives connection lifecycle events and named client events
from the WebSocket layer, applies them to the participant registry, rate
limiter and message history, and emits the resulting events through an
EventTransport.

Event flow:
    - connect: user-info + message-history to the newcomer, user-count to
      everyone, user-joined to everyone else
    - disconnect: user-left to the remaining connections, user-count to all
    - user-message: rate limit, filter, store, relay to everyone but the sender
    - typing-start / typing-stop: relay state flips to everyone but the sender
    - change-nickname: confirm to the sender, notify everyone else
    - delete-message / edit-message: author-only, announced to everyone
    - request-user-list / ping: answered to the requester only

Error Handling:
    Events for connections that are no longer registered and payloads that
    fail validation are ignored without notifying anyone. The only failure
    reported to a client is ``rate-limited``. Unexpected exceptions propagate
    to the caller, which isolates them per event.

Concurrency:
    Every state change is a single call on the registry or history, each of
    which holds its own lock, and outbound emission happens after the change.
    Connect and disconnect additionally hold an asyncio.Lock through their
    emissions, so the last user-count every client sees is the current one.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from controverse.config import ChatSettings
from .history import HistoryStore
from .profanity import ProfanityFilter
from .rate_limiter import RateLimiter
from .registry import ParticipantRegistry
from .schemas import (
    ChangeNicknameInput,
    ChatMessage,
    DeleteMessageInput,
    EditMessageInput,
    UserMessageInput,
    utc_now_iso,
)
from .transport import EventTransport

logger = logging.getLogger(__name__)

RATE_LIMIT_NOTICE = "Please slow down your messaging rate."

# =============================================================================
# Event names
# =============================================================================

# Inbound
EV_USER_MESSAGE = "user-message"
EV_TYPING_START = "typing-start"
EV_TYPING_STOP = "typing-stop"
EV_CHANGE_NICKNAME = "change-nickname"
EV_DELETE_MESSAGE = "delete-message"
EV_EDIT_MESSAGE = "edit-message"
EV_REQUEST_USER_LIST = "request-user-list"
EV_PING = "ping"

# Outbound
EV_USER_INFO = "user-info"
EV_MESSAGE_HISTORY = "message-history"
EV_USER_COUNT = "user-count"
EV_USER_JOINED = "user-joined"
EV_USER_LEFT = "user-left"
EV_MESSAGE = "message"
EV_RATE_LIMITED = "rate-limited"
EV_USER_TYPING_START = "user-typing-start"
EV_USER_TYPING_STOP = "user-typing-stop"
EV_NICKNAME_CHANGED = "nickname-changed"
EV_NICKNAME_UPDATE = "nickname-update"
EV_MESSAGE_DELETED = "message-deleted"
EV_MESSAGE_EDITED = "message-edited"
EV_USER_LIST = "user-list"
EV_PONG = "pong"


class BroadcastCoordinator:
    """Owns the chat room state and turns client events into broadcasts.

    One coordinator holds one room's worth of state. Collaborators default
    to fresh instances configured from ``settings`` but can be injected,
    which is how tests substitute a manual decay scheduler.
    """

    def __init__(
        self,
        transport: EventTransport,
        settings: Optional[ChatSettings] = None,
        *,
        registry: Optional[ParticipantRegistry] = None,
        history: Optional[HistoryStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        profanity: Optional[ProfanityFilter] = None,
    ) -> None:
        self.settings = settings or ChatSettings()
        self.transport = transport
        self.registry = registry or ParticipantRegistry()
        self.history = history or HistoryStore(self.settings.max_history)
        self.rate_limiter = rate_limiter or RateLimiter(
            self.registry,
            threshold=self.settings.rate_limit_threshold,
            decay_seconds=self.settings.rate_limit_decay_seconds,
        )
        self.profanity = profanity or ProfanityFilter(self.settings.profanity_words)
        # Held across a presence change and its emissions so user-count
        # broadcasts reach clients in registry order
        self._presence_lock = asyncio.Lock()

        self._handlers: Dict[str, Callable[[str, Any], Awaitable[None]]] = {
            EV_USER_MESSAGE: self.handle_message,
            EV_TYPING_START: lambda cid, _data: self.handle_typing(cid, True),
            EV_TYPING_STOP: lambda cid, _data: self.handle_typing(cid, False),
            EV_CHANGE_NICKNAME: self.handle_change_nickname,
            EV_DELETE_MESSAGE: self.handle_delete_message,
            EV_EDIT_MESSAGE: self.handle_edit_message,
            EV_REQUEST_USER_LIST: lambda cid, _data: self.handle_request_user_list(cid),
        }

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def handle_connect(self, connection_id: str) -> None:
        async with self._presence_lock:
            participant = self.registry.add(connection_id)
            history = [m.to_wire() for m in self.history.snapshot()]
            count = self.registry.count()
            logger.info(
                f"[Coordinator] {participant.publicId} ({participant.nickname}) joined; "
                f"{count} connected"
            )

            await self.transport.emit(connection_id, EV_USER_INFO, {
                "id": participant.publicId,
                "color": participant.color,
                "nickname": participant.nickname,
            })
            await self.transport.emit(connection_id, EV_MESSAGE_HISTORY, history)
            await self.transport.broadcast(EV_USER_COUNT, count)
            await self.transport.broadcast(
                EV_USER_JOINED,
                {"id": participant.publicId, "nickname": participant.nickname},
                exclude=connection_id,
            )

    async def handle_disconnect(self, connection_id: str) -> None:
        async with self._presence_lock:
            participant = self.registry.remove(connection_id)
            if participant is None:
                return
            count = self.registry.count()
            logger.info(
                f"[Coordinator] {participant.publicId} ({participant.nickname}) left; "
                f"{count} connected"
            )

            await self.transport.broadcast(
                EV_USER_LEFT,
                {"id": participant.publicId, "nickname": participant.nickname},
                exclude=connection_id,
            )
            await self.transport.broadcast(EV_USER_COUNT, count)

    # =========================================================================
    # Inbound events
    # =========================================================================

    async def dispatch(
        self, connection_id: str, event: str, data: Any = None, ack: Any = None
    ) -> None:
        """Route a named client event to its handler.

        Unknown events and payloads that fail validation are logged and
        dropped. Any other exception propagates.
        """
        if event == EV_PING:
            await self.handle_ping(connection_id, ack)
            return

        handler = self._handlers.get(event)
        if handler is None:
            logger.debug("[Coordinator] Ignoring unknown event %r from %s", event, connection_id)
            return

        try:
            await handler(connection_id, data)
        except ValidationError as exc:
            logger.debug(
                "[Coordinator] Rejected %s payload from %s: %s",
                event, connection_id, exc.errors(include_url=False),
            )

    async def handle_message(self, connection_id: str, data: Any) -> None:
        participant = self.registry.get(connection_id)
        if participant is None:
            return

        payload = UserMessageInput.model_validate(data)

        allowed = self.rate_limiter.record_attempt(participant)
        self.rate_limiter.schedule_decay(participant)
        if not allowed:
            logger.info(f"[Coordinator] Rate limited {participant.publicId}")
            await self.transport.emit(connection_id, EV_RATE_LIMITED, RATE_LIMIT_NOTICE)
            return

        fields = payload.model_dump()
        fields.update(
            id=payload.id if payload.id is not None else str(uuid.uuid4()),
            text=self.profanity.filter(payload.text),
            userId=participant.publicId,
            nickname=participant.nickname,
            color=participant.color,
            timestamp=utc_now_iso(),
            edited=False,
            editedAt=None,
        )
        message = ChatMessage(**fields)

        evicted = self.history.append(message)
        if evicted:
            logger.debug("[Coordinator] Evicted %d message(s) from history", len(evicted))

        await self.transport.broadcast(EV_MESSAGE, message.to_wire(), exclude=connection_id)

    async def handle_typing(self, connection_id: str, is_typing: bool) -> None:
        participant = self.registry.set_typing(connection_id, is_typing)
        if participant is None:
            return

        event = EV_USER_TYPING_START if is_typing else EV_USER_TYPING_STOP
        await self.transport.broadcast(
            event,
            {"userId": participant.publicId, "nickname": participant.nickname},
            exclude=connection_id,
        )

    async def handle_change_nickname(self, connection_id: str, data: Any) -> None:
        participant = self.registry.get(connection_id)
        if participant is None:
            return

        # Clients send either the bare string or {newNickname: ...}
        if isinstance(data, str):
            requested = data
        else:
            requested = ChangeNicknameInput.model_validate(data).newNickname

        if not requested or len(requested) > self.settings.nickname_max_length:
            logger.debug(f"[Coordinator] Rejected nickname of length {len(requested)}")
            return
        trimmed = requested.strip()
        if not trimmed:
            return

        nickname = self.profanity.filter(trimmed)
        old_nickname = self.registry.set_nickname(connection_id, nickname)
        if old_nickname is None:
            return

        logger.info(f"[Coordinator] {participant.publicId} renamed {old_nickname!r} -> {nickname!r}")
        await self.transport.emit(connection_id, EV_NICKNAME_CHANGED, nickname)
        await self.transport.broadcast(
            EV_NICKNAME_UPDATE,
            {
                "userId": participant.publicId,
                "oldNickname": old_nickname,
                "newNickname": nickname,
            },
            exclude=connection_id,
        )

    async def handle_delete_message(self, connection_id: str, data: Any) -> None:
        participant = self.registry.get(connection_id)
        if participant is None:
            return

        if isinstance(data, dict):
            message_id = DeleteMessageInput.model_validate(data).messageId
        else:
            message_id = data

        if not self.history.remove_by_id_and_author(message_id, participant.publicId):
            return

        await self.transport.broadcast(EV_MESSAGE_DELETED, message_id)

    async def handle_edit_message(self, connection_id: str, data: Any) -> None:
        participant = self.registry.get(connection_id)
        if participant is None:
            return

        payload = EditMessageInput.model_validate(data)
        edited = self.history.edit_by_id_and_author(
            payload.messageId,
            participant.publicId,
            self.profanity.filter(payload.newText),
        )
        if edited is None:
            return

        await self.transport.broadcast(EV_MESSAGE_EDITED, {
            "messageId": payload.messageId,
            "newText": edited.text,
            "edited": True,
        })

    async def handle_request_user_list(self, connection_id: str) -> None:
        users = [view.model_dump() for view in self.registry.list_snapshot()]
        await self.transport.emit(connection_id, EV_USER_LIST, users)

    async def handle_ping(self, connection_id: str, ack: Any = None) -> None:
        await self.transport.emit(connection_id, EV_PONG, {"ack": ack})

    # =========================================================================
    # Introspection
    # =========================================================================

    def stats(self) -> dict:
        """Participant count and history length for the HTTP endpoints."""
        return {
            "activeUsers": self.registry.count(),
            "totalMessages": len(self.history),
        }
