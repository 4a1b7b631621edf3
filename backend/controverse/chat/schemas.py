"""Pydantic models for chat participants, messages, and wire payloads.

Field names are camelCase because these models are serialized directly
onto the WebSocket as event payloads.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


# =============================================================================
# Participants
# =============================================================================


class Participant(BaseModel):
    """Server-side record for one live connection.

    Attributes:
        connectionId: Opaque handle assigned by the transport.
        publicId: Random id shown to other participants.
        color: CSS hsl() color, fixed at creation.
        nickname: Display name (filtered, bounded length).
        joinedAt: When the connection was registered.
        messageBurstCount: Recent message attempts, decays over time.
        isTyping: Whether the participant is currently typing.
    """
    connectionId: str
    publicId: str
    color: str
    nickname: str
    joinedAt: datetime = Field(default_factory=utc_now)
    messageBurstCount: int = 0
    isTyping: bool = False

    def view(self) -> "ParticipantView":
        return ParticipantView(
            id=self.publicId,
            nickname=self.nickname,
            color=self.color,
            isTyping=self.isTyping,
        )


class ParticipantView(BaseModel):
    """Read-only presence entry returned by ``request-user-list``."""
    model_config = ConfigDict(frozen=True)

    id: str
    nickname: str
    color: str
    isTyping: bool


# =============================================================================
# Messages
# =============================================================================


class ChatMessage(BaseModel):
    """A chat message as stored in history and broadcast to clients.

    Unknown client-supplied fields are kept and round-tripped, so clients
    can attach their own metadata to a message.
    """
    model_config = ConfigDict(extra="allow")

    id: Any = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    userId: str
    nickname: str
    color: str
    timestamp: str = Field(default_factory=utc_now_iso)
    edited: bool = False
    editedAt: Optional[str] = None

    def to_wire(self) -> dict:
        # Client fields set to null are relayed; only an unset editedAt is omitted
        exclude = {"editedAt"} if self.editedAt is None else None
        return self.model_dump(mode="json", exclude=exclude)


# =============================================================================
# Inbound payloads
# =============================================================================


class UserMessageInput(BaseModel):
    """Payload of ``user-message``. Extra fields are carried into history."""
    model_config = ConfigDict(extra="allow")

    id: Any = None
    text: StrictStr


class ChangeNicknameInput(BaseModel):
    newNickname: StrictStr


class DeleteMessageInput(BaseModel):
    messageId: Any


class EditMessageInput(BaseModel):
    messageId: Any
    newText: StrictStr


# =============================================================================
# Wire envelopes
# =============================================================================


class InboundEvent(BaseModel):
    """One frame received from a client: ``{event, data, ack}``."""
    event: StrictStr
    data: Any = None
    ack: Any = None


class OutboundEvent(BaseModel):
    """One frame sent to a client: ``{event, data}``."""
    event: str
    data: Any = None
