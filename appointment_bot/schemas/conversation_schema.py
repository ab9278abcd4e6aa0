"""Conversation thread and message schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    CUSTOMER = "user"
    ASSISTANT = "assistant"


class MessageType(str, Enum):
    TEXT = "text"
    AUDIO = "audio"


class Message(BaseModel):
    """A single stored turn in a conversation thread. Append-only."""

    id: Optional[int] = None
    conversation_id: int
    role: MessageRole
    content: str
    message_id: Optional[str] = None
    message_type: MessageType = MessageType.TEXT
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def from_customer(self) -> bool:
        return self.role == MessageRole.CUSTOMER


class ConversationThread(BaseModel):
    """Dialogue between one customer contact and one tenant."""

    id: Optional[int] = None
    tenant_id: int
    instance_name: str
    phone_number: str
    contact_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_message_at: datetime = Field(default_factory=_utcnow)


class InboundMessage(BaseModel):
    """What the core consumes from a messaging-channel webhook event."""

    instance_name: str
    contact_id: str
    text: str
    message_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    message_type: MessageType = MessageType.TEXT
    push_name: Optional[str] = None
