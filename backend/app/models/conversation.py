"""Assistant conversation models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from backend.app.models.common import MessageRole, utcnow


class Conversation(BaseModel):
    """One conversation per document, created lazily."""

    id: str
    document_id: str
    created_at: datetime = Field(default_factory=utcnow)


class Message(BaseModel):
    """Conversation message. Immutable once stored."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=utcnow)
