"""
Block-list model: recipients the bot must not message.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, UniqueConstraint
from pydantic import BaseModel, Field

from app.domain.scheduled_message import Base


class BlockedContact(Base):
    """SQLAlchemy model for a contact opted out of automated messages."""

    __tablename__ = "bot_blocked_contacts"
    __table_args__ = (
        UniqueConstraint("owner_id", "recipient", name="uq_bot_blocked_contacts_owner_recipient"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False)
    recipient = Column(String(64), nullable=False)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<BlockedContact(owner_id={self.owner_id}, recipient={self.recipient})>"


class BlockedContactCreate(BaseModel):
    """Schema for blocking a contact."""
    owner_id: str = Field(..., min_length=1, max_length=36)
    recipient: str = Field(..., min_length=1, max_length=64)
    display_name: Optional[str] = Field(None, max_length=255)


class BlockedContactResponse(BaseModel):
    id: str
    owner_id: str
    recipient: str
    display_name: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
