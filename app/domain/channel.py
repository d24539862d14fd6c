"""
Per-tenant outbound channel configuration.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, Boolean, UniqueConstraint
from pydantic import BaseModel, Field

from app.domain.scheduled_message import Base


class ChannelConfig(Base):
    """SQLAlchemy model holding the send credential for a tenant's channel."""

    __tablename__ = "whatsapp_channels"
    __table_args__ = (
        UniqueConstraint("owner_id", "channel_name", name="uq_whatsapp_channels_owner_channel"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False)
    channel_name = Column(String(100), nullable=False)
    session_name = Column(String(100), nullable=False)
    api_key = Column(String(255), nullable=False)
    api_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ChannelConfig(owner_id={self.owner_id}, channel={self.channel_name})>"


class ChannelConfigCreate(BaseModel):
    """Schema for creating or replacing a channel credential."""
    owner_id: str = Field(..., min_length=1, max_length=36)
    channel_name: str = Field(..., min_length=1, max_length=100)
    session_name: Optional[str] = Field(None, max_length=100)
    api_key: str = Field(..., min_length=1, max_length=255)
    api_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True


class ChannelConfigResponse(BaseModel):
    """Channel as returned by the API; the key is never echoed back."""
    id: str
    owner_id: str
    channel_name: str
    session_name: str
    api_url: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class ChannelCredential(BaseModel):
    """Resolved credential used for one outbound call."""
    api_url: str
    api_key: str
    session: str
