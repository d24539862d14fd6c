"""
Scheduled message domain model and schemas.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, String, DateTime, Integer, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import declarative_base
from pydantic import BaseModel, Field

Base = declarative_base()


class MessageStatus(str, Enum):
    """Delivery status of a queued message."""
    PENDING = "pending"
    PROCESSING = "processing"  # leased by a running dispatch job
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScheduledMessage(Base):
    """SQLAlchemy model for the outbound message queue."""

    __tablename__ = "automated_message_logs"
    __table_args__ = (
        Index("ix_automated_message_logs_due", "status", "scheduled_for"),
        Index("ix_automated_message_logs_claim", "claim_token"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), nullable=False)
    lead_id = Column(String(36), nullable=True)
    trigger_id = Column(String(36), nullable=True)
    recipient = Column(String(64), nullable=False)
    body = Column(Text, nullable=False)
    channel_name = Column(String(100), nullable=False, default="default")
    # Stored as the lowercase values so rows written by other clients match
    status = Column(
        SQLEnum(
            MessageStatus,
            values_callable=lambda statuses: [status.value for status in statuses],
            native_enum=False,
            length=20,
        ),
        nullable=False,
        default=MessageStatus.PENDING,
    )
    retry_count = Column(Integer, nullable=False, default=0)
    scheduled_for = Column(DateTime, nullable=False, default=datetime.utcnow)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    last_retry_at = Column(DateTime, nullable=True)
    claim_token = Column(String(36), nullable=True)
    claimed_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<ScheduledMessage(id={self.id}, recipient={self.recipient}, "
            f"status={self.status}, retry_count={self.retry_count})>"
        )


# Pydantic Schemas

class MessageScheduleRequest(BaseModel):
    """Schema for scheduling a message from a lead trigger."""
    owner_id: str = Field(..., min_length=1, max_length=36)
    lead_id: Optional[str] = Field(None, max_length=36)
    trigger_id: Optional[str] = Field(None, max_length=36)
    lead_name: str = ""
    recipient: Optional[str] = Field(None, max_length=64)
    body: str = Field(..., min_length=1)
    channel_name: Optional[str] = Field(None, min_length=1, max_length=100)
    delay_hours: Optional[float] = Field(None, ge=0)


class ScheduledMessageResponse(BaseModel):
    """Schema for a queued message as seen by operators."""
    id: str
    owner_id: str
    lead_id: Optional[str]
    trigger_id: Optional[str]
    recipient: str
    body: str
    channel_name: str
    status: MessageStatus
    retry_count: int
    scheduled_for: datetime
    error_message: Optional[str]
    sent_at: Optional[datetime]
    last_retry_at: Optional[datetime]

    class Config:
        from_attributes = True


class DispatchSummary(BaseModel):
    """Result of one dispatch job invocation."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    retrying: int = 0
