"""
Scheduling service: feeds the dispatch queue and manages bot opt-outs.
"""

import logging
import re
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.blocked_contact import BlockedContact, BlockedContactCreate
from app.domain.channel import ChannelConfig, ChannelConfigCreate
from app.domain.scheduled_message import MessageScheduleRequest, MessageStatus, ScheduledMessage
from app.utils.time import send_time_after

logger = logging.getLogger(__name__)

# Placeholders supported in trigger templates (Spanish and English spellings)
NAME_PLACEHOLDER = re.compile(r"\{\{(?:nombre|name)\}\}")
PHONE_PLACEHOLDER = re.compile(r"\{\{(?:telefono|phone)\}\}")


def personalize_message(template: str, lead_name: str, lead_phone: str) -> str:
    """
    Fill lead placeholders in a message template.

    Args:
        template: Message text with {{name}}/{{nombre}} and {{phone}}/{{telefono}}
        lead_name: Lead display name
        lead_phone: Lead phone number

    Returns:
        Personalized message text
    """
    text = NAME_PLACEHOLDER.sub(lambda _: lead_name, template)
    return PHONE_PLACEHOLDER.sub(lambda _: lead_phone, text)


class SchedulingService:
    """Service class for queue writes, block-list and channel operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def schedule_message(self, request: MessageScheduleRequest) -> ScheduledMessage:
        """
        Queue a message for a lead, due after the trigger's delay.

        Raises:
            ValueError: If the lead has no phone number or the owner has no
                active WhatsApp channel
        """
        recipient = (request.recipient or "").strip()
        if not recipient:
            raise ValueError(f"Lead {request.lead_name or request.lead_id} has no phone number")

        channel = await self.find_active_channel(request.owner_id, request.channel_name)
        if channel is None:
            raise ValueError(f"Owner {request.owner_id} has no connected WhatsApp channel")

        message = ScheduledMessage(
            id=str(uuid4()),
            owner_id=request.owner_id,
            lead_id=request.lead_id,
            trigger_id=request.trigger_id,
            recipient=recipient,
            body=personalize_message(request.body, request.lead_name, recipient),
            channel_name=channel.channel_name,
            status=MessageStatus.PENDING,
            retry_count=0,
            scheduled_for=send_time_after(request.delay_hours),
        )

        self.session.add(message)
        await self.session.commit()

        logger.info(f"Scheduled message {message.id} for {recipient} at {message.scheduled_for.isoformat()}")
        return message

    async def find_active_channel(self, owner_id: str, channel_name: Optional[str] = None) -> Optional[ChannelConfig]:
        """Return the named active channel, or the owner's earliest active one."""
        query = select(ChannelConfig).where(
            ChannelConfig.owner_id == owner_id,
            ChannelConfig.is_active.is_(True),
        )
        if channel_name:
            query = query.where(ChannelConfig.channel_name == channel_name)

        result = await self.session.execute(query.order_by(ChannelConfig.created_at).limit(1))
        return result.scalar_one_or_none()

    async def get_message(self, message_id: str) -> Optional[ScheduledMessage]:
        result = await self.session.execute(
            select(ScheduledMessage).where(ScheduledMessage.id == message_id)
        )
        return result.scalar_one_or_none()

    async def find_blocked_contact(self, owner_id: str, recipient: str) -> Optional[BlockedContact]:
        result = await self.session.execute(
            select(BlockedContact).where(
                BlockedContact.owner_id == owner_id,
                BlockedContact.recipient == recipient,
            )
        )
        return result.scalar_one_or_none()

    async def is_blocked(self, owner_id: str, recipient: str) -> bool:
        return await self.find_blocked_contact(owner_id, recipient) is not None

    async def block_contact(self, request: BlockedContactCreate) -> BlockedContact:
        """Stop the bot from messaging a contact. Blocking twice is a no-op."""
        existing = await self.find_blocked_contact(request.owner_id, request.recipient)
        if existing:
            return existing

        contact = BlockedContact(
            id=str(uuid4()),
            owner_id=request.owner_id,
            recipient=request.recipient,
            display_name=request.display_name,
        )
        self.session.add(contact)
        await self.session.commit()

        logger.info(f"Blocked bot for {request.recipient} (owner {request.owner_id})")
        return contact

    async def unblock_contact(self, owner_id: str, recipient: str) -> bool:
        """
        Let the bot message a contact again.

        Returns:
            True if a block was removed
        """
        result = await self.session.execute(
            delete(BlockedContact).where(
                BlockedContact.owner_id == owner_id,
                BlockedContact.recipient == recipient,
            )
        )
        await self.session.commit()

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Unblocked bot for {recipient} (owner {owner_id})")
        return removed

    async def upsert_channel(self, request: ChannelConfigCreate) -> ChannelConfig:
        """Create or replace the send credential for a tenant's channel."""
        result = await self.session.execute(
            select(ChannelConfig).where(
                ChannelConfig.owner_id == request.owner_id,
                ChannelConfig.channel_name == request.channel_name,
            )
        )
        channel = result.scalar_one_or_none()

        if channel is None:
            channel = ChannelConfig(
                id=str(uuid4()),
                owner_id=request.owner_id,
                channel_name=request.channel_name,
            )
            self.session.add(channel)

        channel.session_name = request.session_name or request.channel_name
        channel.api_key = request.api_key
        channel.api_url = request.api_url
        channel.is_active = request.is_active

        await self.session.commit()

        logger.info(f"Saved channel {request.channel_name} for owner {request.owner_id}")
        return channel
