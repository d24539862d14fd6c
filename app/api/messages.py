"""
Endpoints that feed the dispatch queue: scheduling, bot block-list and channels.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.blocked_contact import BlockedContactCreate, BlockedContactResponse
from app.domain.channel import ChannelConfigCreate, ChannelConfigResponse
from app.domain.scheduled_message import MessageScheduleRequest, ScheduledMessageResponse
from app.infrastructure.database import get_session
from app.usecases.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/messages", response_model=ScheduledMessageResponse, status_code=201)
async def schedule_message(
    request: MessageScheduleRequest,
    session: AsyncSession = Depends(get_session),
):
    """Queue a triggered message for later delivery."""
    service = SchedulingService(session)
    try:
        return await service.schedule_message(request)
    except ValueError as e:
        logger.warning(f"Rejected message schedule: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/messages/{message_id}", response_model=ScheduledMessageResponse)
async def get_message(message_id: str, session: AsyncSession = Depends(get_session)):
    """Inspect a queued message's delivery status."""
    message = await SchedulingService(session).get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


@router.post("/blocked-contacts", response_model=BlockedContactResponse, status_code=201)
async def block_contact(
    request: BlockedContactCreate,
    session: AsyncSession = Depends(get_session),
):
    """Stop the bot from messaging a contact."""
    return await SchedulingService(session).block_contact(request)


@router.delete("/blocked-contacts", status_code=204)
async def unblock_contact(
    owner_id: str = Query(...),
    recipient: str = Query(...),
    session: AsyncSession = Depends(get_session),
):
    """Let the bot message a contact again."""
    removed = await SchedulingService(session).unblock_contact(owner_id, recipient)
    if not removed:
        raise HTTPException(status_code=404, detail="Contact is not blocked")
    return Response(status_code=204)


@router.get("/blocked-contacts/status")
async def block_status(
    owner_id: str = Query(...),
    recipient: str = Query(...),
    session: AsyncSession = Depends(get_session),
):
    """Check whether the bot is blocked for a contact."""
    blocked = await SchedulingService(session).is_blocked(owner_id, recipient)
    return {"owner_id": owner_id, "recipient": recipient, "blocked": blocked}


@router.put("/channels", response_model=ChannelConfigResponse)
async def upsert_channel(
    request: ChannelConfigCreate,
    session: AsyncSession = Depends(get_session),
):
    """Create or replace a tenant's outbound channel credential."""
    return await SchedulingService(session).upsert_channel(request)
