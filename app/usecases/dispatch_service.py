"""
Dispatch service: delivers due scheduled messages through the WhatsApp API.

One run claims a batch of due messages, then handles them one at a time:
block-list check, chat id normalization, send, and the resulting state
transition. Failures are rescheduled with a fixed delay until the retry
limit is reached, after which the message is marked failed.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.config.settings import Settings, get_settings
from app.domain.blocked_contact import BlockedContact
from app.domain.channel import ChannelConfig, ChannelCredential
from app.domain.scheduled_message import (
    DispatchSummary,
    MessageStatus,
    ScheduledMessage,
    ScheduledMessageResponse,
)
from app.infrastructure.database import DatabaseSession
from app.infrastructure.whatsapp_api import WhatsAppClient, default_credential, open_whatsapp_client
from app.utils.phone import normalize_chat_id
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50
BLOCKED_REASON = "Contact blocked from bot"


class BatchFetchError(Exception):
    """Raised when the batch of due messages cannot be read at all."""


class DispatchService:
    """Service class for delivering queued messages."""

    def __init__(
        self,
        session: AsyncSession,
        client: WhatsAppClient,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.client = client
        self.settings = settings or get_settings()

    @property
    def batch_size(self) -> int:
        return max(0, min(self.settings.batch_size, MAX_BATCH_SIZE))

    async def run(self, now: Optional[datetime] = None) -> DispatchSummary:
        """
        Process one batch of due messages.

        Args:
            now: Reference time for selecting due messages (defaults to now in UTC)

        Returns:
            Counts of sent, failed, skipped and still-retrying messages

        Raises:
            BatchFetchError: If the batch could not be claimed
        """
        token = str(uuid4())

        try:
            messages = await self.claim_due_messages(token, now or utc_now())
        except Exception as e:
            logger.exception(f"Error fetching pending messages: {e}")
            raise BatchFetchError("Failed to fetch pending messages") from e

        summary = DispatchSummary(total=len(messages))

        if not messages:
            logger.info("No pending messages to process")
            return summary

        logger.info(f"Found {len(messages)} pending messages to process")

        for message in messages:
            try:
                outcome = await self.process_message(message, token)
            except Exception as e:
                # State write failed; the lease expires and the row is requeued.
                logger.exception(f"Could not record outcome for message {message.id}: {e}")
                await self.session.rollback()
                continue

            if outcome == MessageStatus.SENT:
                summary.sent += 1
            elif outcome == MessageStatus.FAILED:
                summary.failed += 1
            elif outcome == MessageStatus.SKIPPED:
                summary.skipped += 1

        summary.retrying = summary.total - summary.sent - summary.failed - summary.skipped
        logger.info(f"Processing complete: {summary.model_dump()}")
        return summary

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def claim_due_messages(self, token: str, now: datetime) -> List[ScheduledMessageResponse]:
        """
        Lease up to one batch of due pending messages to this run.

        Expired leases from crashed runs are requeued first. The claim is a
        conditional update on status, so concurrent runs never receive the
        same row. Rows are returned as detached snapshots.
        """
        try:
            await self.session.execute(
                update(ScheduledMessage)
                .where(
                    ScheduledMessage.status == MessageStatus.PROCESSING,
                    ScheduledMessage.claimed_until < now,
                )
                .values(status=MessageStatus.PENDING, claim_token=None, claimed_until=None)
                .execution_options(synchronize_session=False)
            )

            result = await self.session.execute(
                select(ScheduledMessage.id)
                .where(
                    ScheduledMessage.status == MessageStatus.PENDING,
                    ScheduledMessage.scheduled_for <= now,
                )
                .order_by(ScheduledMessage.scheduled_for)
                .limit(self.batch_size)
            )
            due_ids = list(result.scalars().all())

            if due_ids:
                await self.session.execute(
                    update(ScheduledMessage)
                    .where(
                        ScheduledMessage.id.in_(due_ids),
                        ScheduledMessage.status == MessageStatus.PENDING,
                    )
                    .values(
                        status=MessageStatus.PROCESSING,
                        claim_token=token,
                        claimed_until=now + timedelta(seconds=self.settings.lease_timeout_seconds),
                    )
                    .execution_options(synchronize_session=False)
                )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if not due_ids:
            return []

        result = await self.session.execute(
            select(ScheduledMessage)
            .where(ScheduledMessage.claim_token == token)
            .order_by(ScheduledMessage.scheduled_for)
            .execution_options(populate_existing=True)
        )
        return [ScheduledMessageResponse.model_validate(row) for row in result.scalars().all()]

    async def process_message(self, message: ScheduledMessageResponse, token: str) -> Optional[MessageStatus]:
        """
        Deliver a single claimed message and record the outcome.

        Returns:
            The message status after this attempt (PENDING means rescheduled),
            or None when the lease was lost before sending
        """
        logger.info(f"Processing message {message.id} for {message.recipient}")

        if await self.is_blocked(message.owner_id, message.recipient):
            logger.info(f"Contact {message.recipient} is blocked, skipping")
            await self._transition(
                message,
                token,
                status=MessageStatus.SKIPPED,
                error_message=BLOCKED_REASON,
            )
            return MessageStatus.SKIPPED

        if not await self.renew_lease(message, token):
            logger.warning(f"Lease lost for message {message.id} before sending, leaving it to its new owner")
            return None

        try:
            chat_id = normalize_chat_id(message.recipient, self.settings.chat_id_suffix)
            credential = await self.resolve_credential(message.owner_id, message.channel_name)
            result = await self.client.send_text(chat_id, message.body, credential)
        except Exception as e:
            logger.error(f"Error processing message {message.id}: {e}")
            await self.session.rollback()
            return await self.record_failure(message, token, f"Exception: {e}", str(e))

        if result.ok:
            logger.info(f"Message sent successfully to {message.recipient}")
            await self._transition(
                message,
                token,
                status=MessageStatus.SENT,
                sent_at=utc_now(),
            )
            return MessageStatus.SENT

        return await self.record_failure(message, token, result.describe(), result.short_description())

    async def record_failure(
        self,
        message: ScheduledMessageResponse,
        token: str,
        detail: str,
        last_error: Optional[str] = None,
    ) -> MessageStatus:
        """
        Apply the retry policy after a failed attempt.

        Below the retry limit the message goes back to pending with a fixed
        delay; at the limit it is marked failed for good.

        Args:
            detail: Diagnostic stored on a rescheduled message
            last_error: Short form quoted in the terminal diagnostic (defaults to detail)
        """
        retry_limit = self.settings.retry_limit
        current_retry_count = message.retry_count or 0
        now = utc_now()

        if current_retry_count < retry_limit:
            next_retry = now + timedelta(minutes=self.settings.retry_delay_minutes)
            logger.info(
                f"Retry {current_retry_count + 1}/{retry_limit} for message {message.id}, "
                f"rescheduling for {next_retry.isoformat()}"
            )
            await self._transition(
                message,
                token,
                status=MessageStatus.PENDING,
                retry_count=current_retry_count + 1,
                last_retry_at=now,
                scheduled_for=next_retry,
                error_message=detail,
            )
            return MessageStatus.PENDING

        logger.warning(f"Max retries reached for message {message.id}")
        await self._transition(
            message,
            token,
            status=MessageStatus.FAILED,
            error_message=f"Failed after {retry_limit} retries. Last error: {last_error or detail}",
        )
        return MessageStatus.FAILED

    async def is_blocked(self, owner_id: str, recipient: str) -> bool:
        """Check whether the owner has blocked the bot for this recipient."""
        result = await self.session.execute(
            select(BlockedContact.id)
            .where(
                BlockedContact.owner_id == owner_id,
                BlockedContact.recipient == recipient,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def resolve_credential(self, owner_id: str, channel_name: str) -> ChannelCredential:
        """Find the send credential for a tenant's channel, or fall back to the default."""
        result = await self.session.execute(
            select(ChannelConfig).where(
                ChannelConfig.owner_id == owner_id,
                ChannelConfig.channel_name == channel_name,
                ChannelConfig.is_active.is_(True),
            )
        )
        channel = result.scalar_one_or_none()

        if channel is None:
            logger.warning(
                f"No channel configured for owner {owner_id} / {channel_name}, using default credential"
            )
            return default_credential(self.settings)

        return ChannelCredential(
            api_url=channel.api_url or self.settings.whatsapp_api_url,
            api_key=channel.api_key,
            session=channel.session_name,
        )

    async def renew_lease(self, message: ScheduledMessageResponse, token: str) -> bool:
        """
        Extend this run's lease on a message right before it is sent.

        Fails when another run has requeued or reclaimed the row, in which
        case the message must not be sent from here.
        """
        result = await self.session.execute(
            update(ScheduledMessage)
            .where(
                ScheduledMessage.id == message.id,
                ScheduledMessage.claim_token == token,
                ScheduledMessage.status == MessageStatus.PROCESSING,
            )
            .values(claimed_until=utc_now() + timedelta(seconds=self.settings.lease_timeout_seconds))
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def _transition(self, message: ScheduledMessageResponse, token: str, **values) -> bool:
        """Write a state change if this run still holds the message's lease."""
        values.setdefault("claim_token", None)
        values.setdefault("claimed_until", None)
        values["updated_at"] = utc_now()

        result = await self.session.execute(
            update(ScheduledMessage)
            .where(
                ScheduledMessage.id == message.id,
                ScheduledMessage.claim_token == token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        if result.rowcount == 0:
            logger.warning(f"Lease lost for message {message.id}, outcome not recorded")
            return False
        return True


async def process_scheduled_messages() -> DispatchSummary:
    """
    Run one dispatch pass with its own session and HTTP client.

    This is the job entry point shared by the HTTP trigger and the scheduler.
    """
    logger.info("Starting process-scheduled-messages run")

    async with DatabaseSession() as session:
        async with open_whatsapp_client() as client:
            service = DispatchService(session, client)
            return await service.run()
