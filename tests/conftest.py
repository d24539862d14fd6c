"""
Pytest configuration and fixtures for the Scheduled Message Dispatcher tests.
"""

from datetime import timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import Settings
from app.domain.scheduled_message import Base, MessageStatus, ScheduledMessage
from app.domain.blocked_contact import BlockedContact  # noqa: F401 - needed for table creation
from app.domain.channel import ChannelConfig  # noqa: F401 - needed for table creation
from app.infrastructure.whatsapp_api import SendResult
from app.utils.time import utc_now


# Use a separate in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OWNER_ID = "owner-1"


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def dispatch_settings() -> Settings:
    """Settings with the production dispatch policy and a test credential."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        whatsapp_api_url="https://gateway.test/api/sendText",
        whatsapp_api_key="default-key",
        whatsapp_default_session="default",
        chat_id_suffix="@c.us",
        batch_size=50,
        retry_limit=3,
        retry_delay_minutes=5,
        lease_timeout_seconds=300,
        scheduler_enabled=False,
    )


@pytest.fixture
def mock_whatsapp_client():
    """WhatsApp client whose sends all succeed."""
    client = MagicMock()
    client.send_text = AsyncMock(return_value=SendResult(status_code=201, body='{"id": "true_1@c.us"}'))
    return client


@pytest.fixture
def make_message(test_session):
    """Factory that persists a due pending message."""

    async def _make(
        recipient: str = "+1 (555) 123-4567",
        retry_count: int = 0,
        minutes_ago: int = 1,
        status: MessageStatus = MessageStatus.PENDING,
        owner_id: str = OWNER_ID,
        channel_name: str = "default",
        **extra,
    ) -> ScheduledMessage:
        message = ScheduledMessage(
            id=str(uuid4()),
            owner_id=owner_id,
            recipient=recipient,
            body="Hola, gracias por tu interés",
            channel_name=channel_name,
            status=status,
            retry_count=retry_count,
            scheduled_for=utc_now() - timedelta(minutes=minutes_ago),
            **extra,
        )
        test_session.add(message)
        await test_session.commit()
        return message

    return _make
