"""
Integration tests for the HTTP endpoints.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.domain.blocked_contact import BlockedContactResponse
from app.domain.scheduled_message import DispatchSummary, MessageStatus, ScheduledMessageResponse
from app.infrastructure.database import get_session
from app.main import app
from app.usecases.dispatch_service import BatchFetchError


@pytest.fixture
def client():
    """Create a test client with the database session stubbed out."""
    async def fake_session():
        yield MagicMock()

    app.dependency_overrides[get_session] = fake_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def queued_message() -> ScheduledMessageResponse:
    return ScheduledMessageResponse(
        id="msg-1",
        owner_id="owner-1",
        lead_id="lead-1",
        trigger_id="trigger-1",
        recipient="+34 600 000 000",
        body="Hola Ana",
        channel_name="default",
        status=MessageStatus.PENDING,
        retry_count=0,
        scheduled_for=datetime(2026, 1, 1, 9, 0),
        error_message=None,
        sent_at=None,
        last_retry_at=None,
    )


class TestDispatchEndpoint:
    """Tests for the dispatch job trigger."""

    def test_preflight(self, client):
        response = client.options("/functions/process-scheduled-messages")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "content-type" in response.headers["access-control-allow-headers"]

    @patch("app.api.dispatch.process_scheduled_messages", new_callable=AsyncMock)
    def test_returns_summary(self, mock_process, client):
        mock_process.return_value = DispatchSummary(total=10, sent=5, failed=0, skipped=2, retrying=3)

        response = client.post("/functions/process-scheduled-messages")

        assert response.status_code == 200
        assert response.json() == {"total": 10, "sent": 5, "failed": 0, "skipped": 2, "retrying": 3}
        mock_process.assert_awaited_once()

    @patch("app.api.dispatch.process_scheduled_messages", new_callable=AsyncMock)
    def test_fatal_error_returns_500(self, mock_process, client):
        mock_process.side_effect = BatchFetchError("Failed to fetch pending messages")

        response = client.post("/functions/process-scheduled-messages")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch pending messages"}


class TestQueueEndpoints:
    """Tests for scheduling and block-list endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_schedule_message(self, client, queued_message):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.schedule_message = AsyncMock(return_value=queued_message)

            response = client.post("/messages", json={
                "owner_id": "owner-1",
                "lead_name": "Ana",
                "recipient": "+34 600 000 000",
                "body": "Hola {{nombre}}",
                "delay_hours": 1,
            })

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        request = mock_service.return_value.schedule_message.call_args.args[0]
        assert request.delay_hours == 1

    def test_schedule_message_without_phone(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.schedule_message = AsyncMock(
                side_effect=ValueError("Lead Ana has no phone number")
            )

            response = client.post("/messages", json={"owner_id": "owner-1", "body": "Hi"})

        assert response.status_code == 400
        assert "no phone number" in response.json()["detail"]

    def test_schedule_message_without_channel(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.schedule_message = AsyncMock(
                side_effect=ValueError("Owner owner-1 has no connected WhatsApp channel")
            )

            response = client.post("/messages", json={
                "owner_id": "owner-1",
                "recipient": "15551234567",
                "body": "Hi",
            })

        assert response.status_code == 400
        assert response.json()["detail"] == "Owner owner-1 has no connected WhatsApp channel"
        request = mock_service.return_value.schedule_message.call_args.args[0]
        assert request.channel_name is None

    def test_schedule_message_validation(self, client):
        response = client.post("/messages", json={"owner_id": "owner-1", "body": ""})

        assert response.status_code == 422

    def test_get_missing_message(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.get_message = AsyncMock(return_value=None)

            response = client.get("/messages/unknown")

        assert response.status_code == 404

    def test_block_contact(self, client):
        blocked = BlockedContactResponse(
            id="b-1",
            owner_id="owner-1",
            recipient="123",
            display_name="Ana",
            created_at=datetime(2026, 1, 1),
        )
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.block_contact = AsyncMock(return_value=blocked)

            response = client.post("/blocked-contacts", json={
                "owner_id": "owner-1",
                "recipient": "123",
                "display_name": "Ana",
            })

        assert response.status_code == 201
        assert response.json()["recipient"] == "123"

    def test_unblock_unknown_contact(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.unblock_contact = AsyncMock(return_value=False)

            response = client.delete("/blocked-contacts", params={"owner_id": "owner-1", "recipient": "123"})

        assert response.status_code == 404

    def test_unblock_contact(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.unblock_contact = AsyncMock(return_value=True)

            response = client.delete("/blocked-contacts", params={"owner_id": "owner-1", "recipient": "123"})

        assert response.status_code == 204

    def test_block_status(self, client):
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.is_blocked = AsyncMock(return_value=True)

            response = client.get("/blocked-contacts/status", params={"owner_id": "owner-1", "recipient": "123"})

        assert response.json() == {"owner_id": "owner-1", "recipient": "123", "blocked": True}

    def test_upsert_channel_hides_key(self, client):
        channel = SimpleNamespace(
            id="c-1",
            owner_id="owner-1",
            channel_name="ventas",
            session_name="ventas",
            api_key="tenant-key",
            api_url=None,
            is_active=True,
        )
        with patch("app.api.messages.SchedulingService") as mock_service:
            mock_service.return_value.upsert_channel = AsyncMock(return_value=channel)

            response = client.put("/channels", json={
                "owner_id": "owner-1",
                "channel_name": "ventas",
                "api_key": "tenant-key",
            })

        assert response.status_code == 200
        assert response.json()["session_name"] == "ventas"
        assert "api_key" not in response.json()
