"""
WhatsApp HTTP API integration for sending text messages.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from pydantic import BaseModel

from app.config.settings import Settings, get_settings
from app.domain.channel import ChannelCredential

logger = logging.getLogger(__name__)
settings = get_settings()


class SendResult(BaseModel):
    """Outcome of a single send-text call."""
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def describe(self) -> str:
        return f"API Error {self.status_code}: {self.body}"

    def short_description(self) -> str:
        """Form used in the terminal failure diagnostic."""
        return f"{self.status_code} - {self.body}"


def build_send_payload(chat_id: str, text: str, session: str) -> dict:
    """
    Build the JSON body expected by the sendText endpoint.

    Args:
        chat_id: Canonical recipient chat id
        text: Message text
        session: Outbound session name

    Returns:
        Request payload
    """
    return {
        "chatId": chat_id,
        "text": text,
        "session": session,
        "linkPreview": True,
        "linkPreviewHighQuality": False,
        "reply_to": None,
    }


def default_credential(config: Optional[Settings] = None) -> ChannelCredential:
    """Process-wide credential used when a tenant has no channel configured."""
    config = config or settings
    return ChannelCredential(
        api_url=config.whatsapp_api_url,
        api_key=config.whatsapp_api_key,
        session=config.whatsapp_default_session,
    )


class WhatsAppClient:
    """Thin async client around the sendText endpoint."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    async def send_text(self, chat_id: str, text: str, credential: ChannelCredential) -> SendResult:
        """
        Send a text message. Exactly one HTTP request is made.

        Transport errors (timeouts, refused connections) propagate as
        httpx.HTTPError; HTTP error statuses are returned, not raised.
        """
        payload = build_send_payload(chat_id, text, credential.session)
        logger.info(f"Sending to WhatsApp API: chatId={chat_id} session={credential.session}")

        response = await self.http_client.post(
            credential.api_url,
            json=payload,
            headers={
                "X-Api-Key": credential.api_key,
                "Content-Type": "application/json",
            },
        )

        result = SendResult(status_code=response.status_code, body=response.text)
        logger.info(f"WhatsApp API response ({result.status_code}): {result.body}")
        return result


@asynccontextmanager
async def open_whatsapp_client(timeout: Optional[float] = None) -> AsyncIterator[WhatsAppClient]:
    """Open a client for the duration of one dispatch run."""
    async with httpx.AsyncClient(timeout=timeout or settings.http_timeout_seconds) as http_client:
        yield WhatsAppClient(http_client)
