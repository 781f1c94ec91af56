from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
import structlog

from qr_offers.core.config import get_settings
from qr_offers.core.logging import mask_phone_number

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class OfferMessage:
    phone_number: str
    vendor_name: str
    offer_title: str
    offer_description: str
    expiry_date: datetime


@dataclass(frozen=True, slots=True)
class DeliveryReport:
    target_count: int
    sent_count: int

    @property
    def failed_count(self) -> int:
        return self.target_count - self.sent_count


def build_message_text(message: OfferMessage) -> str:
    return (
        f"{message.vendor_name}: {message.offer_title}\n"
        f"{message.offer_description}\n"
        f"Valid until {message.expiry_date:%d %b %Y}."
    )


def _build_body(message: OfferMessage) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "to": message.phone_number,
        "type": "text",
        "text": {"body": build_message_text(message)},
    }


async def _post_message(
    *,
    client: httpx.AsyncClient,
    url: str,
    message: OfferMessage,
    semaphore: asyncio.Semaphore,
) -> bool:
    async with semaphore:
        try:
            response = await client.post(url, json=_build_body(message))
            response.raise_for_status()
            return True
        except Exception:
            logger.exception(
                "offer_message_delivery_failed",
                phone=mask_phone_number(message.phone_number),
            )
            return False


async def deliver_offer_messages(messages: list[OfferMessage]) -> DeliveryReport:
    """Hand every message to the WhatsApp gateway once.

    Failures are counted, never retried: a slow or failing recipient must not
    hold back the rest of the fan-out.
    """
    if not messages:
        return DeliveryReport(target_count=0, sent_count=0)

    settings = get_settings()
    url = settings.whatsapp_api_url.strip()
    if not url:
        logger.warning("offer_message_channel_not_configured", target_count=len(messages))
        return DeliveryReport(target_count=len(messages), sent_count=0)

    headers = {}
    if settings.whatsapp_api_token:
        headers["Authorization"] = f"Bearer {settings.whatsapp_api_token}"

    semaphore = asyncio.Semaphore(settings.notifier_max_concurrency)
    async with httpx.AsyncClient(
        timeout=settings.notifier_timeout_seconds,
        headers=headers,
    ) as client:
        outcomes = await asyncio.gather(
            *(
                _post_message(client=client, url=url, message=message, semaphore=semaphore)
                for message in messages
            )
        )

    return DeliveryReport(target_count=len(messages), sent_count=sum(1 for ok in outcomes if ok))
