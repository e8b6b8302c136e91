"""Outbound SMS through an HTTP gateway."""
from __future__ import annotations

import logging

import httpx
from django.conf import settings

logger = logging.getLogger("groupbuy")


def _mask(phone: str) -> str:
    return phone[-4:].rjust(len(phone), "*") if phone else ""


def send_sms(phone: str, message: str) -> bool:
    """Send *message* to *phone*.

    Returns ``True`` when the gateway accepted the message.  When no gateway
    is configured the message is only logged, which is the expected mode in
    development and tests.

    Raises ``httpx.HTTPError`` on transport or HTTP failures so the calling
    task can decide whether to retry.
    """
    if not phone:
        return False

    gateway_url = getattr(settings, "SMS_GATEWAY_URL", "")
    if not gateway_url:
        logger.info("SMS gateway not configured; SMS to %s not sent: %s", _mask(phone), message[:80])
        return True

    response = httpx.post(
        gateway_url,
        json={
            "sender": settings.SMS_SENDER_ID,
            "to": phone,
            "message": message,
        },
        headers={"Authorization": f"Bearer {settings.SMS_API_KEY}"},
        timeout=settings.SMS_TIMEOUT,
    )
    response.raise_for_status()
    logger.info("SMS sent to %s", _mask(phone))
    return True
