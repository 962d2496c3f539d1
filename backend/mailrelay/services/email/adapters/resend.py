"""Resend adapter (official resend SDK)"""
import asyncio
import logging
from typing import Any, Dict, Optional

import resend
from resend.exceptions import ResendError

from mailrelay.services.email.adapters.base import BaseEmailAdapter, EmailMessage, SendResult

logger = logging.getLogger(__name__)


def build_resend_params(message: EmailMessage) -> Dict[str, Any]:
    """Translate an EmailMessage into Resend's send parameters"""
    params: Dict[str, Any] = {
        "from": message.from_address,
        "to": list(message.to),
        "subject": message.subject,
    }
    if message.html:
        params["html"] = message.html
    if message.text:
        params["text"] = message.text
    if message.cc:
        params["cc"] = list(message.cc)
    if message.bcc:
        params["bcc"] = list(message.bcc)
    if message.reply_to:
        params["reply_to"] = message.reply_to
    if message.tags:
        params["tags"] = [{"name": tag["name"], "value": tag["value"]} for tag in message.tags]
    if message.attachments:
        params["attachments"] = [
            {
                "filename": attachment.filename,
                "content": attachment.content,
                **({"content_type": attachment.content_type} if attachment.content_type else {}),
            }
            for attachment in message.attachments
        ]
    if message.headers:
        params["headers"] = dict(message.headers)
    return params


def _extract_id(response) -> Optional[str]:
    # Handle both dict and object responses
    if isinstance(response, dict):
        return response.get("id")
    return getattr(response, "id", None)


class ResendEmailAdapter(BaseEmailAdapter):
    name = "resend"

    def __init__(self, api_key: str):
        super().__init__()
        if not api_key:
            raise ValueError("Resend API key is required")
        self.api_key = api_key

    def _send_sync(self, params: Dict[str, Any]):
        resend.api_key = self.api_key
        return resend.Emails.send(params)

    async def send_email(self, message: EmailMessage) -> SendResult:
        params = build_resend_params(message)

        try:
            response = await asyncio.to_thread(self._send_sync, params)
        except ResendError as e:
            logger.warning(f"Resend rejected email to {message.to}: {e}")
            return SendResult.failure(getattr(e, "message", None) or str(e))

        email_id = _extract_id(response)
        if not email_id:
            logger.error(f"Resend returned invalid response: {response!r}")
            return SendResult.failure("Resend response did not include an email id")

        return SendResult.ok(email_id)
