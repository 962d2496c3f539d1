"""Brevo adapter (transactional email REST API over httpx)"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from mailrelay.core.errors import INVALID_SCHEDULE, ValidationError
from mailrelay.services.email.adapters.base import EmailMessage, SendResult
from mailrelay.services.email.adapters.http import HttpEmailAdapter, contacts, to_date_string

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com"
SMTP_EMAIL_PATH = "/v3/smtp/email"
SENDER_DOMAINS_PATH = "/v3/senders/domains"
MAX_MESSAGE_VERSIONS = 1000


def build_brevo_payload(message: EmailMessage) -> Dict[str, Any]:
    """Translate an EmailMessage into a /v3/smtp/email request body"""
    payload: Dict[str, Any] = {
        "sender": {"email": message.from_address},
        "to": contacts(message.to),
        "subject": message.subject,
    }
    if message.html:
        payload["htmlContent"] = message.html
    if message.text:
        payload["textContent"] = message.text
    if message.cc:
        payload["cc"] = contacts(message.cc)
    if message.bcc:
        payload["bcc"] = contacts(message.bcc)
    if message.reply_to:
        payload["replyTo"] = {"email": message.reply_to}
    if message.tags:
        payload["tags"] = [tag["name"] for tag in message.tags]
    if message.attachments:
        payload["attachment"] = [
            {"content": attachment.content, "name": attachment.filename}
            for attachment in message.attachments
        ]
    if message.headers:
        payload["headers"] = dict(message.headers)
    return payload


def validate_scheduled_at(scheduled_at: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """ISO 8601 scheduledAt in the future, else ValidationError"""
    if isinstance(scheduled_at, str):
        try:
            scheduled_at = datetime.fromisoformat(scheduled_at.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid scheduled date format. Use ISO 8601 format.", code=INVALID_SCHEDULE)
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

    if scheduled_at <= (now or datetime.now(timezone.utc)):
        raise ValidationError("Scheduled date must be in the future", code=INVALID_SCHEDULE)
    return scheduled_at.isoformat()


class BrevoEmailAdapter(HttpEmailAdapter):
    # Registered under the provider id "bravo"
    name = "bravo"
    label = "Brevo"

    def __init__(
        self,
        api_key: str,
        base_url: str = BREVO_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(api_key, base_url, timeout, transport)

    def auth_headers(self) -> Dict[str, str]:
        return {"api-key": self.api_key}

    def message_id(self, response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        # Scheduled sends without a batch answer with messageIds
        return body.get("messageId") or next(iter(body.get("messageIds") or []), None)

    async def send_email(self, message: EmailMessage) -> SendResult:
        return await self.submit(SMTP_EMAIL_PATH, build_brevo_payload(message), message)

    # ------------------------------------------------------------------
    # Scheduled sends
    # ------------------------------------------------------------------

    async def schedule_email(
        self,
        message: EmailMessage,
        scheduled_at: Union[datetime, str],
        batch_id: Optional[str] = None
    ) -> SendResult:
        payload = build_brevo_payload(message)
        payload["scheduledAt"] = validate_scheduled_at(scheduled_at)
        if batch_id:
            payload["batchId"] = batch_id
        return await self.submit(SMTP_EMAIL_PATH, payload, message)

    async def schedule_batch_emails(
        self,
        message: EmailMessage,
        recipients: Sequence[Sequence[str]],
        scheduled_at: Union[datetime, str],
        batch_id: Optional[str] = None
    ) -> SendResult:
        """One request with a messageVersion per recipient group"""
        if not recipients:
            raise ValidationError("At least one recipient group is required", code=INVALID_SCHEDULE)
        if len(recipients) > MAX_MESSAGE_VERSIONS:
            raise ValidationError(
                f"Maximum {MAX_MESSAGE_VERSIONS} message versions allowed per batch",
                code=INVALID_SCHEDULE
            )

        payload = build_brevo_payload(message)
        del payload["to"]
        payload["messageVersions"] = [{"to": contacts(list(group))} for group in recipients]
        payload["scheduledAt"] = validate_scheduled_at(scheduled_at)
        if batch_id:
            payload["batchId"] = batch_id
        return await self.submit(SMTP_EMAIL_PATH, payload, message)

    async def delete_scheduled_email(self, identifier: str) -> None:
        """Cancel by message id or batch id"""
        await self.request("DELETE", f"{SMTP_EMAIL_PATH}/{quote(identifier, safe='')}")
        logger.info(f"Deleted scheduled Brevo email {identifier}")

    # ------------------------------------------------------------------
    # Events and statistics
    # ------------------------------------------------------------------

    async def get_email_events(
        self,
        limit: Optional[int] = None,
        start_date: Union[date, str, None] = None,
        end_date: Union[date, str, None] = None,
        days: Optional[int] = None,
        email: Optional[str] = None,
        event: Optional[str] = None,
        message_id: Optional[str] = None,
        sort: Optional[str] = None
    ) -> Dict[str, Any]:
        """Event report (delivered, bounces, spam, ...); also how a scheduled send's status is read"""
        return await self.request("GET", "/v3/smtp/statistics/events", params={
            "limit": limit,
            "startDate": to_date_string(start_date),
            "endDate": to_date_string(end_date),
            "days": days,
            "email": email,
            "event": event,
            "messageId": message_id,
            "sort": sort,
        }) or {}

    async def get_email_statistics(
        self,
        message_id: Optional[str] = None,
        start_date: Union[date, str, None] = None,
        end_date: Union[date, str, None] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self.request("GET", "/v3/smtp/emails", params={
            "messageId": message_id,
            "startDate": to_date_string(start_date),
            "endDate": to_date_string(end_date),
            "limit": limit,
        }) or {}

    # ------------------------------------------------------------------
    # Sender domains
    # ------------------------------------------------------------------

    async def add_domain(self, domain: str) -> Dict[str, Any]:
        return await self.request("POST", SENDER_DOMAINS_PATH, json={"name": domain}) or {}

    async def get_domains(self) -> Dict[str, Any]:
        return await self.request("GET", SENDER_DOMAINS_PATH) or {}

    async def delete_domain(self, domain: str) -> None:
        await self.request("DELETE", f"{SENDER_DOMAINS_PATH}/{quote(domain, safe='')}")

    async def get_blocked_domains(self) -> Dict[str, Any]:
        return await self.request("GET", "/v3/smtp/blockedDomains") or {}
