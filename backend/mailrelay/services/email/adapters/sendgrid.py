"""SendGrid adapter (v3 REST API over httpx)

Besides sending, exposes the SendGrid management calls the service can use
directly: scheduled sends, statistics and suppression lists.
"""
import logging
import time
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from mailrelay.core.errors import INVALID_SCHEDULE, ValidationError
from mailrelay.services.email.adapters.base import EmailMessage, SendResult
from mailrelay.services.email.adapters.http import (
    HttpEmailAdapter,
    TimeValue,
    contacts,
    to_date_string,
    to_unix_timestamp,
)

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com"
MAIL_SEND_PATH = "/v3/mail/send"
MAIL_BATCH_PATH = "/v3/mail/batch"
SCHEDULED_SENDS_PATH = "/v3/user/scheduled_sends"

# SendGrid only accepts send_at between 10 minutes and 72 hours ahead
MIN_SCHEDULE_LEAD_SECONDS = 10 * 60
MAX_SCHEDULE_LEAD_SECONDS = 72 * 60 * 60
MAX_PERSONALIZATIONS = 1000


def build_sendgrid_payload(message: EmailMessage) -> Dict[str, Any]:
    """Translate an EmailMessage into a /v3/mail/send request body"""
    personalization: Dict[str, Any] = {"to": contacts(message.to)}
    if message.cc:
        personalization["cc"] = contacts(message.cc)
    if message.bcc:
        personalization["bcc"] = contacts(message.bcc)

    # SendGrid requires text/plain to precede text/html
    content = []
    if message.text:
        content.append({"type": "text/plain", "value": message.text})
    if message.html:
        content.append({"type": "text/html", "value": message.html})

    payload: Dict[str, Any] = {
        "personalizations": [personalization],
        "from": {"email": message.from_address},
        "subject": message.subject,
        "content": content,
    }
    if message.reply_to:
        payload["reply_to"] = {"email": message.reply_to}
    if message.tags:
        payload["categories"] = [tag["name"] for tag in message.tags]
        payload["custom_args"] = {tag["name"]: tag["value"] for tag in message.tags}
    if message.attachments:
        payload["attachments"] = [
            {
                "content": attachment.content,
                "filename": attachment.filename,
                **({"type": attachment.content_type} if attachment.content_type else {}),
            }
            for attachment in message.attachments
        ]
    if message.headers:
        payload["headers"] = dict(message.headers)
    return payload


def validate_send_at(send_at: Union[datetime, int], now: Optional[int] = None) -> int:
    """Unix send_at inside SendGrid's scheduling window, else ValidationError"""
    timestamp = to_unix_timestamp(send_at)
    now = int(time.time()) if now is None else now

    if timestamp <= now:
        raise ValidationError("Scheduled time must be in the future", code=INVALID_SCHEDULE)
    if timestamp < now + MIN_SCHEDULE_LEAD_SECONDS:
        raise ValidationError("Scheduled time must be at least 10 minutes in the future", code=INVALID_SCHEDULE)
    if timestamp > now + MAX_SCHEDULE_LEAD_SECONDS:
        raise ValidationError("Scheduled time cannot be more than 72 hours in the future", code=INVALID_SCHEDULE)
    return timestamp


class SendGridEmailAdapter(HttpEmailAdapter):
    name = "sendgrid"
    label = "SendGrid"

    def __init__(
        self,
        api_key: str,
        base_url: str = SENDGRID_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(api_key, base_url, timeout, transport)

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def message_id(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("x-message-id")

    def error_message(self, response: httpx.Response) -> str:
        try:
            errors = response.json().get("errors") or []
        except (ValueError, AttributeError):
            errors = []
        messages = [error.get("message") for error in errors if isinstance(error, dict) and error.get("message")]
        if messages:
            return "; ".join(messages)
        return f"SendGrid request failed with status {response.status_code}"

    async def send_email(self, message: EmailMessage) -> SendResult:
        return await self.submit(MAIL_SEND_PATH, build_sendgrid_payload(message), message)

    # ------------------------------------------------------------------
    # Scheduled sends
    # ------------------------------------------------------------------

    async def schedule_email(
        self,
        message: EmailMessage,
        send_at: Union[datetime, int],
        batch_id: Optional[str] = None
    ) -> SendResult:
        """Send later; pass a batch_id (see create_batch_id) to be able to cancel"""
        payload = build_sendgrid_payload(message)
        payload["send_at"] = validate_send_at(send_at)
        if batch_id:
            payload["batch_id"] = batch_id
        return await self.submit(MAIL_SEND_PATH, payload, message)

    async def schedule_batch_emails(
        self,
        message: EmailMessage,
        recipients: Sequence[Sequence[str]],
        send_at: Union[datetime, int],
        batch_id: Optional[str] = None
    ) -> SendResult:
        """One scheduled request, one personalization (separate copy) per recipient group"""
        if not recipients:
            raise ValidationError("At least one recipient group is required", code=INVALID_SCHEDULE)
        if len(recipients) > MAX_PERSONALIZATIONS:
            raise ValidationError(
                f"Maximum {MAX_PERSONALIZATIONS} personalizations allowed per batch",
                code=INVALID_SCHEDULE
            )

        payload = build_sendgrid_payload(message)
        payload["personalizations"] = [{"to": contacts(list(group))} for group in recipients]
        payload["send_at"] = validate_send_at(send_at)
        if batch_id:
            payload["batch_id"] = batch_id
        return await self.submit(MAIL_SEND_PATH, payload, message)

    async def create_batch_id(self) -> str:
        data = await self.request("POST", MAIL_BATCH_PATH)
        return data["batch_id"]

    async def cancel_scheduled_send(self, batch_id: str) -> Any:
        return await self.request("POST", SCHEDULED_SENDS_PATH, json={"batch_id": batch_id, "status": "cancel"})

    async def pause_scheduled_send(self, batch_id: str) -> Any:
        return await self.request("PATCH", f"{SCHEDULED_SENDS_PATH}/{quote(batch_id)}", json={"status": "pause"})

    async def get_scheduled_sends(self) -> List[Dict[str, Any]]:
        return await self.request("GET", SCHEDULED_SENDS_PATH) or []

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_email_statistics(
        self,
        start_date: Union[date, str],
        end_date: Union[date, str, None] = None,
        aggregated_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Global stats; aggregated_by is day, week or month"""
        return await self.request("GET", "/v3/stats", params={
            "start_date": to_date_string(start_date),
            "end_date": to_date_string(end_date),
            "aggregated_by": aggregated_by,
            "limit": limit,
            "offset": offset,
        }) or []

    async def get_category_statistics(
        self,
        categories: Sequence[str],
        start_date: Union[date, str],
        end_date: Union[date, str, None] = None,
        aggregated_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return await self.request("GET", "/v3/categories/stats", params={
            "categories": ",".join(categories),
            "start_date": to_date_string(start_date),
            "end_date": to_date_string(end_date),
            "aggregated_by": aggregated_by,
        }) or []

    # ------------------------------------------------------------------
    # Suppressions
    # ------------------------------------------------------------------

    async def get_suppression_groups(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/v3/asm/groups") or []

    async def _suppression_list(self, kind: str, start_time: TimeValue, end_time: TimeValue, **params) -> List[Dict[str, Any]]:
        return await self.request("GET", f"/v3/suppression/{kind}", params={
            "start_time": to_unix_timestamp(start_time),
            "end_time": to_unix_timestamp(end_time),
            **params,
        }) or []

    async def get_bounced_emails(self, start_time: TimeValue = None, end_time: TimeValue = None) -> List[Dict[str, Any]]:
        return await self._suppression_list("bounces", start_time, end_time)

    async def get_spam_reports(self, start_time: TimeValue = None, end_time: TimeValue = None) -> List[Dict[str, Any]]:
        return await self._suppression_list("spam_reports", start_time, end_time)

    async def get_invalid_emails(self, start_time: TimeValue = None, end_time: TimeValue = None) -> List[Dict[str, Any]]:
        return await self._suppression_list("invalid_emails", start_time, end_time)

    async def get_blocked_emails(
        self,
        start_time: TimeValue = None,
        end_time: TimeValue = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self._suppression_list("blocks", start_time, end_time, limit=limit, offset=offset)

    async def delete_blocked_email(self, email: str) -> None:
        await self.request("DELETE", f"/v3/suppression/blocks/{quote(email, safe='@')}")
        logger.info(f"Removed {email} from the SendGrid block list")
