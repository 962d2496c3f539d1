"""Delivery webhook reconciliation

Resend posts delivery events (signed with Svix headers) referencing the
provider message id returned at send time. Each event is applied directly to
the matching log entry: status, the status's timestamp and, for negative
outcomes, an error message. Events may arrive late, twice or out of order;
updates are a pure function of (event type, event timestamp) so re-delivery
is harmless and no predecessor check is made.
"""
import json
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from mailrelay.core.errors import (
    INVALID_SIGNATURE,
    INVALID_WEBHOOK_PAYLOAD,
    MISSING_MESSAGE_ID,
    MISSING_SIGNATURE,
    AuthenticationError,
    ValidationError,
)
from mailrelay.core.logging import webhook_logger
from mailrelay.core.metrics import webhook_events_counter
from mailrelay.core.security import SVIX_SIGNATURE_HEADER, get_header, verify_svix_signature
from mailrelay.db.email_log_store import EmailLogStore

# Checked in order; the first present field wins
MESSAGE_ID_FIELDS = ("id", "email_id")

EVENT_STATUS_MAP = {
    "email.sent": "sent",
    "email.delivered": "delivered",
    "email.delivery_delayed": "delivery_delayed",
    "email.opened": "opened",
    "email.clicked": "clicked",
    "email.bounced": "bounced",
    "email.complained": "complained",
    "email.failed": "failed",
}

STATUS_TIMESTAMP_FIELDS = {
    "sent": "sent_at",
    "delivered": "delivered_at",
    "opened": "opened_at",
    "clicked": "clicked_at",
    "bounced": "bounced_at",
    "complained": "complained_at",
    "failed": "failed_at",
}

NO_MATCH_MESSAGE = "Webhook received but no matching email log found"
PROCESSED_MESSAGE = "Webhook processed successfully"


def webhook_event_to_status(event_type: Optional[str]) -> str:
    """Unknown event types map to pending instead of being rejected"""
    return EVENT_STATUS_MAP.get(event_type or "", "pending")


def event_type_label(event_type: Optional[str]) -> str:
    """Metric label; types outside EVENT_STATUS_MAP collapse to unknown to bound series"""
    return event_type if event_type in EVENT_STATUS_MAP else "unknown"


def extract_message_id(data: Mapping[str, Any]) -> Optional[str]:
    for field_name in MESSAGE_ID_FIELDS:
        value = data.get(field_name)
        if value:
            return str(value)
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_event_timestamp(event: Mapping[str, Any]) -> datetime:
    """Event creation time, falling back to the email's time, then now"""
    data = event.get("data") or {}
    return (
        parse_timestamp(event.get("created_at"))
        or parse_timestamp(data.get("created_at"))
        or datetime.now(timezone.utc)
    )


def _subtype(data: Mapping[str, Any], flat_key: str, nested_key: str) -> Optional[str]:
    if data.get(flat_key):
        return str(data[flat_key])
    nested = data.get(nested_key)
    if isinstance(nested, dict):
        return nested.get("subType") or nested.get("type")
    return None


def build_status_update(status: str, event: Mapping[str, Any]) -> Dict[str, Any]:
    """Column values an event sets on its log entry"""
    data = event.get("data") or {}
    update: Dict[str, Any] = {"status": status}

    timestamp_field = STATUS_TIMESTAMP_FIELDS.get(status)
    if timestamp_field:
        update[timestamp_field] = extract_event_timestamp(event)

    if status == "bounced":
        bounce_type = _subtype(data, "bounce_type", "bounce")
        update["error_message"] = f"Email bounced: {bounce_type}" if bounce_type else "Email bounced"
    elif status == "complained":
        complaint_type = _subtype(data, "complaint_type", "complaint")
        update["error_message"] = (
            f"Spam complaint: {complaint_type}" if complaint_type else "Recipient marked email as spam"
        )
    elif status == "failed":
        update["error_message"] = "Email delivery failed"

    return update


def resolve_webhook_secret(secret: Optional[str] = None) -> Optional[str]:
    """Explicit secret, else RESEND_WEBHOOK_SECRET from the environment"""
    return secret or os.environ.get("RESEND_WEBHOOK_SECRET") or None


class WebhookReconciler:
    def __init__(
        self,
        store: EmailLogStore,
        secret: Optional[str] = None,
        require_signature: bool = False,
        verifier: Callable[[bytes, Mapping[str, str], str], bool] = verify_svix_signature
    ):
        self.store = store
        self.secret = resolve_webhook_secret(secret)
        self.require_signature = require_signature
        self.verifier = verifier

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        """Raise AuthenticationError unless the request may be processed"""
        signature = get_header(headers, SVIX_SIGNATURE_HEADER)

        if not self.secret:
            webhook_logger.warning("Webhook secret not configured - processing unverified webhook")
            return

        if not signature:
            if self.require_signature:
                webhook_logger.warning("Webhook rejected: missing signature header")
                raise AuthenticationError("Missing webhook signature", code=MISSING_SIGNATURE)
            webhook_logger.warning("Webhook received without signature headers - allowing unsigned traffic")
            return

        if not self.verifier(raw_body, headers, self.secret):
            webhook_logger.error("Invalid webhook signature")
            raise AuthenticationError("Invalid webhook signature", code=INVALID_SIGNATURE)

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """Verify, parse and apply one delivery event"""
        try:
            self.verify(raw_body, headers)
        except AuthenticationError:
            webhook_events_counter.labels(event_type="unknown", outcome="rejected").inc()
            raise

        try:
            event = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            webhook_logger.error("Invalid JSON in webhook payload")
            raise ValidationError("Invalid webhook payload", code=INVALID_WEBHOOK_PAYLOAD)

        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload", code=INVALID_WEBHOOK_PAYLOAD)

        event_type = event.get("type")
        data = event.get("data")
        message_id = extract_message_id(data) if isinstance(data, dict) else None
        if not message_id:
            webhook_logger.error(f"Webhook {event_type} has no message id")
            raise ValidationError("Missing email ID in webhook payload", code=MISSING_MESSAGE_ID)

        entry = self.store.find_by_provider_id(message_id)
        if entry is None:
            # Sent outside this service (same provider account); acknowledge so the provider stops retrying
            webhook_logger.info(f"Webhook {event_type} for untracked message {message_id}")
            webhook_events_counter.labels(event_type=event_type_label(event_type), outcome="unmatched").inc()
            return {"success": True, "message": NO_MATCH_MESSAGE, "messageId": message_id}

        status = webhook_event_to_status(event_type)
        if event_type not in EVENT_STATUS_MAP:
            webhook_logger.warning(f"Unrecognized webhook event type {event_type!r}, recording as pending")

        self.store.update(entry.id, build_status_update(status, event))

        if status in ("bounced", "complained"):
            webhook_logger.warning(f"Email {entry.id} {status} (message {message_id})")
        else:
            webhook_logger.info(f"Webhook {event_type}: email {entry.id} -> {status}")
        webhook_events_counter.labels(event_type=event_type_label(event_type), outcome="applied").inc()

        return {
            "success": True,
            "message": PROCESSED_MESSAGE,
            "emailId": entry.id,
            "messageId": message_id,
            "status": status,
        }
