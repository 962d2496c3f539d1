"""Email service module - public API exports"""
from mailrelay.services.email.adapters import (
    BULK_BATCH_SIZE,
    BaseEmailAdapter,
    BrevoEmailAdapter,
    EmailAttachment,
    EmailMessage,
    ResendEmailAdapter,
    SendGridEmailAdapter,
    SendResult,
    StubEmailAdapter,
)
from mailrelay.services.email.content import (
    determine_content_type,
    join_addresses,
    sanitize_content,
    split_addresses,
    validate_addresses,
)
from mailrelay.services.email.helpers import build_email_log_response
from mailrelay.services.email.orchestrator import BulkOutcome, EmailService, SendOutcome
from mailrelay.services.email.registry import AdapterRegistry, build_adapter_registry
from mailrelay.services.email.stats import EmailStats, compute_stats
from mailrelay.services.email.webhooks import WebhookReconciler

__all__ = [
    "BULK_BATCH_SIZE",
    "BaseEmailAdapter",
    "BrevoEmailAdapter",
    "EmailAttachment",
    "EmailMessage",
    "ResendEmailAdapter",
    "SendGridEmailAdapter",
    "SendResult",
    "StubEmailAdapter",
    "determine_content_type",
    "join_addresses",
    "sanitize_content",
    "split_addresses",
    "validate_addresses",
    "build_email_log_response",
    "BulkOutcome",
    "EmailService",
    "SendOutcome",
    "AdapterRegistry",
    "build_adapter_registry",
    "EmailStats",
    "compute_stats",
    "WebhookReconciler",
]
