"""Email provider adapters"""
from mailrelay.services.email.adapters.base import (
    BULK_BATCH_SIZE,
    BaseEmailAdapter,
    EmailAttachment,
    EmailMessage,
    SendResult,
)
from mailrelay.services.email.adapters.brevo import BrevoEmailAdapter
from mailrelay.services.email.adapters.http import HttpEmailAdapter
from mailrelay.services.email.adapters.resend import ResendEmailAdapter
from mailrelay.services.email.adapters.sendgrid import SendGridEmailAdapter
from mailrelay.services.email.adapters.stub import StubEmailAdapter

__all__ = [
    "BULK_BATCH_SIZE",
    "BaseEmailAdapter",
    "EmailAttachment",
    "EmailMessage",
    "SendResult",
    "BrevoEmailAdapter",
    "HttpEmailAdapter",
    "ResendEmailAdapter",
    "SendGridEmailAdapter",
    "StubEmailAdapter",
]
