"""Response builders for email log entries"""
from mailrelay.models.email_log import EmailLog
from mailrelay.services.email.content import parse_tags, split_addresses


def _isoformat(value):
    return value.isoformat() if value else None


def build_email_log_response(entry: EmailLog) -> dict:
    """API representation of a log entry (camelCase, address lists split back out)"""
    return {
        "id": entry.id,
        "providerId": entry.provider_id,
        "fromAddress": entry.from_address,
        "toAddress": split_addresses(entry.to_address),
        "ccAddress": split_addresses(entry.cc_address),
        "bccAddress": split_addresses(entry.bcc_address),
        "replyToAddress": entry.reply_to_address,
        "subject": entry.subject,
        "content": entry.content,
        "contentType": entry.content_type,
        "status": entry.status,
        "provider": entry.provider,
        "errorMessage": entry.error_message,
        "tags": parse_tags(entry.tags),
        "userId": entry.user_id,
        "sentAt": _isoformat(entry.sent_at),
        "deliveredAt": _isoformat(entry.delivered_at),
        "openedAt": _isoformat(entry.opened_at),
        "clickedAt": _isoformat(entry.clicked_at),
        "bouncedAt": _isoformat(entry.bounced_at),
        "complainedAt": _isoformat(entry.complained_at),
        "failedAt": _isoformat(entry.failed_at),
        "createdAt": _isoformat(entry.created_at),
        "updatedAt": _isoformat(entry.updated_at),
    }
