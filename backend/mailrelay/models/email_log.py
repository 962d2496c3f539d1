"""EmailLog model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from mailrelay.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class EmailLog(Base):
    """Durable record of one send attempt and its delivery lifecycle"""
    __tablename__ = "email_log"

    id = Column(String(64), primary_key=True)
    provider_id = Column(String(255), unique=True, nullable=True, index=True)  # Vendor message id, webhook key
    from_address = Column(String(320), nullable=False)
    to_address = Column(Text, nullable=False)  # Comma-joined recipients
    cc_address = Column(Text, nullable=True)
    bcc_address = Column(Text, nullable=True)
    reply_to_address = Column(String(320), nullable=True)
    subject = Column(String(998), nullable=False)
    content = Column(Text, nullable=False)
    content_type = Column(String(10), nullable=False)  # html | text | mixed
    status = Column(String(32), nullable=False, default="pending", index=True)
    provider = Column(String(50), nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    tags = Column(Text, nullable=True)  # JSON-encoded [{name, value}]
    metadata_json = Column(Text, nullable=True)
    user_id = Column(String(255), nullable=True, index=True)

    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    bounced_at = Column(DateTime(timezone=True), nullable=True)
    complained_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} to={self.to_address} status={self.status}>"
