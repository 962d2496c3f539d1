"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from mailrelay.models.base import Base
from mailrelay.models.email_log import EmailLog

__all__ = ["Base", "EmailLog"]
